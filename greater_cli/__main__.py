"""Entry point for running the greater CLI with python -m greater_cli."""

from .cli import main

if __name__ == "__main__":
    main()
