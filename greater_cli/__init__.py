"""greater: command line installer for greater-components.

Public Interface:
    - cli: click command group
    - main: console script entry point
"""

from .cli import cli
from .cli import main

__all__ = ["cli", "main"]
