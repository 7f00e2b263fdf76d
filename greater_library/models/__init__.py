"""Shared pydantic model bases."""

from .base import CamelCaseModel

__all__ = ["CamelCaseModel"]
