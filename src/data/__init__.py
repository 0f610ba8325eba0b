"""Data layer for fetching market quotes."""

from src.data.models import Quote

__all__ = ["Quote"]
