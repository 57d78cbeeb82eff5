"""Soft-deleting, cache-through, cursor-paginated persistence for marketplace entities."""

__version__ = "0.1.0"
