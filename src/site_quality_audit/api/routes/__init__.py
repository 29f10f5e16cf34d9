"""API route handlers."""

from . import batches, health

__all__ = ["batches", "health"]
