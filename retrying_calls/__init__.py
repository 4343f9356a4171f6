"""Retry a callable with configurable attempts, delays and cancellation.

The retry loop is in ``retry``; options, delay strategies and contexts
are in ``options``.
"""

__version__ = "4.6.0"
__all__ = ["options", "retry"]