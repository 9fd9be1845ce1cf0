"""Policy helpers for order sizing."""

from .sizing import SizingLimits, SizingPolicy, SizingResult  # noqa: F401

__all__ = ["SizingLimits", "SizingPolicy", "SizingResult"]
