"""Error taxonomy for the decision engine.

Every error raised inside a tick is isolated to that tick by the scheduler.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine errors."""


class InputValidationError(EngineError, ValueError):
    """A forecast or market snapshot failed its input contract.

    The tick is aborted and no order is emitted.
    """


class InsufficientDataError(EngineError):
    """History too short for windowed statistics; triggers the degraded path."""


class InsufficientFundsError(EngineError):
    """The sizing policy rejected an order; logged as a skip, not a failure."""

    def __init__(self, reason: str, *, available_usd: float | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.available_usd = available_usd


class VenueQueryUncertain(EngineError):
    """The venue could not confirm whether a position is open."""


class ExecutionFailure(EngineError, RuntimeError):
    """The execution collaborator reported a failed submission."""


__all__ = [
    "EngineError",
    "InputValidationError",
    "InsufficientDataError",
    "InsufficientFundsError",
    "VenueQueryUncertain",
    "ExecutionFailure",
]
