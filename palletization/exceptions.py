"""Request-level errors raised by the packaging and composition engine.

These errors abort an operation before anything partial is produced. Physical
infeasibility (too heavy, too tall, ...) is never raised: it is reported as
violations inside a ``CompositionResult``.
"""

from typing import Any, Dict, Optional


class CompositionEngineError(Exception):
    """Base error with an optional context mapping."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with context."""
        msg = self.message
        if self.context:
            msg += "\n\nContext:"
            for key, value in self.context.items():
                msg += f"\n  {key}: {value}"
        return msg


class ProductNotFound(CompositionEngineError):
    """A referenced product does not exist or is inactive."""


class PalletNotFound(CompositionEngineError):
    """A referenced pallet does not exist, or no pallet fits the request."""


class UnitNotFound(CompositionEngineError):
    """A referenced packaging unit does not exist or is inactive."""


class NoBaseUnit(CompositionEngineError):
    """The product has no base unit yet."""


class InvalidHierarchy(CompositionEngineError):
    """A packaging change would break the hierarchy invariants."""


class IncompatibleUnits(CompositionEngineError):
    """Two packaging units belong to different products."""


class UnitInUse(CompositionEngineError):
    """A packaging unit is still referenced by stock or composition lines."""


class InvalidConstraint(CompositionEngineError):
    """A constraint override is non-positive or above the pallet's limit."""


class InvalidTransition(CompositionEngineError):
    """The composition is not in a state that allows the operation."""


class ConcurrentModification(CompositionEngineError):
    """The composition is being modified by another actor."""


class CompositionNotFound(CompositionEngineError):
    """A referenced composition does not exist or was deleted."""


class StockUnavailable(CompositionEngineError):
    """Current stock no longer covers the composition."""


class PalletUnavailable(CompositionEngineError):
    """The target pallet is already occupied."""
