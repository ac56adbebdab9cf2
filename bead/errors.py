"""Exceptions and warning categories raised by the bead pattern pipelines."""

from typing import Optional


class BeadPatternError(Exception):
    """Base class for every error raised by the pattern pipelines."""


class InvalidInput(BeadPatternError, ValueError):
    """A caller-supplied parameter is out of range or malformed
    (non-positive target count, zero-area grid, buffer/size mismatch,
    unknown catalog code)."""


class EmptyImage(BeadPatternError):
    """The source image yielded no pixels to analyse."""


class InsufficientCatalogSize(BeadPatternError):
    """The palette could not be filled to the requested size."""

    def __init__(self, requested: int, achieved: int, message: Optional[str] = None):
        self.requested = requested
        self.achieved = achieved
        if message is None:
            message = f"Palette has {achieved} colors, {requested} were requested."
        super().__init__(message)


class OperationCancelled(BeadPatternError):
    """A cancellation token was triggered while a pipeline was running."""

    def __init__(self, stage: str = ""):
        self.stage = stage
        super().__init__(f"Cancelled during {stage}." if stage else "Cancelled.")


class PaletteWarning(UserWarning):
    """A usable palette was produced, but not the one that was asked for."""


class CatalogExhausted(PaletteWarning):
    """Diversity fill ran out of unused catalog colors."""
