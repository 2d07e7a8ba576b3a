from __future__ import annotations


class SpeedLearningError(RuntimeError):
    """Base class for failures surfaced to API callers."""


class ValidationFailure(SpeedLearningError):
    """Caller input violates a precondition; nothing was attempted."""


class GenerationFailure(SpeedLearningError):
    """Model call failed or returned unusable output; nothing was persisted."""


class NotFoundFailure(SpeedLearningError):
    """Referenced book/section/note/presentation does not exist."""


class StoreFailure(SpeedLearningError):
    """Persistence collaborator failed to read or write the document."""
