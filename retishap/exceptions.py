class ExplanationError(RuntimeError):
    """Base class for every error raised while explaining a prediction."""


class ScoringUnavailableError(ExplanationError):
    """The classifier could not be loaded, so no explanation can run."""


class InvalidImageError(ExplanationError, ValueError):
    """The input image cannot be converted to the working format."""


class ScoringError(ExplanationError):
    """A single call to the scoring function failed."""


class BaselinePredictionError(ExplanationError):
    """The reference predictions (baseline or original) are unavailable."""


class InsufficientSamplesError(ExplanationError):
    """Too many coalition samples failed to produce a usable attribution."""

    def __init__(self, succeeded, required, total):
        self.succeeded = succeeded
        self.required = required
        self.total = total
        super().__init__(
            f"Only {succeeded} of {total} coalition samples succeeded "
            f"(at least {required} required)"
        )


class ExplanationCancelled(ExplanationError):
    """The caller abandoned the run."""
