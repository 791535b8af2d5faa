from __future__ import annotations


class FieldGuideError(Exception):
    """Base class for engine errors."""


class ImageDecodeError(FieldGuideError):
    """The page image could not be decoded or has no usable size."""


class CropError(FieldGuideError):
    """A template rectangle does not fit the page, or a crop could not be encoded."""


class RecognitionError(FieldGuideError):
    """The recognition backend failed for a caption image."""


class RateLimitedError(RecognitionError):
    """The backend signalled a rate limit (HTTP 429 / RESOURCE_EXHAUSTED)."""


class TransientRecognitionError(RecognitionError):
    """Network or server-side failure worth retrying."""


class RecordValidationError(FieldGuideError):
    """A freshly produced page record failed structural validation."""

    def __init__(self, reason: str):
        super().__init__(f"layout record failed validation: {reason}")
        self.reason = reason


class RetryExhausted(FieldGuideError):
    """Every attempt of a retried operation failed; carries the last error."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(f"{label}: giving up after {attempts} attempt(s): {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
