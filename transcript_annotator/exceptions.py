"""Custom exception classes for transcript-annotator."""


class AnnotatorError(Exception):
    """Base error for this library."""


class MalformedInputError(AnnotatorError):
    """Raised when the top-level word sequence is structurally invalid."""


class ProviderError(AnnotatorError):
    """Raised by an enrichment provider when a request cannot be completed."""


class ConfigurationError(AnnotatorError):
    """Raised when configuration is invalid."""
