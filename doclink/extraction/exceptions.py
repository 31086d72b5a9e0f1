class ExtractionError(Exception):
    """Raised when text cannot be extracted from a document."""


class UnsupportedMimeTypeError(ExtractionError):
    """Raised when no extractor is registered for a document's MIME type."""
