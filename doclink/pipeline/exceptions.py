class ProcessorError(Exception):
    """Base exception for all pipeline errors."""


class DocumentNotFoundError(ProcessorError):
    """Raised when a document cannot be found in the database."""


class DocumentStateError(ProcessorError):
    """Raised when a document is in a status that forbids the requested change."""


class FileReadError(ProcessorError):
    """Raised when a stored payload cannot be read."""
