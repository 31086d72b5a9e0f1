class AnalysisError(Exception):
    """Raised when document analysis fails."""


class AnalysisFormatError(AnalysisError):
    """Raised when the AI response does not match the summary schema."""


class AnalysisTransportError(AnalysisError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""
