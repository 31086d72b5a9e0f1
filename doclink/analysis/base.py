from abc import ABC, abstractmethod

from doclink.analysis.models import Summary


class BaseAnalyzer(ABC):
    """Contract for all document analyzers."""

    @abstractmethod
    def analyze(self, text: str, filename: str) -> Summary:
        """Turn extracted document text into a structured summary.

        Args:
            text: Plain text from the extraction stage.
            filename: Original filename, given to the model as context.

        Returns:
            A fully validated Summary.

        Raises:
            AnalysisFormatError: if the response does not match the schema.
            AnalysisTransportError: if the provider could not be reached.
        """
