from doclink.config.settings import Settings
from doclink.extraction.base import BaseTextExtractor
from doclink.extraction.exceptions import UnsupportedMimeTypeError
from doclink.extraction.pdfplumber_adapter import PdfPlumberAdapter
from doclink.extraction.plain_text_adapter import PlainTextAdapter
from doclink.extraction.pymupdf_adapter import PyMuPdfAdapter


class ExtractorFactory:
    """Resolves the text extractor for a document's MIME type."""

    PDF_ENGINES: dict[str, type[BaseTextExtractor]] = {
        "pdfplumber": PdfPlumberAdapter,
        "pymupdf": PyMuPdfAdapter,
    }

    def __init__(self, extractors: dict[str, BaseTextExtractor]) -> None:
        self._extractors = extractors

    @classmethod
    def create(cls, settings: Settings) -> "ExtractorFactory":
        engine = settings.pdf_engine.lower()
        pdf_cls = cls.PDF_ENGINES.get(engine)
        if pdf_cls is None:
            raise ValueError(
                f"Unknown PDF engine '{engine}'. Choose from: {list(cls.PDF_ENGINES)}"
            )
        return cls({"application/pdf": pdf_cls(), "text/*": PlainTextAdapter()})

    def for_mime_type(self, mime_type: str) -> BaseTextExtractor:
        """Return the extractor for an exact MIME type or its `major/*` wildcard.

        Raises:
            UnsupportedMimeTypeError: if nothing is registered for it.
        """
        base = mime_type.split(";", 1)[0].strip().lower()
        extractor = self._extractors.get(base)
        if extractor is None:
            extractor = self._extractors.get(f"{base.split('/', 1)[0]}/*")
        if extractor is None:
            raise UnsupportedMimeTypeError(f"No text extractor for MIME type '{mime_type}'")
        return extractor
