from doclink.extraction.base import BaseTextExtractor
from doclink.extraction.exceptions import ExtractionError


class PlainTextAdapter(BaseTextExtractor):
    """Decodes text/* payloads, trying UTF-8 first."""

    ENCODINGS = ("utf-8-sig", "utf-16")

    def extract(self, data: bytes) -> str:
        for encoding in self.ENCODINGS:
            try:
                return data.decode(encoding).replace("\x00", "").strip()
            except UnicodeDecodeError:
                continue
        raise ExtractionError("text payload is not valid UTF-8 or UTF-16")
