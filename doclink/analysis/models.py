from dataclasses import dataclass

TITLE_MAX_CHARS = 100
TLDR_MAX_CHARS = 150


@dataclass(frozen=True)
class Summary:
    """Structured result of analyzing one document."""

    title: str
    executive_summary: str
    key_points: tuple[str, ...]
    important_facts: tuple[str, ...]
    insights: str
    tldr: str

    def to_payload(self) -> dict[str, object]:
        """Wire shape of the summary, as returned by the AI provider."""
        return {
            "title": self.title,
            "executiveSummary": self.executive_summary,
            "keyPoints": list(self.key_points),
            "importantFacts": list(self.important_facts),
            "insights": self.insights,
            "tldr": self.tldr,
        }
