from typing import Any

import pytest

from doclink.analysis.exceptions import AnalysisFormatError
from doclink.analysis.models import TITLE_MAX_CHARS, TLDR_MAX_CHARS
from doclink.analysis.validator import validate_and_build


def _payload(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "title": "Title",
        "executiveSummary": "Summary",
        "keyPoints": ["one"],
        "importantFacts": ["fact"],
        "insights": "Insight",
        "tldr": "Short",
    }
    data.update(overrides)
    return data


class TestValidSummary:
    def test_builds_summary(self) -> None:
        summary = validate_and_build(_payload())
        assert summary.title == "Title"
        assert summary.important_facts == ("fact",)

    def test_round_trips_wire_shape(self) -> None:
        assert validate_and_build(_payload()).to_payload() == _payload()

    def test_accepts_limits_exactly(self) -> None:
        summary = validate_and_build(
            _payload(title="t" * TITLE_MAX_CHARS, tldr="s" * TLDR_MAX_CHARS)
        )
        assert len(summary.title) == TITLE_MAX_CHARS


class TestRejectsFieldSet:
    def test_missing_field(self) -> None:
        data = _payload()
        del data["insights"]
        with pytest.raises(AnalysisFormatError, match="Missing required fields: insights"):
            validate_and_build(data)

    def test_extra_field(self) -> None:
        with pytest.raises(AnalysisFormatError, match="Unexpected fields: confidence"):
            validate_and_build(_payload(confidence=0.9))


class TestRejectsValues:
    @pytest.mark.parametrize("field", ["title", "executiveSummary", "insights", "tldr"])
    def test_empty_string(self, field: str) -> None:
        with pytest.raises(AnalysisFormatError, match=field):
            validate_and_build(_payload(**{field: "   "}))

    @pytest.mark.parametrize("field", ["title", "insights"])
    def test_non_string(self, field: str) -> None:
        with pytest.raises(AnalysisFormatError, match="non-empty string"):
            validate_and_build(_payload(**{field: 42}))

    def test_title_too_long(self) -> None:
        with pytest.raises(AnalysisFormatError, match="max 100"):
            validate_and_build(_payload(title="t" * (TITLE_MAX_CHARS + 1)))

    def test_tldr_too_long(self) -> None:
        with pytest.raises(AnalysisFormatError, match="max 150"):
            validate_and_build(_payload(tldr="s" * (TLDR_MAX_CHARS + 1)))

    @pytest.mark.parametrize("field", ["keyPoints", "importantFacts"])
    def test_empty_list(self, field: str) -> None:
        with pytest.raises(AnalysisFormatError, match="at least one item"):
            validate_and_build(_payload(**{field: []}))

    def test_list_given_as_string(self) -> None:
        with pytest.raises(AnalysisFormatError, match="must be a list"):
            validate_and_build(_payload(keyPoints="one, two"))

    def test_blank_list_item(self) -> None:
        with pytest.raises(AnalysisFormatError, match="index 1"):
            validate_and_build(_payload(importantFacts=["ok", ""]))
