"""Validates the parsed AI response against the strict summary schema."""

from typing import Any

from doclink.analysis.exceptions import AnalysisFormatError
from doclink.analysis.models import TITLE_MAX_CHARS, TLDR_MAX_CHARS, Summary

_REQUIRED_FIELDS = (
    "title",
    "executiveSummary",
    "keyPoints",
    "importantFacts",
    "insights",
    "tldr",
)


def validate_and_build(data: dict[str, Any]) -> Summary:
    """Validate raw parsed JSON and build a Summary.

    Nothing is coerced: a missing or extra field, a wrong type, an empty
    string or an empty list fails the whole response.

    Raises:
        AnalysisFormatError: on any validation failure.
    """
    _require_exact_fields(data)
    return Summary(
        title=_require_text(data, "title", max_chars=TITLE_MAX_CHARS),
        executive_summary=_require_text(data, "executiveSummary"),
        key_points=_require_text_list(data, "keyPoints"),
        important_facts=_require_text_list(data, "importantFacts"),
        insights=_require_text(data, "insights"),
        tldr=_require_text(data, "tldr", max_chars=TLDR_MAX_CHARS),
    )


def _require_exact_fields(data: dict[str, Any]) -> None:
    missing = [field for field in _REQUIRED_FIELDS if field not in data]
    if missing:
        raise AnalysisFormatError(f"Missing required fields: {', '.join(missing)}")
    extra = sorted(set(data) - set(_REQUIRED_FIELDS))
    if extra:
        raise AnalysisFormatError(f"Unexpected fields: {', '.join(extra)}")


def _require_text(data: dict[str, Any], field: str, max_chars: int | None = None) -> str:
    value = data[field]
    if not isinstance(value, str) or not value.strip():
        raise AnalysisFormatError(f"'{field}' must be a non-empty string")
    if max_chars is not None and len(value) > max_chars:
        raise AnalysisFormatError(
            f"'{field}' is {len(value)} chars (max {max_chars})"
        )
    return value


def _require_text_list(data: dict[str, Any], field: str) -> tuple[str, ...]:
    value = data[field]
    if not isinstance(value, list):
        raise AnalysisFormatError(f"'{field}' must be a list")
    if not value:
        raise AnalysisFormatError(f"'{field}' must contain at least one item")
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise AnalysisFormatError(
                f"'{field}' item at index {index} must be a non-empty string"
            )
    return tuple(value)
