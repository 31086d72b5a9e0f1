"""Tests for prompt template and JSON schema loading."""

import json
from pathlib import Path

import pytest

from doclink.analysis.exceptions import AnalysisError
from doclink.analysis.prompt_loader import load_json_schema, load_prompt_template


class TestLoadPromptTemplate:
    def test_loads_default_template(self) -> None:
        template = load_prompt_template()
        assert "executiveSummary" in template
        assert "tldr" in template

    def test_loads_custom_template(self, tmp_path: Path) -> None:
        custom = tmp_path / "custom.txt"
        custom.write_text("Summarize please")
        assert load_prompt_template(custom) == "Summarize please"

    def test_missing_file_raises_error(self) -> None:
        with pytest.raises(AnalysisError, match="Failed to load prompt"):
            load_prompt_template(Path("/nonexistent/file.txt"))


class TestLoadJsonSchema:
    def test_default_schema_is_strict(self) -> None:
        schema = json.loads(load_json_schema())
        assert schema["additionalProperties"] is False
        assert set(schema["required"]) == {
            "title",
            "executiveSummary",
            "keyPoints",
            "importantFacts",
            "insights",
            "tldr",
        }

    def test_loads_custom_schema(self, tmp_path: Path) -> None:
        custom = tmp_path / "schema.json"
        custom.write_text('{"type": "object"}')
        assert load_json_schema(custom) == '{"type": "object"}'

    def test_missing_file_raises_error(self) -> None:
        with pytest.raises(AnalysisError, match="Failed to load JSON schema"):
            load_json_schema(Path("/nonexistent/schema.json"))
