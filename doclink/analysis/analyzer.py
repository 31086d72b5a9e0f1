"""AI-powered document analyzer."""

import json
from pathlib import Path

from doclink.analysis.base import BaseAnalyzer
from doclink.analysis.client_base import BaseAnalysisClient
from doclink.analysis.exceptions import AnalysisFormatError
from doclink.analysis.models import Summary
from doclink.analysis.prompt_loader import load_json_schema, load_prompt_template
from doclink.analysis.validator import validate_and_build
from doclink.logging.logger import Log

TRUNCATION_MARKER = "\n\n[Document truncated due to length...]"


class Analyzer(BaseAnalyzer):
    """Summarizes document text into the fixed summary shape using an AI provider."""

    def __init__(
        self,
        *,
        client: BaseAnalysisClient,
        model: str,
        temperature: float = 0.2,
        max_input_chars: int = 50_000,
        prompt_template_path: Path | None = None,
        json_schema_path: Path | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = max(0.0, min(1.0, temperature))
        self._max_input_chars = max_input_chars
        self._system_prompt = load_prompt_template(prompt_template_path)
        self._json_schema_dict = json.loads(load_json_schema(json_schema_path))

    def analyze(self, text: str, filename: str) -> Summary:
        prompt = self._build_prompt(text, filename)
        Log.debug(f"Analysis prompt ({len(prompt)} chars) for {filename}")

        raw_response = self._client.create_chat_completion(
            model=self._model,
            temperature=self._temperature,
            system_prompt=self._system_prompt,
            user_prompt=prompt,
            json_schema=self._json_schema_dict,
        )
        Log.debug(f"AI raw response:\n{raw_response}")

        summary = validate_and_build(self._parse_json(raw_response))
        Log.info(
            f"Analysis complete for {filename}: {len(summary.key_points)} key points, "
            f"{len(summary.important_facts)} facts"
        )
        return summary

    def _build_prompt(self, text: str, filename: str) -> str:
        if len(text) > self._max_input_chars:
            text = text[: self._max_input_chars] + TRUNCATION_MARKER
        return f'Analyze this document titled "{filename}":\n\n{text}'

    @staticmethod
    def _parse_json(raw: str) -> dict[str, object]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise AnalysisFormatError(f"Invalid JSON response: {exc}") from exc

        if not isinstance(parsed, dict):
            raise AnalysisFormatError("JSON response must be an object")
        return parsed
