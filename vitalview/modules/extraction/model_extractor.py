"""Vision-language extractor: ask a hosted multimodal model to read the monitor."""

from __future__ import annotations

import json
import math
from typing import Any, Mapping, Sequence

import httpx
import structlog

from vitalview.modules.extraction.image import InvalidImage, to_data_uri
from vitalview.modules.extraction.models import (
    ROI,
    ExtractionFailed,
    ExtractionOutcome,
    RawExtraction,
    Reading,
)
from vitalview.shared.constants import ExtractorSource, VitalLabel

log = structlog.get_logger(__name__)

PROMPT_TEMPLATE = """You are analyzing a medical patient monitor display. Extract the exact numerical values for the following vital signs from their specific screen locations:

{rois}

CRITICAL INSTRUCTIONS:
- Return ONLY a valid JSON object, no explanations or markdown
- Extract ONLY the numeric values you can clearly see
- For blood pressure readings (ABP, PAP), return as "systolic/diastolic/mean" format (e.g., "120/80/93")
- If a value is not clearly visible, use null

Return JSON format:
{{
  "HR": number or null,
  "Pulse": number or null,
  "SpO2": number or null,
  "ABP": "sys/dia/mean" or null,
  "PAP": "sys/dia/mean" or null,
  "EtCO2": number or null,
  "awRR": number or null
}}"""


def build_prompt(rois: Sequence[ROI]) -> str:
    return PROMPT_TEMPLATE.format(rois="\n".join(roi.describe() for roi in rois))


def find_json_object(text: str) -> dict[str, Any] | None:
    """Return the first top-level ``{...}`` block in ``text`` that parses as a JSON object."""
    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        if end is None:
            return None
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", end + 1)
    return None


def _matching_brace(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def coerce_reading(label: VitalLabel, value: object) -> Reading:
    """Narrow an untrusted JSON value to the internal reading type for ``label``."""
    if value is None or isinstance(value, bool):
        return None
    if label.is_composite:
        if isinstance(value, (int, float)) and math.isfinite(value):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def coerce_readings(payload: Mapping[str, Any]) -> dict[str, Reading]:
    readings: dict[str, Reading] = {}
    for key, value in payload.items():
        label = VitalLabel.parse(key)
        if label is None:
            continue
        readings[label.value] = coerce_reading(label, value)
    return readings


def _message_text(data: Any) -> str | None:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [part.get("text", "") for part in content if isinstance(part, dict)]
        return "".join(parts) or None
    return None


class ModelRegionExtractor:
    """Region extractor backed by an OpenAI-compatible chat-completions vision endpoint."""

    source = ExtractorSource.MODEL

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        model: str,
        max_tokens: int = 500,
        timeout_seconds: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout_seconds
        self._client = client

    async def extract(self, image: bytes | str, rois: Sequence[ROI]) -> ExtractionOutcome:
        if not self._api_key:
            log.warning("vision api key not set, skipping model extraction")
            return ExtractionFailed(self.source, "missing credentials")

        try:
            image_url = to_data_uri(image)
        except InvalidImage as exc:
            return ExtractionFailed(self.source, str(exc))

        try:
            data = await self._post(self._build_request(image_url, rois))
        except httpx.HTTPStatusError as exc:
            log.warning(
                "vision api returned error status",
                status_code=exc.response.status_code,
                body=exc.response.text[:500],
            )
            return ExtractionFailed(self.source, f"http {exc.response.status_code}")
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("vision api request failed", error=str(exc))
            return ExtractionFailed(self.source, f"request failed: {exc}")

        text = _message_text(data)
        if text is None:
            return ExtractionFailed(self.source, "no content in response")
        log.debug("vision api raw response", text=text)

        payload = find_json_object(text)
        if payload is None:
            log.warning("vision api response had no json object", text=text[:500])
            return ExtractionFailed(self.source, "no json object in response")
        return RawExtraction(self.source, coerce_readings(payload))

    def _build_request(self, image_url: str, rois: Sequence[ROI]) -> dict[str, Any]:
        return {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": 0.1,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(rois)},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
        }

    async def _post(self, body: dict[str, Any]) -> Any:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if self._client is not None:
            response = await self._client.post(self._api_url, json=body, headers=headers)
            response.raise_for_status()
            return response.json()
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(self._api_url, json=body, headers=headers)
            response.raise_for_status()
            return response.json()
