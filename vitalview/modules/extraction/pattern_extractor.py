"""Tesseract-based extractor: crop each ROI and read digits locally."""

from __future__ import annotations

import asyncio
import io
import re
from typing import Sequence

import pytesseract
import structlog
from PIL import Image

from vitalview.modules.extraction.image import decode_image
from vitalview.modules.extraction.models import (
    ROI,
    ExtractionFailed,
    ExtractionOutcome,
    RawExtraction,
    Reading,
)
from vitalview.shared.constants import ExtractorSource

log = structlog.get_logger(__name__)

# Single text line, digits and the blood-pressure separator only
TESSERACT_CONFIG = "--psm 7 -c tessedit_char_whitelist=0123456789/"
_NOT_DIGIT_OR_SLASH = re.compile(r"[^0-9/]")


def clean_text(text: str) -> str:
    return _NOT_DIGIT_OR_SLASH.sub("", text)


class PatternRegionExtractor:
    """Region extractor that runs Tesseract over each ROI crop."""

    source = ExtractorSource.PATTERN

    def __init__(self, tesseract_cmd: str | None = None, config: str = TESSERACT_CONFIG) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self._config = config

    async def extract(self, image: bytes | str, rois: Sequence[ROI]) -> ExtractionOutcome:
        try:
            return await asyncio.to_thread(self._extract_sync, image, list(rois))
        except Exception as exc:
            log.warning("pattern extraction failed", error=str(exc))
            return ExtractionFailed(self.source, str(exc) or exc.__class__.__name__)

    def _extract_sync(self, image: bytes | str, rois: list[ROI]) -> RawExtraction:
        with Image.open(io.BytesIO(decode_image(image))) as opened:
            frame = opened.convert("RGB")
        frame_width, frame_height = frame.size

        results: dict[str, Reading] = {}
        for roi in rois:
            left, top, width, height = roi.to_pixels(frame_width, frame_height)
            if width <= 0 or height <= 0:
                continue
            try:
                crop = frame.crop((left, top, left + width, top + height))
                text = pytesseract.image_to_string(crop, config=self._config)
            except pytesseract.TesseractNotFoundError:
                raise
            except Exception as exc:
                log.warning("roi recognition failed", label=roi.label, error=str(exc))
                continue
            results[roi.label] = clean_text(text) or None
        return RawExtraction(self.source, results)
