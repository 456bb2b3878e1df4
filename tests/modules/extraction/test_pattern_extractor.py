import base64
import io
from typing import Any

import pytest
import pytesseract
from PIL import Image

from vitalview.modules.extraction.models import ROI, ExtractionFailed, RawExtraction
from vitalview.modules.extraction.pattern_extractor import (
    TESSERACT_CONFIG,
    PatternRegionExtractor,
    clean_text,
)
from vitalview.shared.constants import ExtractorSource


def _frame_base64(width: int = 200, height: int = 100) -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color="black").save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


class _FakeTesseract:
    def __init__(self, replies: list[Any]) -> None:
        self.replies = list(replies)
        self.sizes: list[tuple[int, int]] = []
        self.configs: list[str] = []

    def __call__(self, image: Image.Image, config: str = "") -> str:
        self.sizes.append(image.size)
        self.configs.append(config)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def test_clean_text_keeps_digits_and_slash() -> None:
    assert clean_text(" 120/80 (93)\n") == "120/8093"
    assert clean_text("SpO2 98%") == "298"
    assert clean_text("--") == ""


@pytest.mark.asyncio
async def test_extract_crops_each_region(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _FakeTesseract(["72\n", "120/80/93 "])
    monkeypatch.setattr(pytesseract, "image_to_string", fake)
    rois = [
        ROI(label="HR", x=0.5, y=0.0, width=0.25, height=0.5),
        ROI(label="ABP", x=0.0, y=0.5, width=0.5, height=0.5),
    ]

    outcome = await PatternRegionExtractor().extract(_frame_base64(), rois)

    assert outcome == RawExtraction(ExtractorSource.PATTERN, {"HR": "72", "ABP": "120/80/93"})
    assert fake.sizes == [(50, 50), (100, 50)]
    assert fake.configs == [TESSERACT_CONFIG, TESSERACT_CONFIG]


@pytest.mark.asyncio
async def test_zero_size_region_is_skipped(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _FakeTesseract(["98"])
    monkeypatch.setattr(pytesseract, "image_to_string", fake)
    rois = [
        ROI(label="HR", x=0.1, y=0.1, width=0.001, height=0.2),
        ROI(label="SpO2", x=0.1, y=0.1, width=0.2, height=0.2),
    ]

    outcome = await PatternRegionExtractor().extract(_frame_base64(), rois)

    assert isinstance(outcome, RawExtraction)
    assert outcome.values == {"SpO2": "98"}


@pytest.mark.asyncio
async def test_unreadable_region_does_not_spoil_the_rest(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _FakeTesseract([RuntimeError("ocr crashed"), "---", "16"])
    monkeypatch.setattr(pytesseract, "image_to_string", fake)
    rois = [
        ROI(label="HR", x=0.0, y=0.0, width=0.3, height=0.3),
        ROI(label="EtCO2", x=0.3, y=0.0, width=0.3, height=0.3),
        ROI(label="awRR", x=0.6, y=0.0, width=0.3, height=0.3),
    ]

    outcome = await PatternRegionExtractor().extract(_frame_base64(), rois)

    assert isinstance(outcome, RawExtraction)
    assert outcome.values == {"EtCO2": None, "awRR": "16"}


@pytest.mark.asyncio
async def test_missing_tesseract_binary_fails_the_whole_read(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _FakeTesseract([pytesseract.TesseractNotFoundError()])
    monkeypatch.setattr(pytesseract, "image_to_string", fake)

    outcome = await PatternRegionExtractor().extract(
        _frame_base64(), [ROI(label="HR", x=0.0, y=0.0, width=0.5, height=0.5)]
    )

    assert isinstance(outcome, ExtractionFailed)
    assert outcome.source == ExtractorSource.PATTERN


@pytest.mark.asyncio
async def test_undecodable_image_is_a_failure() -> None:
    outcome = await PatternRegionExtractor().extract(
        base64.b64encode(b"definitely not an image").decode(),
        [ROI(label="HR", x=0.0, y=0.0, width=0.5, height=0.5)],
    )

    assert isinstance(outcome, ExtractionFailed)
