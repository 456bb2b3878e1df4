from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, Sequence

import structlog

from vitalview.modules.extraction.fusion import FusionSelector
from vitalview.modules.extraction.models import (
    ROI,
    ExtractionFailed,
    ExtractionOutcome,
    Reading,
)
from vitalview.shared.constants import ExtractorSource

log = structlog.get_logger(__name__)


class RegionExtractor(Protocol):
    source: ExtractorSource

    async def extract(self, image: bytes | str, rois: Sequence[ROI]) -> ExtractionOutcome: ...


@dataclass(frozen=True)
class FusionResult:
    vitals: dict[str, Reading]
    model: ExtractionOutcome
    pattern: ExtractionOutcome


class ExtractionCoordinator:
    """Run both extractors side by side, each under its own timeout, then fuse."""

    def __init__(
        self,
        model_extractor: RegionExtractor,
        pattern_extractor: RegionExtractor,
        fusion: FusionSelector,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._model = model_extractor
        self._pattern = pattern_extractor
        self._fusion = fusion
        self._timeout = timeout_seconds

    async def extract(self, image: bytes | str, rois: Sequence[ROI]) -> FusionResult:
        model_outcome, pattern_outcome = await asyncio.gather(
            self._run(self._model, image, rois),
            self._run(self._pattern, image, rois),
        )
        log.info(
            "extraction settled",
            model=_describe(model_outcome),
            pattern=_describe(pattern_outcome),
        )
        return FusionResult(
            vitals=self._fusion.select(model_outcome, pattern_outcome),
            model=model_outcome,
            pattern=pattern_outcome,
        )

    async def _run(
        self, extractor: RegionExtractor, image: bytes | str, rois: Sequence[ROI]
    ) -> ExtractionOutcome:
        try:
            return await asyncio.wait_for(extractor.extract(image, rois), self._timeout)
        except asyncio.TimeoutError:
            log.warning("extractor timed out", source=extractor.source.value, timeout=self._timeout)
            return ExtractionFailed(extractor.source, "timeout")
        except Exception as exc:
            log.exception("extractor raised", source=extractor.source.value)
            return ExtractionFailed(extractor.source, str(exc) or exc.__class__.__name__)


def _describe(outcome: ExtractionOutcome) -> object:
    if isinstance(outcome, ExtractionFailed):
        return {"failed": outcome.reason}
    return dict(outcome.values)
