from datetime import datetime

from pydantic import AliasChoices, Field

from vitalview.modules.extraction.models import ROI
from vitalview.modules.extraction.rois import DEFAULT_MONITOR_ROIS
from vitalview.shared.constants import VitalSource
from vitalview.shared.schemas import CamelModel


class ExtractionRequest(CamelModel):
    """Frame to read; ``image_base64`` may be a bare base64 string or a data URI."""

    image_base64: str = Field(
        min_length=1, validation_alias=AliasChoices("imageBase64", "image_base64", "image")
    )
    rois: list[ROI] = Field(default_factory=lambda: list(DEFAULT_MONITOR_ROIS))


class FrameRequest(ExtractionRequest):
    """Frame captured for a patient; runs the full monitoring cycle."""

    patient_id: int
    source: VitalSource = VitalSource.CAMERA
    captured_at: datetime | None = None


class ExtractionResponse(CamelModel):
    vitals: dict[str, float | str | None]
    failures: dict[str, str] = Field(default_factory=dict)
