from dataclasses import dataclass, field
from typing import Mapping, Union

from pydantic import AliasChoices, Field

from vitalview.shared.constants import ExtractorSource
from vitalview.shared.schemas import FrozenCamelModel

Reading = Union[float, str, None]


class ROI(FrozenCamelModel):
    """Normalized (0-1) rectangle locating one vital on the monitor image."""

    label: str
    x: float = Field(ge=0, le=1)
    y: float = Field(ge=0, le=1)
    width: float = Field(ge=0, le=1, validation_alias=AliasChoices("width", "w"))
    height: float = Field(ge=0, le=1, validation_alias=AliasChoices("height", "h"))
    unit: str | None = None

    def describe(self) -> str:
        text = (
            f"{self.label}: located at coordinates ({self.x * 100:.0f}%, {self.y * 100:.0f}%) "
            f"with dimensions {self.width * 100:.0f}% x {self.height * 100:.0f}%"
        )
        if self.unit:
            text += f", unit: {self.unit}"
        return text

    def to_pixels(self, image_width: int, image_height: int) -> tuple[int, int, int, int]:
        """Return (left, top, width, height) in absolute pixels, floored."""
        return (
            int(self.x * image_width),
            int(self.y * image_height),
            int(self.width * image_width),
            int(self.height * image_height),
        )


@dataclass(frozen=True)
class RawExtraction:
    """Validated per-label readings from one extractor; None means not visible."""

    source: ExtractorSource
    values: Mapping[str, Reading] = field(default_factory=dict)


@dataclass(frozen=True)
class ExtractionFailed:
    """The extractor produced no usable result at all."""

    source: ExtractorSource
    reason: str


ExtractionOutcome = Union[RawExtraction, ExtractionFailed]


def values_of(outcome: ExtractionOutcome | None) -> Mapping[str, Reading]:
    if isinstance(outcome, RawExtraction):
        return outcome.values
    return {}
