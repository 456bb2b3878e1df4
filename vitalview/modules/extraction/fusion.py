from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from vitalview.modules.extraction.models import ExtractionOutcome, Reading, values_of
from vitalview.shared.constants import VitalLabel


@dataclass(frozen=True)
class PlausibleRange:
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


# Values outside these are treated as misreads, not as clinical findings.
PLAUSIBLE_RANGES: dict[str, PlausibleRange] = {
    VitalLabel.HR.value: PlausibleRange(30, 200),
    VitalLabel.PULSE.value: PlausibleRange(30, 200),
    VitalLabel.SPO2.value: PlausibleRange(70, 100),
    VitalLabel.ETCO2.value: PlausibleRange(10, 80),
    VitalLabel.AWRR.value: PlausibleRange(5, 40),
}


def _as_number(value: Reading) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


class FusionSelector:
    """Merge the model-based and pattern-based readings into one best-effort set."""

    def __init__(self, ranges: Mapping[str, PlausibleRange] | None = None) -> None:
        self._ranges = dict(PLAUSIBLE_RANGES if ranges is None else ranges)

    def is_plausible(self, label: str, value: Reading) -> bool:
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
        plausible = self._ranges.get(label)
        if plausible is None:
            # Composite pressures and unknown labels: presence is enough
            return True
        number = _as_number(value)
        return number is not None and plausible.contains(number)

    def select(
        self, ai_result: ExtractionOutcome | None, pattern_result: ExtractionOutcome | None
    ) -> dict[str, Reading]:
        ai_values = values_of(ai_result)
        pattern_values = values_of(pattern_result)

        labels = list(ai_values)
        labels.extend(label for label in pattern_values if label not in ai_values)

        fused: dict[str, Reading] = {}
        for label in labels:
            ai_value = ai_values.get(label)
            pattern_value = pattern_values.get(label)
            if self.is_plausible(label, ai_value):
                fused[label] = ai_value
            elif self.is_plausible(label, pattern_value):
                fused[label] = pattern_value
            elif ai_value is not None and ai_value != "":
                fused[label] = ai_value
            elif pattern_value is not None and pattern_value != "":
                fused[label] = pattern_value
            else:
                fused[label] = None
        return fused
