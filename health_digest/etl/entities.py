"""
Entity types produced by the extractors.

Every entity is created during one ingestion pass and never mutated
afterwards; the aggregator is the only stateful object.
"""
import math
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Tuple, Union

from health_digest.config import UNKNOWN_SOURCE

Value = Union[float, str]


def numeric(value: Value) -> Optional[float]:
    """Return ``value`` as a finite float, or None for text values."""
    if isinstance(value, float) and math.isfinite(value):
        return value
    return None


@dataclass(frozen=True)
class PointRecord:
    """One timestamped observation of a named metric."""
    type: str
    value: Value
    timestamp: int          # ms since epoch, UTC midnight of the record day
    date_key: str           # YYYY-MM-DD
    unit: Optional[str] = None
    source: str = UNKNOWN_SOURCE

    @property
    def numeric_value(self) -> Optional[float]:
        return numeric(self.value)


@dataclass(frozen=True)
class SessionStatistic:
    """A statistic embedded in a workout, keyed by its normalized metric type."""
    metric_type: str
    raw_type: str
    value: Value
    date_key: str
    timestamp: int
    unit: str = ""

    @property
    def numeric_value(self) -> Optional[float]:
        return numeric(self.value)


@dataclass(frozen=True)
class WorkoutSession:
    activity_type: str
    start_timestamp: int
    date_key: str
    end_timestamp: Optional[int] = None
    duration_minutes: float = 0.0
    total_energy: float = 0.0
    total_distance: float = 0.0
    source: str = UNKNOWN_SOURCE
    statistics: Tuple[SessionStatistic, ...] = ()


class SampledValue(NamedTuple):
    date_key: str
    value: float
    timestamp: int


@dataclass
class MetricAggregate:
    """
    Running statistics for one metric type plus its sampling reservoir.

    ``min``/``max`` hold the +inf/-inf sentinels until a numeric value is
    observed; :meth:`finalized` replaces them with 0 for external use.
    """
    count: int = 0
    sum: float = 0.0
    min: float = math.inf
    max: float = -math.inf
    unit: Optional[str] = None
    source: Optional[str] = None
    sampled_values: List[SampledValue] = field(default_factory=list)

    @property
    def average(self) -> float:
        return self.sum / self.count if self.count else 0.0

    def finalized(self) -> "MetricAggregate":
        return MetricAggregate(
            count=self.count,
            sum=self.sum,
            min=self.min if math.isfinite(self.min) else 0.0,
            max=self.max if math.isfinite(self.max) else 0.0,
            unit=self.unit,
            source=self.source,
            sampled_values=list(self.sampled_values),
        )

    def to_dict(self) -> dict:
        final = self.finalized()
        return {
            "count": final.count,
            "sum": final.sum,
            "min": final.min,
            "max": final.max,
            "unit": final.unit,
            "source": final.source,
            "values": [
                {"date": s.date_key, "value": s.value, "timestamp": s.timestamp}
                for s in final.sampled_values
            ],
        }


class WaveformSample(NamedTuple):
    time: Optional[float]
    value: Optional[float]


@dataclass(frozen=True)
class Waveform:
    """An ECG recording read from a single waveform document."""
    timestamp: Optional[str] = None
    heart_rate: Optional[float] = None
    classification: Optional[str] = None
    sample_rate: Optional[float] = None
    samples: Tuple[WaveformSample, ...] = ()


class TrackPoint(NamedTuple):
    lat: float              # nan when unparseable
    lon: float              # nan when unparseable
    elevation: Optional[float] = None
    time: Optional[str] = None
    speed: Optional[float] = None
