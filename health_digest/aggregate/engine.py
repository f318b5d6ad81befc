"""
Incremental aggregation of point records and workouts.

One :class:`HealthAggregator` lives for exactly one ingestion call.  Every
entity is folded in O(1): running count/sum/min/max per metric type, a
bounded sampling reservoir for charting, the set of days seen, and the
workouts-per-day index.
"""
from typing import Dict, Iterable, List, Optional, Set, Union

from health_digest.config import (
    RECORD_SAMPLING,
    WORKOUT_SAMPLING,
    WORKOUT_STATS_SOURCE,
    SamplingPolicy,
)
from health_digest.etl.entities import (
    MetricAggregate,
    PointRecord,
    SampledValue,
    SessionStatistic,
    Value,
    WorkoutSession,
    numeric,
)

Entity = Union[PointRecord, WorkoutSession, SessionStatistic]


class HealthAggregator:
    """
    Running state for one ingestion pass.

    All summary statistics are exact; only ``sampled_values`` is thinned by
    the sampling policies.
    """

    def __init__(self,
                 record_sampling: SamplingPolicy = RECORD_SAMPLING,
                 workout_sampling: SamplingPolicy = WORKOUT_SAMPLING):
        self.record_sampling = record_sampling
        self.workout_sampling = workout_sampling

        self.total_records = 0
        self.total_workouts = 0
        self.metrics: Dict[str, MetricAggregate] = {}
        self.workouts_by_date: Dict[str, int] = {}
        self.dates: Set[str] = set()
        self.min_timestamp: Optional[int] = None
        self.max_timestamp: Optional[int] = None

    # ---- entities ----

    def ingest(self, entity: Entity) -> None:
        if isinstance(entity, PointRecord):
            self._add_record(entity)
        elif isinstance(entity, WorkoutSession):
            self._add_workout(entity)
        elif isinstance(entity, SessionStatistic):
            # a standalone statistic has no owning workout to record its day
            self._see(entity.date_key, entity.timestamp)
            self._add_statistic(entity)
        else:
            raise TypeError(f"cannot aggregate {type(entity).__name__}")

    def ingest_many(self, entities: Iterable[Entity]) -> None:
        for entity in entities:
            self.ingest(entity)

    def _add_record(self, record: PointRecord):
        self.total_records += 1
        self._see(record.date_key, record.timestamp)
        metric = self._metric(record.type, record.unit, record.source)
        self._fold(metric, record.value, record.date_key, record.timestamp,
                   self.record_sampling)

    def _add_workout(self, session: WorkoutSession):
        self.total_workouts += 1
        self._see(session.date_key, session.start_timestamp)
        day = session.date_key
        self.workouts_by_date[day] = self.workouts_by_date.get(day, 0) + 1
        for stat in session.statistics:
            self._add_statistic(stat)

    def _add_statistic(self, stat: SessionStatistic):
        metric = self._metric(stat.metric_type, stat.unit, WORKOUT_STATS_SOURCE)
        self._fold(metric, stat.value, stat.date_key, stat.timestamp,
                   self.workout_sampling)

    # ---- helpers ----

    def _see(self, day: str, timestamp: int):
        self.dates.add(day)
        if self.min_timestamp is None or timestamp < self.min_timestamp:
            self.min_timestamp = timestamp
        if self.max_timestamp is None or timestamp > self.max_timestamp:
            self.max_timestamp = timestamp

    def _metric(self, metric_type: str, unit: Optional[str], source: str) -> MetricAggregate:
        metric = self.metrics.get(metric_type)
        if metric is None:
            # unit and source are those of the first observation
            metric = MetricAggregate(unit=unit, source=source)
            self.metrics[metric_type] = metric
        return metric

    @staticmethod
    def _fold(metric: MetricAggregate, value: Value, day: str, timestamp: int,
              policy: SamplingPolicy):
        metric.count += 1
        number = numeric(value)
        if number is None:
            return
        metric.sum += number
        metric.min = min(metric.min, number)
        metric.max = max(metric.max, number)
        if policy.keeps(metric.count):
            metric.sampled_values.append(SampledValue(day, number, timestamp))

    # ---- views ----

    @property
    def metric_type_count(self) -> int:
        return len(self.metrics)

    @property
    def is_empty(self) -> bool:
        return self.total_records == 0 and self.total_workouts == 0

    def finalized_metrics(self) -> Dict[str, MetricAggregate]:
        """Copies with the +/-inf sentinels replaced by 0."""
        return {name: metric.finalized() for name, metric in self.metrics.items()}

    def sorted_dates(self) -> List[str]:
        return sorted(self.dates)
