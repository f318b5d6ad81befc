"""
Workout extraction from a flat Apple Health tag stream.

A workout is either a self-closing ``<Workout .../>`` tag or a block running
from ``<Workout ...>`` to the next ``</Workout>``.  The block interior is
scanned for ``<WorkoutStatistics>`` tags, whose types are folded into the
point-record metric taxonomy by :func:`normalize_statistic_type`.
"""
import logging
import re
from typing import Iterator, List, Optional, Tuple

from health_digest.config import (
    DISTANCE_METRIC,
    ENERGY_METRIC,
    STATISTIC_TYPE_RULES,
    UNKNOWN_SOURCE,
)
from health_digest.etl.attributes import extract_attribute, parse_value, safe_float
from health_digest.etl.dates import normalize_date, parse_health_datetime
from health_digest.etl.entities import SessionStatistic, WorkoutSession
from health_digest.etl.record_parser import tag_body

logger = logging.getLogger("health_digest.etl.workouts")

WORKOUT_OPEN = re.compile(r'<Workout\s((?:[^>"]|"(?:\\.|[^"\\])*")*)>')
WORKOUT_CLOSE = "</Workout>"
STATISTIC_TAG = re.compile(r'<WorkoutStatistics\s((?:[^>"]|"(?:\\.|[^"\\])*")*)>')

# durationUnit -> minutes per unit
_DURATION_UNITS = {"s": 1 / 60.0, "sec": 1 / 60.0, "min": 1.0, "h": 60.0, "hr": 60.0}


def normalize_statistic_type(raw_type: str) -> str:
    """Map an embedded statistic type onto a point-record metric identifier."""
    for needle, metric in STATISTIC_TYPE_RULES:
        if needle in raw_type:
            return metric
    return raw_type


# ---------------------------------------------------------------------------
# Block pieces
# ---------------------------------------------------------------------------

def _parse_statistics(interior: str, date_key: str, timestamp: int) -> List[SessionStatistic]:
    stats = []
    for match in STATISTIC_TAG.finditer(interior):
        attrs = tag_body(match.group(1))
        raw_type = extract_attribute(attrs, "type")
        value = extract_attribute(attrs, "value")
        if value is None:
            value = extract_attribute(attrs, "sum")
        if value is None:
            value = extract_attribute(attrs, "average")
        if not raw_type or value is None:
            continue
        stats.append(SessionStatistic(
            metric_type=normalize_statistic_type(raw_type),
            raw_type=raw_type,
            value=parse_value(value),
            date_key=date_key,
            timestamp=timestamp,
            unit=extract_attribute(attrs, "unit") or "",
        ))
    return stats


def _duration_minutes(attrs: str) -> float:
    duration = safe_float(extract_attribute(attrs, "duration"))
    if duration is not None:
        unit = extract_attribute(attrs, "durationUnit") or "min"
        return duration * _DURATION_UNITS.get(unit, 1.0)

    start = parse_health_datetime(extract_attribute(attrs, "startDate"))
    end = parse_health_datetime(extract_attribute(attrs, "endDate"))
    if start is None or end is None or (start.tzinfo is None) != (end.tzinfo is None):
        return 0.0
    return max((end - start).total_seconds() / 60.0, 0.0)


def _total(attrs: str, name: str, stats: List[SessionStatistic], metric: str) -> float:
    """Session attribute first, then the matching embedded statistic, else 0."""
    value = safe_float(extract_attribute(attrs, name))
    if value is not None:
        return value
    for stat in stats:
        if stat.metric_type == metric and stat.numeric_value is not None:
            return stat.numeric_value
    return 0.0


def parse_workout_block(attrs: str, interior: str = "") -> Optional[WorkoutSession]:
    """
    Build a :class:`WorkoutSession` from an opening tag body and the text
    between it and ``</Workout>``.  Returns None when the activity type or a
    parseable ``startDate`` is missing.
    """
    activity = extract_attribute(attrs, "workoutActivityType")
    start = normalize_date(extract_attribute(attrs, "startDate"))
    if not activity or start is None:
        return None
    start_ts, day = start

    end = normalize_date(extract_attribute(attrs, "endDate"))
    stats = _parse_statistics(interior, day, start_ts)

    return WorkoutSession(
        activity_type=activity,
        start_timestamp=start_ts,
        date_key=day,
        end_timestamp=end[0] if end else None,
        duration_minutes=_duration_minutes(attrs),
        total_energy=_total(attrs, "totalEnergyBurned", stats, ENERGY_METRIC),
        total_distance=_total(attrs, "totalDistance", stats, DISTANCE_METRIC),
        source=extract_attribute(attrs, "sourceName") or UNKNOWN_SOURCE,
        statistics=tuple(stats),
    )


# ---------------------------------------------------------------------------
# Stream scan
# ---------------------------------------------------------------------------

def iter_workout_blocks(text: str) -> Iterator[Tuple[int, str, str]]:
    """
    Yield ``(offset, attrs, interior)`` for each complete workout in ``text``.

    Scanning stops at the first opening tag with no closing marker after it,
    since no later block can be complete either.
    """
    pos = 0
    while True:
        match = WORKOUT_OPEN.search(text, pos)
        if match is None:
            return
        raw = match.group(1)
        if raw.endswith("/"):
            yield match.start(), raw[:-1], ""
            pos = match.end()
            continue
        close = text.find(WORKOUT_CLOSE, match.end())
        if close == -1:
            return
        yield match.start(), raw, text[match.end():close]
        pos = close + len(WORKOUT_CLOSE)


def iter_workout_spans(text: str) -> Iterator[Tuple[int, WorkoutSession]]:
    """Yield ``(offset, session)`` for every well-formed workout in ``text``."""
    dropped = 0
    for offset, attrs, interior in iter_workout_blocks(text):
        session = parse_workout_block(attrs, interior)
        if session is None:
            dropped += 1
            continue
        yield offset, session
    if dropped:
        logger.debug("dropped %d malformed <Workout> blocks", dropped)


def iter_workouts(text: str) -> Iterator[WorkoutSession]:
    for _, session in iter_workout_spans(text):
        yield session


def parse_workouts(text: str) -> List[WorkoutSession]:
    """Whole-list variant of :func:`iter_workouts`."""
    return list(iter_workouts(text))
