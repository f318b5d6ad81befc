import pytest

from conftest import workout_xml

from health_digest.config import DISTANCE_METRIC, ENERGY_METRIC, HEART_RATE_METRIC
from health_digest.etl.workout_parser import (
    iter_workout_blocks,
    normalize_statistic_type,
    parse_workouts,
)


@pytest.mark.parametrize("raw, expected", [
    ("HKQuantityTypeIdentifierDistanceWalkingRunning", DISTANCE_METRIC),
    ("HKQuantityTypeIdentifierDistanceCycling", DISTANCE_METRIC),
    ("HKQuantityTypeIdentifierActiveEnergyBurned", ENERGY_METRIC),
    ("HKQuantityTypeIdentifierHeartRate", HEART_RATE_METRIC),
    ("HKQuantityTypeIdentifierStepCount", "HKQuantityTypeIdentifierStepCount"),
])
def test_normalize_statistic_type(raw, expected):
    assert normalize_statistic_type(raw) == expected


def test_normalization_priority_distance_first():
    # a name matching several rules takes the first one
    assert normalize_statistic_type("DistanceEnergyHeartRate") == DISTANCE_METRIC
    assert normalize_statistic_type("EnergyHeartRate") == ENERGY_METRIC


def test_workout_session_fields():
    text = workout_xml(
        "HKWorkoutActivityTypeRunning",
        "2023-09-08 06:00:00 +0200", "2023-09-08 06:45:00 +0200",
        stats=[("HKQuantityTypeIdentifierDistanceWalkingRunning", 5000, "m")],
        duration="45", durationUnit="min", totalEnergyBurned="410",
        totalDistance="5", sourceName="Apple Watch",
    )
    [w] = parse_workouts(text)
    assert w.activity_type == "HKWorkoutActivityTypeRunning"
    assert w.date_key == "2023-09-08"
    assert w.start_timestamp == 1694131200000
    assert w.end_timestamp == 1694131200000
    assert w.duration_minutes == 45.0
    assert w.total_energy == 410.0
    assert w.total_distance == 5.0
    assert w.source == "Apple Watch"

    [stat] = w.statistics
    assert stat.metric_type == DISTANCE_METRIC
    assert stat.raw_type == "HKQuantityTypeIdentifierDistanceWalkingRunning"
    assert stat.value == 5000.0
    assert stat.unit == "m"
    assert stat.date_key == "2023-09-08"


def test_duration_from_seconds_and_from_dates():
    in_seconds = workout_xml("Cycling", "2023-01-01 10:00:00 +0000",
                             duration="1800", durationUnit="s")
    from_dates = workout_xml("Cycling", "2023-01-01 10:00:00 +0000",
                             "2023-01-01 11:30:00 +0000")
    a, b = parse_workouts(in_seconds + from_dates)
    assert a.duration_minutes == pytest.approx(30.0)
    assert b.duration_minutes == pytest.approx(90.0)


def test_totals_default_to_zero_or_statistics():
    text = workout_xml("Walking", "2023-01-01 10:00:00 +0000",
                       stats=[("HKQuantityTypeIdentifierActiveEnergyBurned", 120, "kcal")])
    [w] = parse_workouts(text)
    assert w.total_energy == 120.0
    assert w.total_distance == 0.0


def test_statistic_sum_fallback():
    text = (
        '<Workout workoutActivityType="Running" startDate="2023-01-01 10:00:00 +0000">\n'
        '  <WorkoutStatistics type="HKQuantityTypeIdentifierDistanceWalkingRunning" '
        'sum="4.2" unit="km"/>\n'
        '  <WorkoutStatistics type="HKQuantityTypeIdentifierHeartRate" '
        'average="141" minimum="98" maximum="170" unit="count/min"/>\n'
        '  <WorkoutStatistics unit="count"/>\n'
        '</Workout>\n'
    )
    [w] = parse_workouts(text)
    assert [(s.metric_type, s.value) for s in w.statistics] == [
        (DISTANCE_METRIC, 4.2),
        (HEART_RATE_METRIC, 141.0),
    ]


def test_invalid_workouts_are_dropped():
    text = (
        '<Workout startDate="2023-01-01 10:00:00 +0000"></Workout>'
        '<Workout workoutActivityType="Yoga"></Workout>'
        '<Workout workoutActivityType="Yoga" startDate="soon"></Workout>'
        '<Workout workoutActivityType="Swim" startDate="2023-01-02 10:00:00 +0000"></Workout>'
    )
    assert [w.activity_type for w in parse_workouts(text)] == ["Swim"]


def test_self_closing_workout():
    text = ('<Workout workoutActivityType="Yoga" startDate="2023-01-01 10:00:00 +0000" '
            'endDate="2023-01-01 10:20:00 +0000"/>')
    [w] = parse_workouts(text)
    assert w.statistics == ()
    assert w.duration_minutes == pytest.approx(20.0)


def test_unclosed_block_stops_scan():
    closed = workout_xml("Run", "2023-01-01 10:00:00 +0000")
    unclosed = '<Workout workoutActivityType="Run" startDate="2023-01-02 10:00:00 +0000">\n'
    blocks = list(iter_workout_blocks(closed + unclosed))
    assert len(blocks) == 1


def test_children_with_workout_prefix_are_not_blocks():
    text = ('<WorkoutEvent type="HKWorkoutEventTypeSegment" date="2023-01-01"/>'
            '<WorkoutRoute sourceName="x"></WorkoutRoute>')
    assert parse_workouts(text) == []
