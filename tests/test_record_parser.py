from conftest import record_xml

from health_digest.config import UNKNOWN_SOURCE
from health_digest.etl.dates import date_key, normalize_date, parse_day_timestamp
from health_digest.etl.entities import PointRecord, WorkoutSession
from health_digest.etl.record_parser import iter_point_records, parse_point_records


def test_parse_day_timestamp_drops_time_and_offset():
    # 23:30 at -0800 is already the next day in UTC; the printed day wins
    ts = parse_day_timestamp("2023-09-08 23:30:00 -0800")
    assert ts == parse_day_timestamp("2023-09-08 00:00:01 +1400")
    assert date_key(ts) == "2023-09-08"
    assert ts == 1694131200000


def test_unparseable_dates():
    assert parse_day_timestamp(None) is None
    assert parse_day_timestamp("") is None
    assert parse_day_timestamp("yesterday") is None
    assert parse_day_timestamp("2023-13-45 10:00:00 +0000") is None


def test_normalize_date_pair():
    assert normalize_date("2023-09-09 10:00:00 +0200") == (1694217600000, "2023-09-09")


def test_record_fields():
    text = record_xml("HKQuantityTypeIdentifierHeartRate", 72,
                      "2023-09-08 07:12:58 +0200", unit="count/min", source="Apple Watch")
    [rec] = parse_point_records(text)
    assert rec.type == "HKQuantityTypeIdentifierHeartRate"
    assert rec.value == 72.0
    assert rec.numeric_value == 72.0
    assert rec.unit == "count/min"
    assert rec.source == "Apple Watch"
    assert rec.date_key == "2023-09-08"
    assert rec.timestamp == 1694131200000


def test_end_date_is_authoritative():
    text = record_xml("Steps", 10, "2023-09-09 00:10:00 +0000",
                      start_date="2023-09-08 23:50:00 +0000")
    [rec] = parse_point_records(text)
    assert rec.date_key == "2023-09-09"


def test_source_defaults_to_unknown():
    text = '<Record type="X" value="1" endDate="2023-01-01 00:00:00 +0000"/>'
    [rec] = parse_point_records(text)
    assert rec.source == UNKNOWN_SOURCE
    assert rec.unit is None


def test_entity_defaults_share_unknown_source():
    record = PointRecord(type="X", value=1.0, timestamp=0, date_key="1970-01-01")
    workout = WorkoutSession(activity_type="Run", start_timestamp=0, date_key="1970-01-01")
    assert record.source == workout.source == UNKNOWN_SOURCE


def test_malformed_records_are_dropped():
    text = (
        '<Record value="1" endDate="2023-01-01 00:00:00 +0000"/>'
        '<Record type="X" endDate="2023-01-01 00:00:00 +0000"/>'
        '<Record type="X" value="1"/>'
        '<Record type="X" value="1" endDate="not a date"/>'
        '<Record type="X" value="2" endDate="2023-01-01 00:00:00 +0000"/>'
    )
    records = parse_point_records(text)
    assert [r.value for r in records] == [2.0]


def test_non_numeric_value_kept_as_text():
    text = record_xml("HKCategoryTypeIdentifierSleepAnalysis",
                      "HKCategoryValueSleepAnalysisInBed", "2023-01-01 00:00:00 +0000")
    [rec] = parse_point_records(text)
    assert rec.value == "HKCategoryValueSleepAnalysisInBed"
    assert rec.numeric_value is None


def test_record_with_metadata_children():
    text = (
        '<Record type="HKQuantityTypeIdentifierHeartRate" unit="count/min" '
        'endDate="2023-01-02 08:00:00 +0000" value="64">\n'
        '  <MetadataEntry key="HKMetadataKeyHeartRateMotionContext" value="1"/>\n'
        '</Record>\n'
    )
    [rec] = parse_point_records(text)
    assert rec.value == 64.0
    assert rec.date_key == "2023-01-02"


def test_iteration_is_lazy_and_ordered():
    text = "".join(record_xml("X", i, "2023-01-0%d 00:00:00 +0000" % (i + 1)) for i in range(3))
    it = iter_point_records(text)
    assert next(it).value == 0.0
    assert [r.value for r in it] == [1.0, 2.0]
