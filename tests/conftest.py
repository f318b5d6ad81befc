import sys
import zipfile
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so tests can import the package
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def record_xml(rtype, value, end_date, unit="count", source="Watch", start_date=None):
    start_date = start_date or end_date
    return (f'<Record type="{rtype}" sourceName="{source}" unit="{unit}" '
            f'creationDate="{end_date}" startDate="{start_date}" '
            f'endDate="{end_date}" value="{value}"/>\n')


def workout_xml(activity, start_date, end_date=None, stats=(), **attrs):
    end_date = end_date or start_date
    extra = "".join(f' {k}="{v}"' for k, v in attrs.items())
    body = "".join(
        f'  <WorkoutStatistics type="{t}" startDate="{start_date}" '
        f'endDate="{end_date}" value="{v}" unit="{u}"/>\n'
        for t, v, u in stats
    )
    return (f'<Workout workoutActivityType="{activity}" startDate="{start_date}" '
            f'endDate="{end_date}"{extra}>\n{body}</Workout>\n')


def export_xml(*elements):
    return ('<?xml version="1.0" encoding="UTF-8"?>\n<HealthData locale="en_US">\n'
            + "".join(elements) + "</HealthData>\n")


@pytest.fixture
def sample_export():
    """Three records and a running workout with embedded statistics."""
    return export_xml(
        record_xml("HeartRate", 72, "2023-09-08 07:12:58 +0200", unit="count/min"),
        record_xml("HeartRate", 150, "2023-09-08 18:30:00 +0200", unit="count/min"),
        record_xml("StepCount", 500, "2023-09-09 10:00:00 +0200"),
        workout_xml(
            "HKWorkoutActivityTypeRunning",
            "2023-09-08 06:00:00 +0200", "2023-09-08 06:30:00 +0200",
            stats=[("HKQuantityTypeIdentifierDistanceWalkingRunning", 5000, "m"),
                   ("HKQuantityTypeIdentifierActiveEnergyBurned", 320, "kcal")],
            duration="30", durationUnit="min",
        ),
    )


@pytest.fixture
def make_zip(tmp_path):
    def _make(members, name="export.zip"):
        path = tmp_path / name
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for member, content in members.items():
                zf.writestr(member, content)
        return path
    return _make
