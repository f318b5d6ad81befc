import math

import pytest

from health_digest.etl.ecg_parser import extract_waveform
from health_digest.etl.entities import TrackPoint
from health_digest.etl.gpx_parser import extract_track_points, summarize_track
from health_digest.pipeline import extract_derived

ECG_DOC = """<?xml version="1.0" encoding="UTF-8"?>
<ElectrocardiogramData timestamp="2023-09-08T07:00:00Z" heartRate="68"
    classification="SinusRhythm" sampleRate="512">
  <Sample time="0.000" value="12.5"/>
  <Sample time="0.002" value="-3.25"/>
  <Sample time="0.004">7</Sample>
</ElectrocardiogramData>
"""

GPX_DOC = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="Apple Health Export">
 <trk><name>Route 2023-09-08</name><trkseg>
  <trkpt lon="-122.4194" lat="37.7749"><ele>10.0</ele><time>2023-09-08T06:00:00Z</time>
    <extensions><speed>2.5</speed></extensions></trkpt>
  <trkpt lon="-122.4184" lat="37.7759"><ele>14.5</ele><time>2023-09-08T06:01:00Z</time>
    <extensions><speed>3.5</speed></extensions></trkpt>
  <trkpt lon="-122.4174" lat="37.7769"><ele>12.0</ele><time>2023-09-08T06:02:00Z</time>
    <extensions><speed>3.0</speed></extensions></trkpt>
 </trkseg></trk>
</gpx>
"""


# ---------------------------------------------------------------------------
# ECG
# ---------------------------------------------------------------------------

def test_waveform_fields():
    w = extract_waveform(ECG_DOC)
    assert w.timestamp == "2023-09-08T07:00:00Z"
    assert w.heart_rate == 68.0
    assert w.classification == "SinusRhythm"
    assert w.sample_rate == 512.0
    assert [tuple(s) for s in w.samples] == [(0.0, 12.5), (0.002, -3.25), (0.004, 7.0)]


def test_waveform_fallback_attributes():
    w = extract_waveform('<ECG recordingDate="2023-01-01" hr="71"></ECG>')
    assert w.timestamp == "2023-01-01"
    assert w.heart_rate == 71.0
    assert w.classification is None
    assert w.samples == ()


def test_self_closing_waveform_has_no_samples():
    doc = '<Electrocardiogram heartRate="60"/>\n<Sample time="1" value="2"/>'
    w = extract_waveform(doc)
    assert w.heart_rate == 60.0
    assert w.samples == ()


def test_document_without_waveform():
    assert extract_waveform("<HealthData></HealthData>") is None
    assert extract_waveform("") is None


def test_unparseable_sample_values_are_none():
    w = extract_waveform('<ECG><Sample time="x" value="y"/></ECG>')
    assert w.samples[0].time is None
    assert w.samples[0].value is None


# ---------------------------------------------------------------------------
# GPX
# ---------------------------------------------------------------------------

def test_track_points():
    points = extract_track_points(GPX_DOC)
    assert len(points) == 3
    first = points[0]
    assert (first.lat, first.lon) == (37.7749, -122.4194)
    assert first.elevation == 10.0
    assert first.time == "2023-09-08T06:00:00Z"
    assert first.speed == 2.5


def test_self_closing_track_point():
    [p] = extract_track_points('<trkpt lat="1.5" lon="2.5"/>')
    assert (p.lat, p.lon, p.elevation, p.time, p.speed) == (1.5, 2.5, None, None, None)


def test_bad_coordinates_become_nan():
    [p] = extract_track_points('<trkpt lat="north" lon="2.5"><ele>1</ele></trkpt>')
    assert math.isnan(p.lat)
    assert p.lon == 2.5
    assert p.elevation == 1.0


def test_summarize_track():
    route = summarize_track(extract_track_points(GPX_DOC))
    assert route.n_points == 3
    assert route.duration_min == 2.0
    assert route.elevation_gain_m == 4.0
    assert route.avg_speed_kmh == pytest.approx(10.8)
    assert 0.2 < route.distance_km < 0.35
    assert route.start_time == "2023-09-08T06:00:00Z"


def test_summarize_track_skips_nan_points():
    points = [
        TrackPoint(0.0, 0.0, time="2023-01-01T00:00:00Z"),
        TrackPoint(math.nan, 0.5),
        TrackPoint(0.0, 0.01, time="2023-01-01T00:10:00Z"),
    ]
    route = summarize_track(points)
    assert route.n_points == 2
    assert route.distance_km == pytest.approx(1.11, abs=0.01)
    assert route.avg_speed_kmh == pytest.approx(6.7, abs=0.1)


def test_summarize_short_track():
    assert summarize_track([]) is None
    assert summarize_track([TrackPoint(1.0, 1.0), TrackPoint(math.nan, 1.0)]) is None


# ---------------------------------------------------------------------------
# Concurrent extraction
# ---------------------------------------------------------------------------

def test_extract_derived_collects_all_documents():
    ecgs = {f"electrocardiograms/ecg_{i}.xml": ECG_DOC for i in (3, 1, 2)}
    ecgs["electrocardiograms/empty.xml"] = "<nothing/>"
    routes = {"workout-routes/route_b.gpx": GPX_DOC, "workout-routes/route_a.gpx": GPX_DOC}

    waveforms, tracks = extract_derived(ecgs, routes, max_workers=3)
    assert list(waveforms) == [f"electrocardiograms/ecg_{i}.xml" for i in (1, 2, 3)]
    assert list(tracks) == ["workout-routes/route_a.gpx", "workout-routes/route_b.gpx"]
    assert all(len(points) == 3 for points in tracks.values())


def test_extract_derived_nothing_to_do():
    assert extract_derived({}, {}) == ({}, {})
