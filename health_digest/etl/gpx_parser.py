"""
GPX route parser.
Extracts track points from workout-route documents and rolls a route up into
distance, duration, elevation gain, and speed.
"""
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import numpy as np

from health_digest.etl.attributes import extract_attribute, safe_float
from health_digest.etl.entities import TrackPoint

TRKPT_TAG = re.compile(
    r'<trkpt(\s(?:[^>"/]|/(?!>)|"(?:\\.|[^"\\])*")*)?(?:/>|>(.*?)</trkpt>)', re.S)


def _child_text(body: str, tag: str) -> Optional[str]:
    match = re.search(rf"<{tag}(?:\s[^>]*)?>(.*?)</{tag}>", body, re.S)
    if match is None:
        return None
    return match.group(1).strip()


def _coordinate(raw: Optional[str]) -> float:
    # Unparseable coordinates stay in the track as nan.
    value = safe_float(raw)
    return math.nan if value is None else value


def extract_track_points(text: str) -> List[TrackPoint]:
    """Every ``<trkpt>`` of a GPX document, in document order."""
    points = []
    for match in TRKPT_TAG.finditer(text):
        attrs = match.group(1) or ""
        body = match.group(2) or ""
        points.append(TrackPoint(
            lat=_coordinate(extract_attribute(attrs, "lat")),
            lon=_coordinate(extract_attribute(attrs, "lon")),
            elevation=safe_float(_child_text(body, "ele")),
            time=_child_text(body, "time"),
            speed=safe_float(_child_text(body, "speed")),
        ))
    return points


# ---------------------------------------------------------------------------
# Route rollup
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrackSummary:
    start_time: Optional[str]
    duration_min: float
    distance_km: float
    elevation_gain_m: float
    avg_speed_kmh: float
    n_points: int


def _haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in meters between two GPS points."""
    R = 6371000  # Earth radius in meters
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return 2 * R * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _parse_time(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def summarize_track(points: List[TrackPoint]) -> Optional[TrackSummary]:
    """
    Roll a track up over its points with finite coordinates.
    Returns None with fewer than two such points.
    """
    valid = [p for p in points if math.isfinite(p.lat) and math.isfinite(p.lon)]
    if len(valid) < 2:
        return None

    distance = 0.0
    elevation_gain = 0.0
    for prev, cur in zip(valid, valid[1:]):
        distance += _haversine(prev.lat, prev.lon, cur.lat, cur.lon)
        if prev.elevation is not None and cur.elevation is not None:
            diff = cur.elevation - prev.elevation
            if diff > 0:
                elevation_gain += diff

    times = [t for t in (_parse_time(p.time) for p in valid) if t is not None]
    duration_sec = (times[-1] - times[0]).total_seconds() if len(times) >= 2 else 0.0

    speeds = [p.speed for p in valid if p.speed is not None]
    if speeds:
        avg_speed = float(np.mean(speeds)) * 3.6   # m/s -> km/h
    elif duration_sec > 0:
        avg_speed = (distance / duration_sec) * 3.6
    else:
        avg_speed = 0.0

    return TrackSummary(
        start_time=valid[0].time,
        duration_min=round(duration_sec / 60, 1),
        distance_km=round(distance / 1000, 2),
        elevation_gain_m=round(elevation_gain, 0),
        avg_speed_kmh=round(avg_speed, 1),
        n_points=len(valid),
    )
