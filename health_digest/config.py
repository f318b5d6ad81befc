"""
Health Digest — Configuration
Window sizes, sampling policies, container layout, and metric identifiers.
"""
from dataclasses import dataclass


# ── Streaming ───────────────────────────────────────────────────
CHUNK_SIZE = 3 * 1024 * 1024       # decoded text per window
MAX_STALLED_WINDOWS = 3            # windows without a safe cut before "recovering..."
SELF_CLOSING = "/>"


# ── Sampling reservoir ──────────────────────────────────────────
@dataclass(frozen=True)
class SamplingPolicy:
    """Keep the first ``threshold`` observations, then every ``stride``-th."""
    threshold: int
    stride: int

    def keeps(self, count: int) -> bool:
        return count <= self.threshold or count % self.stride == 0


RECORD_SAMPLING = SamplingPolicy(threshold=100, stride=10)
WORKOUT_SAMPLING = SamplingPolicy(threshold=50, stride=5)


# ── Container layout ────────────────────────────────────────────
EXPORT_FOLDER = "apple_health_export/"
MAIN_DOCUMENT = EXPORT_FOLDER + "export.xml"
CLINICAL_DOCUMENT = EXPORT_FOLDER + "export_cda.xml"
ECG_SEGMENT = "electrocardiograms/"
ROUTE_SEGMENT = "workout-routes/"
FALLBACK_KEYWORDS = ("export", "health")


# ── Large member handling ───────────────────────────────────────
LARGE_MEMBER_BYTES = 10 * 1024 * 1024
SAMPLE_BYTES = 5 * 1024 * 1024
STRATEGY_STREAM = "stream"
STRATEGY_SAMPLE = "sample"
STRATEGIES = (STRATEGY_STREAM, STRATEGY_SAMPLE)


# ── Metric identifiers ──────────────────────────────────────────
DISTANCE_METRIC = "HKQuantityTypeIdentifierDistanceWalkingRunning"
ENERGY_METRIC = "HKQuantityTypeIdentifierEnergyBurned"
HEART_RATE_METRIC = "HKQuantityTypeIdentifierHeartRate"
STEP_METRIC = "HKQuantityTypeIdentifierStepCount"
CALORIE_METRICS = (
    "HKQuantityTypeIdentifierActiveEnergyBurned",
    "HKQuantityTypeIdentifierBasalEnergyBurned",
)

# First substring match wins.
STATISTIC_TYPE_RULES = (
    ("Distance", DISTANCE_METRIC),
    ("Energy", ENERGY_METRIC),
    ("HeartRate", HEART_RATE_METRIC),
)

UNKNOWN_SOURCE = "Unknown"
WORKOUT_STATS_SOURCE = "Workout Stats"


# ── Summary ─────────────────────────────────────────────────────
TOP_METRICS = 10
