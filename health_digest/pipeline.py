"""
Health Digest — ingestion pipeline.

Opens an export (bare XML or ZIP container), streams the main document
through the chunk feeder into a fresh aggregator, extracts ECG waveforms and
workout routes, and returns a finalized :class:`HealthSummary`.

Usage:
    from health_digest.pipeline import ingest_export
    summary = ingest_export("export.zip", on_progress=print)
"""
import asyncio
import logging
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from health_digest.aggregate.engine import HealthAggregator
from health_digest.aggregate.summary import HealthSummary, SummaryStats, build_summary, finalize
from health_digest.config import CHUNK_SIZE, STRATEGY_STREAM
from health_digest.errors import NoHealthDataError
from health_digest.etl.archive import (
    ExportMembers,
    MemberSource,
    discover_members,
    is_archive,
    open_archive,
    open_export,
    open_member,
    read_member_text,
)
from health_digest.etl.cda_parser import count_observations
from health_digest.etl.chunk_feeder import (
    ProgressCallback,
    feed_stream,
    feed_stream_async,
    iter_entities,
)
from health_digest.etl.ecg_parser import extract_waveform
from health_digest.etl.entities import PointRecord, TrackPoint, Waveform, WorkoutSession
from health_digest.etl.gpx_parser import extract_track_points

logger = logging.getLogger("health_digest.pipeline")

PathLike = Union[str, Path]


# ---------------------------------------------------------------------------
# Whole-list strategy
# ---------------------------------------------------------------------------

@dataclass
class ParsedExport:
    """Raw entity lists plus the summary built from them."""
    records: List[PointRecord]
    workouts: List[WorkoutSession]
    summary: SummaryStats


def parse_export_text(text: str) -> ParsedExport:
    """
    Extract every record and workout of an in-memory document and keep them.

    Suited to small documents; large exports should go through
    :func:`ingest_export`, which keeps only aggregates.
    """
    records, workouts = [], []
    acc = HealthAggregator()
    for entity in iter_entities(text):
        acc.ingest(entity)
        if isinstance(entity, PointRecord):
            records.append(entity)
        else:
            workouts.append(entity)
    return ParsedExport(records=records, workouts=workouts, summary=build_summary(acc))


# ---------------------------------------------------------------------------
# Derived entities
# ---------------------------------------------------------------------------

def extract_derived(ecg_docs: Dict[str, str], route_docs: Dict[str, str],
                    max_workers: Optional[int] = None
                    ) -> Tuple[Dict[str, Waveform], Dict[str, List[TrackPoint]]]:
    """
    Run waveform and track extraction for many documents on a thread pool.

    Results are gathered once every extraction has finished and keyed by
    member name, sorted; completion order is irrelevant.
    """
    waveforms: Dict[str, Waveform] = {}
    tracks: Dict[str, List[TrackPoint]] = {}
    if not ecg_docs and not route_docs:
        return waveforms, tracks

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {}
        for name, text in ecg_docs.items():
            futures[pool.submit(extract_waveform, text)] = ("ecg", name)
        for name, text in route_docs.items():
            futures[pool.submit(extract_track_points, text)] = ("route", name)

        for future in as_completed(futures):
            kind, name = futures[future]
            result = future.result()
            if kind == "ecg":
                if result is not None:
                    waveforms[name] = result
            else:
                tracks[name] = result

    return dict(sorted(waveforms.items())), dict(sorted(tracks.items()))


def _read_derived(zf: zipfile.ZipFile, members: ExportMembers):
    ecg_docs = {name: read_member_text(zf, name) for name in members.ecgs}
    route_docs = {name: read_member_text(zf, name) for name in members.routes}
    return ecg_docs, route_docs


# ---------------------------------------------------------------------------
# Streaming strategy
# ---------------------------------------------------------------------------

def _require_data(acc: HealthAggregator):
    if acc.is_empty:
        raise NoHealthDataError()


def _clinical_count(zf: zipfile.ZipFile, members: ExportMembers, strategy: str,
                    window_size: int, cancel: Optional[threading.Event] = None) -> int:
    if members.clinical is None:
        return 0
    member = open_member(zf, members.clinical, strategy)
    try:
        return count_observations(member.source, window_size=window_size, cancel=cancel)
    finally:
        member.close()


def ingest_text(text: str,
                window_size: int = CHUNK_SIZE,
                on_progress: Optional[ProgressCallback] = None) -> HealthSummary:
    """Stream an in-memory document through the chunk feeder."""
    acc = feed_stream(text, window_size=window_size, on_progress=on_progress)
    _require_data(acc)
    return finalize(acc)


def ingest_export(path: PathLike,
                  strategy: str = STRATEGY_STREAM,
                  window_size: int = CHUNK_SIZE,
                  on_progress: Optional[ProgressCallback] = None,
                  include_derived: bool = True,
                  cancel: Optional[threading.Event] = None,
                  max_workers: Optional[int] = None) -> HealthSummary:
    """
    Ingest a bare ``export.xml`` or a ZIP export.

    Raises :class:`ArchiveError` when the container or its main document
    cannot be read, and :class:`NoHealthDataError` when nothing usable was
    found.  No partial summary is returned on failure.
    """
    path = Path(path)
    if not is_archive(path):
        member = open_export(path, strategy)
        try:
            acc = feed_stream(member.source, window_size=window_size,
                              on_progress=on_progress, total_bytes=_feed_size(member),
                              cancel=cancel)
        finally:
            member.close()
        _require_data(acc)
        return finalize(acc, truncated=member.truncated, original_size=member.original_size)

    with ExitStack() as stack:
        zf = stack.enter_context(open_archive(path))
        members = discover_members(zf)
        member = open_member(zf, members.main, strategy)
        stack.callback(member.close)

        acc = feed_stream(member.source, window_size=window_size,
                          on_progress=on_progress, total_bytes=_feed_size(member),
                          cancel=cancel)
        _require_data(acc)

        clinical = _clinical_count(zf, members, strategy, window_size, cancel)
        waveforms, tracks = {}, {}
        if include_derived:
            waveforms, tracks = extract_derived(*_read_derived(zf, members),
                                                max_workers=max_workers)

    logger.info("ingested %d records, %d workouts from %s",
                acc.total_records, acc.total_workouts, path.name)
    return finalize(acc, truncated=member.truncated, original_size=member.original_size,
                    clinical_records=clinical, waveforms=waveforms, tracks=tracks)


async def ingest_export_async(path: PathLike,
                              strategy: str = STRATEGY_STREAM,
                              window_size: int = CHUNK_SIZE,
                              on_progress: Optional[ProgressCallback] = None,
                              include_derived: bool = True,
                              cancel: Optional[threading.Event] = None) -> HealthSummary:
    """
    Cooperative variant of :func:`ingest_export`: the main document is fed
    with one suspension point per window, and derived extraction runs off
    the event loop.
    """
    path = Path(path)
    if not is_archive(path):
        member = open_export(path, strategy)
        try:
            acc = await feed_stream_async(member.source, window_size=window_size,
                                          on_progress=on_progress,
                                          total_bytes=_feed_size(member), cancel=cancel)
        finally:
            member.close()
        _require_data(acc)
        return finalize(acc, truncated=member.truncated, original_size=member.original_size)

    with ExitStack() as stack:
        zf = stack.enter_context(open_archive(path))
        members = discover_members(zf)
        member = open_member(zf, members.main, strategy)
        stack.callback(member.close)

        acc = await feed_stream_async(member.source, window_size=window_size,
                                      on_progress=on_progress,
                                      total_bytes=_feed_size(member), cancel=cancel)
        _require_data(acc)

        # blocking zip reads run off the event loop
        clinical = await asyncio.to_thread(_clinical_count, zf, members, strategy,
                                           window_size, cancel)
        waveforms, tracks = {}, {}
        if include_derived:
            ecg_docs, route_docs = await asyncio.to_thread(_read_derived, zf, members)
            waveforms, tracks = await asyncio.to_thread(extract_derived, ecg_docs, route_docs)

    return finalize(acc, truncated=member.truncated, original_size=member.original_size,
                    clinical_records=clinical, waveforms=waveforms, tracks=tracks)


def _feed_size(member: MemberSource) -> int:
    if member.data is not None:
        return len(member.data.encode("utf-8"))
    return member.original_size
