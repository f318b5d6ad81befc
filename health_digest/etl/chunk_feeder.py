"""
Chunked feeding of an arbitrarily large export through the extractors.

The source is read in fixed windows (3 MiB of text by default).  Each window
is appended to a carry-over buffer; everything up to the last safe cut point
is extracted and folded into the aggregator, the rest waits for the next
window.  A safe cut sits just after the last ``/>`` in the buffer, moved back
to the start of any ``<Workout>`` block that is still open there, so no
element is split across two extraction calls and none is seen twice.

Usage:
    acc = feed_stream(path_or_file)                  # blocking
    acc = await feed_stream_async(path_or_file)      # yields between windows
"""
import asyncio
import codecs
import heapq
import io
import logging
import threading
from dataclasses import dataclass
from operator import itemgetter
from pathlib import Path
from typing import IO, Callable, Iterator, Optional, Tuple, Union

from health_digest.aggregate.engine import Entity, HealthAggregator
from health_digest.config import CHUNK_SIZE, MAX_STALLED_WINDOWS, SELF_CLOSING
from health_digest.errors import IngestionCancelled
from health_digest.etl.record_parser import iter_record_spans
from health_digest.etl.workout_parser import WORKOUT_CLOSE, WORKOUT_OPEN, iter_workout_spans

logger = logging.getLogger("health_digest.etl.feeder")

Source = Union[str, bytes, Path, IO]


@dataclass(frozen=True)
class ProgressEvent:
    """Advisory progress after one window; never needed for correctness."""
    bytes_processed: int
    total_bytes: Optional[int]
    records: int
    workouts: int
    metric_types: int
    message: str

    @property
    def percent(self) -> Optional[int]:
        if not self.total_bytes:
            return None
        return min(100, round(self.bytes_processed * 100 / self.total_bytes))


ProgressCallback = Callable[[ProgressEvent], None]


# ---------------------------------------------------------------------------
# Window reader
# ---------------------------------------------------------------------------

def source_size(source: Source) -> Optional[int]:
    """Size in bytes when it can be known without reading the source."""
    if isinstance(source, bytes):
        return len(source)
    if isinstance(source, Path):
        return source.stat().st_size
    if isinstance(source, str):
        return len(source.encode("utf-8"))
    return None


def _read_windows(stream: IO, window_size: int) -> Iterator[Tuple[str, int]]:
    decoder = None
    while True:
        block = stream.read(window_size)
        if not block:
            break
        if isinstance(block, bytes):
            if decoder is None:
                decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            yield decoder.decode(block), len(block)
        else:
            yield block, len(block.encode("utf-8"))
    if decoder is not None:
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail, 0


def iter_windows(source: Source, window_size: int = CHUNK_SIZE) -> Iterator[Tuple[str, int]]:
    """
    Yield ``(text, bytes_consumed)`` windows from ``source``.

    ``source`` may be text, raw bytes, a :class:`Path`, or an open binary or
    text file object.  Bytes are decoded incrementally, so a multi-byte
    character cut by a window boundary is completed by the next window.
    """
    if isinstance(source, Path):
        with open(source, "rb") as fh:
            yield from _read_windows(fh, window_size)
    elif isinstance(source, bytes):
        yield from _read_windows(io.BytesIO(source), window_size)
    elif isinstance(source, str):
        for start in range(0, len(source), window_size):
            text = source[start:start + window_size]
            yield text, len(text.encode("utf-8"))
    else:
        yield from _read_windows(source, window_size)


# ---------------------------------------------------------------------------
# Carry-over buffer
# ---------------------------------------------------------------------------

def safe_cut(buffer: str) -> int:
    """
    Index up to which ``buffer`` can be extracted, or 0 when nothing can.

    Everything before the cut is made of complete elements; an unfinished
    tag or an unclosed workout block always lands after it.
    """
    last = buffer.rfind(SELF_CLOSING)
    if last == -1:
        return 0
    cut = last + len(SELF_CLOSING)

    # Defer a workout block opened before the cut but not closed before it.
    # "<WorkoutStatistics", "<WorkoutEvent" etc. are children, not openings.
    open_start = buffer.rfind("<Workout", 0, cut)
    while open_start != -1 and not buffer[open_start + 8:open_start + 9].isspace():
        open_start = buffer.rfind("<Workout", 0, open_start)
    if open_start == -1:
        return cut

    opening = WORKOUT_OPEN.match(buffer, open_start)
    if opening is None or opening.end() > cut:
        return open_start
    if opening.group(1).endswith("/"):
        return cut
    if buffer.find(WORKOUT_CLOSE, opening.end(), cut) == -1:
        return open_start
    return cut


def iter_entities(text: str) -> Iterator[Entity]:
    """
    Records and workouts of one segment, in document order.

    Both extractors scan the segment once; their matches are merged by start
    offset so metrics shared by records and workout statistics are folded in
    the order they appear in the export.
    """
    spans = heapq.merge(iter_record_spans(text), iter_workout_spans(text),
                        key=itemgetter(0))
    for _, entity in spans:
        yield entity


def extract_into(text: str, acc: HealthAggregator) -> None:
    """Fold every entity of one processable segment into ``acc``."""
    acc.ingest_many(iter_entities(text))


class ChunkFeeder:
    """
    Per-ingestion context: carry-over buffer, byte counter and aggregator.

    Call :meth:`feed` once per window and :meth:`finish` once at the end.
    """

    def __init__(self,
                 aggregator: Optional[HealthAggregator] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 total_bytes: Optional[int] = None):
        self.aggregator = aggregator if aggregator is not None else HealthAggregator()
        self.on_progress = on_progress
        self.total_bytes = total_bytes
        self.bytes_processed = 0
        self.windows = 0
        self._buffer = ""
        self._stalled = 0

    @property
    def pending(self) -> int:
        """Characters waiting in the carry-over buffer."""
        return len(self._buffer)

    def feed(self, text: str, nbytes: int = 0) -> None:
        self.windows += 1
        self.bytes_processed += nbytes
        self._buffer += text

        cut = safe_cut(self._buffer)
        if cut > 0:
            extract_into(self._buffer[:cut], self.aggregator)
            self._buffer = self._buffer[cut:]
            self._stalled = 0
            self._report(self._progress_message())
        else:
            self._stalled += 1
            if self._stalled >= MAX_STALLED_WINDOWS:
                logger.warning("no complete element in %d windows (%d chars buffered)",
                               self._stalled, len(self._buffer))
                self._report(f"Parsing... {self._percent_text()}recovering from error...")
            else:
                self._report(self._progress_message())

    def finish(self) -> HealthAggregator:
        """Flush the leftover buffer once and return the aggregator."""
        if self._buffer:
            extract_into(self._buffer, self.aggregator)
            self._buffer = ""
        self._report("Generating summary...")
        return self.aggregator

    # ---- progress ----

    def _percent_text(self) -> str:
        if not self.total_bytes:
            return ""
        return f"{min(100, round(self.bytes_processed * 100 / self.total_bytes))}% - "

    def _progress_message(self) -> str:
        mb = self.bytes_processed / 1024 / 1024
        acc = self.aggregator
        return (f"Analyzing... {self._percent_text()}({mb:.1f}MB) - "
                f"{acc.total_records} records, {acc.metric_type_count} metric types")

    def _report(self, message: str):
        if self.on_progress is None:
            return
        acc = self.aggregator
        event = ProgressEvent(
            bytes_processed=self.bytes_processed,
            total_bytes=self.total_bytes,
            records=acc.total_records,
            workouts=acc.total_workouts,
            metric_types=acc.metric_type_count,
            message=message,
        )
        try:
            self.on_progress(event)
        except Exception:
            # progress is advisory; a broken listener must not stop ingestion
            logger.exception("progress callback failed")


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------

def _check_cancel(cancel: Optional[threading.Event]):
    if cancel is not None and cancel.is_set():
        raise IngestionCancelled("ingestion cancelled; partial state discarded")


def feed_stream(source: Source,
                window_size: int = CHUNK_SIZE,
                on_progress: Optional[ProgressCallback] = None,
                total_bytes: Optional[int] = None,
                aggregator: Optional[HealthAggregator] = None,
                cancel: Optional[threading.Event] = None) -> HealthAggregator:
    """Feed ``source`` window by window and return the populated aggregator."""
    if total_bytes is None:
        total_bytes = source_size(source)
    feeder = ChunkFeeder(aggregator, on_progress, total_bytes)
    for text, nbytes in iter_windows(source, window_size):
        _check_cancel(cancel)
        feeder.feed(text, nbytes)
    _check_cancel(cancel)
    return feeder.finish()


async def feed_stream_async(source: Source,
                            window_size: int = CHUNK_SIZE,
                            on_progress: Optional[ProgressCallback] = None,
                            total_bytes: Optional[int] = None,
                            aggregator: Optional[HealthAggregator] = None,
                            cancel: Optional[threading.Event] = None) -> HealthAggregator:
    """
    Same as :func:`feed_stream`, but hands control back to the event loop
    after every window.  Extraction within a window is never interrupted.
    """
    if total_bytes is None:
        total_bytes = source_size(source)
    feeder = ChunkFeeder(aggregator, on_progress, total_bytes)
    for text, nbytes in iter_windows(source, window_size):
        _check_cancel(cancel)
        feeder.feed(text, nbytes)
        await asyncio.sleep(0)
    _check_cancel(cancel)
    return feeder.finish()
