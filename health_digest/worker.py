"""
Ingestion on a separate worker thread.

The host thread and the worker talk only through two queues of
:class:`WorkerMessage` objects:

    host -> worker:  init, chunk, finalize, close
    worker -> host:  progress, chunk_processed, complete, error

The worker runs the same :class:`ChunkFeeder` and aggregator as the inline
path, so both produce identical summaries.
"""
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Optional

from health_digest.aggregate.summary import HealthSummary, finalize
from health_digest.config import CHUNK_SIZE
from health_digest.errors import NoHealthDataError, WorkerError
from health_digest.etl.chunk_feeder import (
    ChunkFeeder,
    ProgressCallback,
    ProgressEvent,
    Source,
    iter_windows,
    source_size,
)

logger = logging.getLogger("health_digest.worker")

INBOX_SIZE = 4      # windows in flight between host and worker


@dataclass(frozen=True)
class WorkerMessage:
    type: str
    data: Any = None
    nbytes: int = 0
    file_size: Optional[int] = None
    message: Optional[str] = None
    error_type: Optional[str] = None


class IngestionWorker(threading.Thread):
    """Owns one feeder at a time; a new ``init`` discards any previous one."""

    def __init__(self):
        super().__init__(name="health-digest-ingest", daemon=True)
        self.inbox: "queue.Queue[WorkerMessage]" = queue.Queue(maxsize=INBOX_SIZE)
        self.outbox: "queue.Queue[WorkerMessage]" = queue.Queue()
        self._feeder: Optional[ChunkFeeder] = None

    def post(self, message: WorkerMessage):
        self.inbox.put(message)

    def run(self):
        while True:
            msg = self.inbox.get()
            if msg.type == "close":
                return
            try:
                self._handle(msg)
            except Exception as e:
                # errors cross the thread boundary as messages
                self._feeder = None
                self.outbox.put(WorkerMessage(type="error", message=str(e),
                                              error_type=type(e).__name__))

    def _handle(self, msg: WorkerMessage):
        if msg.type == "init":
            self._feeder = ChunkFeeder(on_progress=self._progress, total_bytes=msg.file_size)
            size = f"{msg.file_size / 1024 ** 3:.2f}GB " if msg.file_size else ""
            self.outbox.put(WorkerMessage(type="progress",
                                          message=f"Starting to parse {size}file..."))
        elif msg.type == "chunk":
            self._require_feeder().feed(msg.data, msg.nbytes)
            self.outbox.put(WorkerMessage(type="chunk_processed"))
        elif msg.type == "finalize":
            acc = self._require_feeder().finish()
            self._feeder = None
            if acc.is_empty:
                raise NoHealthDataError()
            self.outbox.put(WorkerMessage(type="complete", data=finalize(acc)))
        else:
            raise ValueError(f"unknown message type {msg.type!r}")

    def _require_feeder(self) -> ChunkFeeder:
        if self._feeder is None:
            raise RuntimeError("Parser not initialized")
        return self._feeder

    def _progress(self, event: ProgressEvent):
        self.outbox.put(WorkerMessage(type="progress", data=event, message=event.message))


def _drain(worker: IngestionWorker, on_progress: Optional[ProgressCallback],
           block: bool) -> Optional[WorkerMessage]:
    """Forward progress; return the first terminal message, if any."""
    while True:
        try:
            msg = worker.outbox.get(block=block)
        except queue.Empty:
            return None
        if msg.type == "progress":
            if on_progress is not None and msg.data is not None:
                on_progress(msg.data)
            else:
                logger.info(msg.message)
        elif msg.type in ("complete", "error"):
            return msg


def ingest_in_worker(source: Source,
                     window_size: int = CHUNK_SIZE,
                     on_progress: Optional[ProgressCallback] = None) -> HealthSummary:
    """
    Feed ``source`` through an :class:`IngestionWorker` and wait for the result.

    The calling thread only reads windows and forwards progress.
    """
    worker = IngestionWorker()
    worker.start()
    try:
        worker.post(WorkerMessage(type="init", file_size=source_size(source)))
        for text, nbytes in iter_windows(source, window_size):
            worker.post(WorkerMessage(type="chunk", data=text, nbytes=nbytes))
            early = _drain(worker, on_progress, block=False)
            if early is not None and early.type == "error":
                _raise(early)
        worker.post(WorkerMessage(type="finalize"))

        result = _drain(worker, on_progress, block=True)
        if result.type == "error":
            _raise(result)
        return result.data
    finally:
        worker.post(WorkerMessage(type="close"))
        worker.join(timeout=5)


def _raise(msg: WorkerMessage):
    if msg.error_type == NoHealthDataError.__name__:
        raise NoHealthDataError(msg.message)
    raise WorkerError(msg.message)
