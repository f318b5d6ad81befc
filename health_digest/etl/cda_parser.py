"""
Observation count for the clinical document (``export_cda.xml``).

The document is HL7 CDA, not the Record/Workout stream of ``export.xml``:
clinical results sit in ``<observation>`` elements nested under
``<entry>``/``<organizer>`` blocks.  Only the count is reported, so the scan
is a windowed tag match with the same cancellation points as the main feed.
"""
import logging
import re
import threading
from typing import Optional

from health_digest.config import CHUNK_SIZE
from health_digest.errors import IngestionCancelled
from health_digest.etl.chunk_feeder import Source, iter_windows

logger = logging.getLogger("health_digest.etl.cda")

# Opening tag, optionally namespace-prefixed; <observationRange> does not match.
OBSERVATION_TAG = re.compile(r"<(?:\w+:)?observation[\s/>]")


def _split_open_tag(buffer: str) -> int:
    """Offset up to which ``buffer`` holds no unterminated tag."""
    last = buffer.rfind("<")
    if last == -1 or buffer.find(">", last) != -1:
        return len(buffer)
    return last


def count_observations(source: Source,
                       window_size: int = CHUNK_SIZE,
                       cancel: Optional[threading.Event] = None) -> int:
    """Count ``<observation>`` elements in a clinical document."""
    count = 0
    carry = ""
    for text, _ in iter_windows(source, window_size):
        if cancel is not None and cancel.is_set():
            raise IngestionCancelled("ingestion cancelled; partial state discarded")
        buffer = carry + text
        cut = _split_open_tag(buffer)
        count += len(OBSERVATION_TAG.findall(buffer, 0, cut))
        carry = buffer[cut:]
    if carry:
        count += len(OBSERVATION_TAG.findall(carry))
    logger.debug("clinical document holds %d observations", count)
    return count
