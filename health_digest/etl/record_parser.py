"""
Point-record extraction from a flat Apple Health tag stream.

Scans text for ``<Record ...>`` opening tags without building a parse tree,
so it can run over arbitrary slices of a multi-GB ``export.xml``.  Only the
attribute region of the opening tag is read; ``<MetadataEntry>`` children of
non-self-closing records are skipped.

Usage:
    from health_digest.etl.record_parser import iter_point_records
    for record in iter_point_records(text):
        ...
"""
import logging
import re
from typing import Iterator, List, Optional, Tuple

from health_digest.config import UNKNOWN_SOURCE
from health_digest.etl.attributes import extract_attribute, parse_value
from health_digest.etl.dates import normalize_date
from health_digest.etl.entities import PointRecord

logger = logging.getLogger("health_digest.etl.records")

# Opening tag; quoted values may contain '>' and backslash-escaped quotes.
RECORD_TAG = re.compile(r'<Record\s((?:[^>"]|"(?:\\.|[^"\\])*")*)>')


# ---------------------------------------------------------------------------
# Single tag
# ---------------------------------------------------------------------------

def tag_body(raw: str) -> str:
    """Attribute region of an opening tag match, without a trailing ``/``."""
    return raw[:-1] if raw.endswith("/") else raw


def parse_record_attributes(attrs: str) -> Optional[PointRecord]:
    """
    Build a :class:`PointRecord` from one tag body.

    ``endDate`` is the authoritative date; ``startDate`` is ignored.
    Returns None when ``type``, ``value`` or a parseable ``endDate`` is
    missing.
    """
    rtype = extract_attribute(attrs, "type")
    value = extract_attribute(attrs, "value")
    end_date = extract_attribute(attrs, "endDate")
    if not rtype or value is None or not end_date:
        return None

    normalized = normalize_date(end_date)
    if normalized is None:
        return None
    timestamp, day = normalized

    return PointRecord(
        type=rtype,
        value=parse_value(value),
        timestamp=timestamp,
        date_key=day,
        unit=extract_attribute(attrs, "unit"),
        source=extract_attribute(attrs, "sourceName") or UNKNOWN_SOURCE,
    )


# ---------------------------------------------------------------------------
# Stream scan
# ---------------------------------------------------------------------------

def iter_record_spans(text: str) -> Iterator[Tuple[int, PointRecord]]:
    """Yield ``(offset, record)`` for every well-formed record in ``text``."""
    dropped = 0
    for match in RECORD_TAG.finditer(text):
        record = parse_record_attributes(tag_body(match.group(1)))
        if record is None:
            dropped += 1
            continue
        yield match.start(), record
    if dropped:
        logger.debug("dropped %d malformed <Record> tags", dropped)


def iter_point_records(text: str) -> Iterator[PointRecord]:
    """Yield every well-formed point record in ``text``, in document order."""
    for _, record in iter_record_spans(text):
        yield record


def parse_point_records(text: str) -> List[PointRecord]:
    """Whole-list variant of :func:`iter_point_records`."""
    return list(iter_point_records(text))
