"""
Container access for Apple Health exports.

An export is either a bare ``export.xml`` or a ZIP holding
``apple_health_export/export.xml`` plus an optional clinical document,
ECG documents and GPX workout routes.  This module only finds and opens
members; parsing happens in the extractors.
"""
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, List, Optional, Union

from health_digest.config import (
    CLINICAL_DOCUMENT,
    ECG_SEGMENT,
    FALLBACK_KEYWORDS,
    LARGE_MEMBER_BYTES,
    MAIN_DOCUMENT,
    ROUTE_SEGMENT,
    SAMPLE_BYTES,
    STRATEGIES,
    STRATEGY_SAMPLE,
    STRATEGY_STREAM,
)
from health_digest.errors import ArchiveError

logger = logging.getLogger("health_digest.etl.archive")


@dataclass
class ExportMembers:
    """Member names found in one container."""
    main: str
    clinical: Optional[str] = None
    ecgs: List[str] = field(default_factory=list)
    routes: List[str] = field(default_factory=list)


@dataclass
class MemberSource:
    """
    One logical document ready for feeding.

    Exactly one of ``data`` (an in-memory text prefix) and ``stream`` (an
    open binary file object) is set.  ``truncated`` is True when only the
    first :data:`SAMPLE_BYTES` of a large member were decoded.
    """
    name: str
    original_size: int
    truncated: bool = False
    data: Optional[str] = None
    stream: Optional[IO[bytes]] = None

    @property
    def source(self):
        return self.data if self.data is not None else self.stream

    def close(self):
        if self.stream is not None:
            self.stream.close()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def _is_ecg(name: str) -> bool:
    return ECG_SEGMENT in name and name.lower().endswith(".xml")


def _is_route(name: str) -> bool:
    return ROUTE_SEGMENT in name and name.lower().endswith((".gpx", ".xml"))


def discover_members(zf: zipfile.ZipFile) -> ExportMembers:
    """
    Locate the main document and auxiliary members.

    The conventional ``apple_health_export/`` folder is tried first; failing
    that, any ``.xml`` member whose path mentions "export" or "health" is
    taken as the main document.
    """
    names = [n for n in zf.namelist() if not n.endswith("/")]

    main = MAIN_DOCUMENT if MAIN_DOCUMENT in names else None
    clinical = CLINICAL_DOCUMENT if CLINICAL_DOCUMENT in names else None
    if clinical is None:
        clinical = next((n for n in names if n.endswith("export_cda.xml")), None)

    ecgs = sorted(n for n in names if _is_ecg(n))
    routes = sorted(n for n in names if _is_route(n))

    if main is None:
        skip = set(ecgs) | set(routes) | {clinical}
        candidates = [
            n for n in names
            if n.lower().endswith(".xml") and n not in skip
            and any(k in n.lower() for k in FALLBACK_KEYWORDS)
        ]
        # prefer a member literally named export.xml
        candidates.sort(key=lambda n: (not n.endswith("export.xml"), n))
        if candidates:
            main = candidates[0]
            logger.info("main document not at %s; using %s", MAIN_DOCUMENT, main)

    if main is None:
        raise ArchiveError("No health export document found in archive")

    return ExportMembers(main=main, clinical=clinical, ecgs=ecgs, routes=routes)


def open_archive(path: Union[str, Path]) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(path)
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(f"Failed to open Apple Health export: {e}") from e


def is_archive(path: Union[str, Path]) -> bool:
    return zipfile.is_zipfile(path)


# ---------------------------------------------------------------------------
# Opening members
# ---------------------------------------------------------------------------

def _check_strategy(strategy: str):
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown large-file strategy {strategy!r}; use one of {STRATEGIES}")


def _sample(fh: IO[bytes]) -> str:
    prefix = fh.read(SAMPLE_BYTES)
    # a multi-byte character cut at the bound is dropped
    return prefix.decode("utf-8", errors="ignore")


def open_member(zf: zipfile.ZipFile, name: str,
                strategy: str = STRATEGY_STREAM) -> MemberSource:
    """
    Open one member for feeding.

    With ``strategy="sample"`` a member larger than
    :data:`LARGE_MEMBER_BYTES` is cut to its first :data:`SAMPLE_BYTES`;
    otherwise the member is streamed whole.
    """
    _check_strategy(strategy)
    try:
        info = zf.getinfo(name)
        size = info.file_size
        if strategy == STRATEGY_SAMPLE and size > LARGE_MEMBER_BYTES:
            with zf.open(info) as fh:
                return MemberSource(name=name, original_size=size, truncated=True,
                                    data=_sample(fh))
        return MemberSource(name=name, original_size=size, stream=zf.open(info))
    except (KeyError, zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(f"Failed to read {name} from archive: {e}") from e


def read_member_text(zf: zipfile.ZipFile, name: str) -> str:
    """Whole member as text; used for the small ECG and route documents."""
    try:
        return zf.read(name).decode("utf-8", errors="replace")
    except (KeyError, zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(f"Failed to read {name} from archive: {e}") from e


def open_export(path: Union[str, Path], strategy: str = STRATEGY_STREAM) -> MemberSource:
    """Open a bare XML export with the same size handling as :func:`open_member`."""
    _check_strategy(strategy)
    path = Path(path)
    try:
        size = path.stat().st_size
        if strategy == STRATEGY_SAMPLE and size > LARGE_MEMBER_BYTES:
            with open(path, "rb") as fh:
                return MemberSource(name=path.name, original_size=size, truncated=True,
                                    data=_sample(fh))
        return MemberSource(name=path.name, original_size=size, stream=open(path, "rb"))
    except OSError as e:
        raise ArchiveError(f"Failed to open Apple Health export: {e}") from e
