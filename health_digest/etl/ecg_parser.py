"""
ECG waveform extraction from one small electrocardiogram document.

These documents are read whole (they are a few hundred KB at most), so no
chunking is involved; the scan is still tag-local rather than a full parse.
"""
import re
from typing import Optional

from health_digest.etl.attributes import extract_attribute, safe_float
from health_digest.etl.entities import Waveform, WaveformSample

# Attribute region that stops before a self-closing "/>".
_ATTRS = r'(?:[^>"/]|/(?!>)|"(?:\\.|[^"\\])*")*'

WAVEFORM_TAG = re.compile(
    r"<(ElectrocardiogramData|Electrocardiogram|ECG)(\s" + _ATTRS + r")?(/?)>")
SAMPLE_TAG = re.compile(r"<Sample(\s" + _ATTRS + r")?(?:/>|>(.*?)</Sample>)", re.S)


def _first(attrs: str, *names: str) -> Optional[str]:
    for name in names:
        value = extract_attribute(attrs, name)
        if value is not None:
            return value
    return None


def extract_waveform(text: str) -> Optional[Waveform]:
    """
    Read the first waveform element of ``text`` and its ``<Sample>`` children.

    Returns None when the document holds no waveform element; callers treat
    that as "no data for this file".
    """
    match = WAVEFORM_TAG.search(text)
    if match is None:
        return None

    attrs = match.group(2) or ""

    samples = []
    if not match.group(3):
        close = text.find(f"</{match.group(1)}>", match.end())
        interior = text[match.end():close if close != -1 else len(text)]
        for sample in SAMPLE_TAG.finditer(interior):
            sample_attrs = sample.group(1) or ""
            value = extract_attribute(sample_attrs, "value")
            if value is None and sample.group(2) is not None:
                value = sample.group(2).strip()
            samples.append(WaveformSample(
                time=safe_float(extract_attribute(sample_attrs, "time")),
                value=safe_float(value),
            ))

    return Waveform(
        timestamp=_first(attrs, "timestamp", "recordingDate"),
        heart_rate=safe_float(_first(attrs, "heartRate", "hr")),
        classification=extract_attribute(attrs, "classification"),
        sample_rate=safe_float(extract_attribute(attrs, "sampleRate")),
        samples=tuple(samples),
    )
