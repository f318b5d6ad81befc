"""
On-demand attribute lookup inside a raw tag body.

The extractors never build an attribute dict; they keep the attribute region
of each tag as a string and pull out only the names they need.  This is the
single place that knows how attribute values are quoted.
"""
import re
from typing import Dict, Iterable, Optional, Union


def extract_attribute(tag_body: str, name: str) -> Optional[str]:
    """
    Return the value of ``name="..."`` in ``tag_body``.

    A double quote preceded by a backslash does not end the value, so
    ``value="5\\"2"`` yields ``5\\"2``.  Returns None when the attribute is
    absent or its value is never terminated.
    """
    pattern = f'{name}="'
    start = tag_body.find(pattern)
    if start == -1:
        return None

    value_start = start + len(pattern)
    end = tag_body.find('"', value_start)
    while end != -1 and tag_body[end - 1] == "\\":
        end = tag_body.find('"', end + 1)

    if end == -1:
        return None
    return tag_body[value_start:end]


def extract_attributes(tag_body: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    return {name: extract_attribute(tag_body, name) for name in names}


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------

# Leading decimal number, as in "72", "-0.5", "1e3", "72 count/min".
_NUMBER_PREFIX = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def safe_float(val: Optional[str]) -> Optional[float]:
    """Parse the numeric prefix of ``val``; None when there is none."""
    if val is None:
        return None
    match = _NUMBER_PREFIX.match(val)
    if match is None:
        return None
    try:
        return float(match.group())
    except ValueError:
        return None


def parse_value(val: str) -> Union[float, str]:
    """Numeric attribute values become floats; anything else stays text."""
    number = safe_float(val)
    return val if number is None else number
