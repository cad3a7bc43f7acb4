"""Parsing of human-readable collection intervals."""

import re

from jikji.exceptions import InvalidFrequency

_UNITS = {
    "s": 1,
    "m": 60,
    "h": 3600,
}

_FREQUENCY_RE = re.compile(r"^([+-]?[0-9]+)([smh])$")


def parse_frequency(text: str) -> int:
    """Convert a frequency like '30s', '15m' or '1h' into seconds.

    Raises:
        InvalidFrequency: If the string is not ``<integer><unit>`` with a
            unit of s, m or h, or if the integer is not positive.
    """
    if not isinstance(text, str):
        raise InvalidFrequency(repr(text), "expected a string")

    match = _FREQUENCY_RE.match(text.strip().lower())
    if match is None:
        raise InvalidFrequency(text, "expected <integer><unit> with unit s, m or h")

    amount = int(match.group(1))
    if amount <= 0:
        raise InvalidFrequency(text, "must be greater than zero")

    return amount * _UNITS[match.group(2)]
