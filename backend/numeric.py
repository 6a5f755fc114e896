"""
Numeric helpers shared by the parser and the protocol decoders.
Bit-string to hex conversion and timescale arithmetic.
"""

import math
import re


DEFAULT_TIMESCALE = "1ns"

UNIT_SECONDS = {
    "s": 1.0,
    "ms": 1e-3,
    "us": 1e-6,
    "ns": 1e-9,
    "ps": 1e-12,
    "fs": 1e-15,
}

TIMESCALE_PATTERN = re.compile(r'^\s*(\d+)\s*(s|ms|us|ns|ps|fs)\s*$')


def bin_to_hex(bits: str) -> str:
    """Render a bit string as uppercase hex.

    Any non-binary state collapses the whole value: a uniform string such as
    ``xxxx`` renders as that state (``X``), a mix of known and unknown bits
    renders as ``X``.
    """
    if not bits:
        return "X"

    if any(c not in "01" for c in bits):
        if len(set(bits)) == 1:
            return bits[0].upper()
        return "X"

    return format(int(bits, 2), "X")


def parse_timescale(text: str | None) -> tuple[int, str] | None:
    """Split '10 ps' / '10ps' into (10, 'ps'). Returns None if malformed."""
    if not text:
        return None
    match = TIMESCALE_PATTERN.match(text)
    if not match:
        return None
    magnitude = int(match.group(1))
    if magnitude <= 0:
        return None
    return magnitude, match.group(2)


def normalize_timescale(text: str | None) -> str:
    parsed = parse_timescale(text)
    if parsed is None:
        return DEFAULT_TIMESCALE
    return f"{parsed[0]}{parsed[1]}"


def timescale_to_seconds(timescale: str | None) -> float:
    """Duration of one tick in seconds. Malformed timescales count as 1ns."""
    parsed = parse_timescale(timescale) or parse_timescale(DEFAULT_TIMESCALE)
    magnitude, unit = parsed
    return magnitude * UNIT_SECONDS[unit]


def convert_ticks_to_unit(ticks: float, timescale: str | None, unit: str) -> float:
    """Convert a tick count into a physical time expressed in `unit`."""
    if unit not in UNIT_SECONDS:
        raise ValueError(f"Unknown time unit: {unit}")
    return ticks * timescale_to_seconds(timescale) / UNIT_SECONDS[unit]


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
