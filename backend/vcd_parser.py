"""
VCD (Value Change Dump) parser.
Builds a signal table from dump text, merges bit-blasted vectors back into
buses and answers point-in-time value queries.
"""

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass, field
from operator import attrgetter
from pathlib import Path

from numeric import DEFAULT_TIMESCALE, normalize_timescale, timescale_to_seconds


logger = logging.getLogger(__name__)

HEADER_TERMINATOR = "$enddefinitions"

HEADER_KEYWORDS = {
    "$comment", "$date", "$version", "$timescale",
    "$scope", "$upscope", "$var", "$enddefinitions",
}

# Single-bit value characters accepted in the data region
SCALAR_VALUES = "01xXzZ"

BIT_INDEX_PATTERN = re.compile(r'^(.+?)\s*\[(\d+)\]$')

UNKNOWN = "x"


@dataclass
class Transition:
    time: int
    value: str


@dataclass
class Signal:
    identifier: str
    name: str
    kind: str
    size: int
    values: list[Transition] = field(default_factory=list)

    def record(self, time: int, value: str) -> bool:
        """Append a value change. Same-tick updates keep the last value."""
        if self.values:
            last = self.values[-1]
            if time == last.time:
                last.value = value
                return True
            if time < last.time:
                return False
        self.values.append(Transition(time=time, value=value))
        return True


@dataclass
class DumpMetadata:
    timescale: str = DEFAULT_TIMESCALE
    max_time: int = 0


@dataclass
class Waveform:
    signals: dict[str, Signal] = field(default_factory=dict)
    timescale: str = DEFAULT_TIMESCALE
    max_time: int = 0

    @property
    def metadata(self) -> DumpMetadata:
        return DumpMetadata(timescale=self.timescale, max_time=self.max_time)

    def get_signal(self, name: str) -> Signal | None:
        return self.signals.get(name)

    def get_value_at_time(self, name: str, time: float) -> str | None:
        """Get signal value at specific time."""
        signal = self.signals.get(name)
        if signal is None:
            return None
        return value_at(signal, time)

    def get_transitions_in_range(self, name: str, start: int, end: int) -> list[Transition]:
        """Get transitions within time range."""
        signal = self.signals.get(name)
        if signal is None:
            return []

        return [t for t in signal.values if start <= t.time <= end]


def value_at(signal: Signal, time: float) -> str:
    """Value in effect at `time`.

    The last change at or before `time` wins. Before the first recorded
    change the first value is assumed to hold; a signal with no history
    reads as unknown.
    """
    values = signal.values
    if not values:
        return UNKNOWN

    idx = bisect_right(values, time, key=attrgetter("time"))
    if idx == 0:
        return values[0].value
    return values[idx - 1].value


def rising_edges(signal: Signal) -> list[int]:
    """Times of every recorded 0 -> 1 transition."""
    values = signal.values
    return [
        values[i].time
        for i in range(1, len(values))
        if values[i - 1].value == "0" and values[i].value == "1"
    ]


def signal_frequency(signal: Signal, timescale: str) -> float | None:
    """Mean rising-edge frequency in Hz, or None with fewer than two edges."""
    edges = rising_edges(signal)
    if len(edges) < 2:
        return None

    period_ticks = (edges[-1] - edges[0]) / (len(edges) - 1)
    if period_ticks <= 0:
        return None
    return 1.0 / (period_ticks * timescale_to_seconds(timescale))


def _read_block(tokens: list[str], start: int) -> tuple[list[str], int, bool]:
    """Collect tokens up to the next $end.

    Returns (body, next index, terminated). A block cut short by another
    header keyword is reported as unterminated so the caller can drop it.
    """
    body = []
    i = start
    while i < len(tokens):
        tok = tokens[i]
        if tok == "$end":
            return body, i + 1, True
        if tok in HEADER_KEYWORDS:
            return body, i, False
        body.append(tok)
        i += 1
    return body, i, False


def _parse_header(header: str, waveform: Waveform) -> dict[str, list[Signal]]:
    by_identifier: dict[str, list[Signal]] = {}
    scope_stack: list[str] = []
    timescale = None

    tokens = header.split()
    i = 0
    while i < len(tokens):
        keyword = tokens[i]
        if keyword not in HEADER_KEYWORDS:
            logger.debug("Skipping stray header token %r", keyword)
            i += 1
            continue

        if keyword == "$comment":
            # Comment bodies may contain anything, including keywords
            while i < len(tokens) and tokens[i] != "$end":
                i += 1
            i += 1
            continue

        body, i, terminated = _read_block(tokens, i + 1)
        if not terminated:
            logger.debug("Dropping unterminated %s block: %s", keyword, body)
            continue

        if keyword == "$timescale":
            timescale = " ".join(body)

        elif keyword == "$scope":
            # $scope module testbench $end
            # An unnamed scope still occupies a level so $upscope stays paired
            if len(body) >= 2:
                scope_stack.append(body[1])
            else:
                logger.debug("Malformed $scope: %s", body)
                scope_stack.append("")

        elif keyword == "$upscope":
            if scope_stack:
                scope_stack.pop()

        elif keyword == "$var":
            # $var wire 8 " data [7:0] $end
            # $var wire 1 F avs_readdata [31] $end
            if len(body) < 4:
                logger.debug("Malformed $var: %s", body)
                continue
            kind, width, identifier = body[0], body[1], body[2]
            try:
                size = int(width)
            except ValueError:
                logger.debug("Malformed $var width %r", width)
                continue
            if size < 1:
                logger.debug("Malformed $var width %r", width)
                continue

            base_name = " ".join(body[3:])
            full_name = ".".join([s for s in scope_stack if s] + [base_name])
            signal = Signal(identifier=identifier, name=full_name, kind=kind, size=size)
            waveform.signals[full_name] = signal
            by_identifier.setdefault(identifier, []).append(signal)

    waveform.timescale = normalize_timescale(timescale)
    if timescale is not None and waveform.timescale != timescale.replace(" ", ""):
        logger.debug("Timescale %r not understood, using %s", timescale, waveform.timescale)
    return by_identifier


def _parse_values(data: str, waveform: Waveform, by_identifier: dict[str, list[Signal]]) -> None:
    current_time = 0
    in_comment = False
    unknown_ids = set()

    def apply(identifier: str, value: str):
        targets = by_identifier.get(identifier)
        if not targets:
            unknown_ids.add(identifier)
            return
        for signal in targets:
            if not signal.record(current_time, value):
                logger.debug("Out-of-order change for %s at %d", signal.name, current_time)

    for line in data.split("\n"):
        tokens = line.split()
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            i += 1

            if in_comment:
                if tok == "$end":
                    in_comment = False
                continue

            if tok == "$comment":
                in_comment = True

            elif tok.startswith("$"):
                # $dumpvars, $dumpall, $end and friends carry no data
                continue

            elif tok.startswith("#"):
                # Time marker: #1000
                try:
                    time = int(tok[1:])
                except ValueError:
                    logger.debug("Skipping bad time marker %r", tok)
                    continue
                if time < 0:
                    logger.debug("Skipping negative time marker %r", tok)
                    continue
                current_time = time
                waveform.max_time = max(waveform.max_time, current_time)

            elif tok[0] in "bB":
                # Multi-bit value: b10101010 ! or bxxxxxxxx !
                if i >= len(tokens) or len(tok) < 2:
                    logger.debug("Skipping malformed vector change %r", line)
                    break
                apply(tokens[i], tok[1:].lower())
                i += 1

            elif tok[0] in "rR":
                # Real values are not modelled
                i += 1

            elif tok[0] in SCALAR_VALUES:
                # Single bit: 0! or 1!
                if len(tok) < 2:
                    logger.debug("Skipping scalar change without identifier %r", line)
                    continue
                apply(tok[1:], tok[0].lower())

            else:
                logger.debug("Skipping unrecognised data token %r", tok)

    if unknown_ids:
        logger.debug("Ignored changes for %d undeclared identifiers", len(unknown_ids))


def reconstruct_vectors(signals: dict[str, Signal]) -> dict[str, Signal]:
    """Merge bit-blasted single-bit signals into composite buses.

    Signals named ``base [n]`` sharing a base become ``base[max:min]``.
    Gaps in the index range read as 'x'. The table is rewritten in place
    and returned.
    """
    groups: dict[str, dict[int, Signal]] = {}

    for name, signal in signals.items():
        if signal.size != 1:
            continue
        match = BIT_INDEX_PATTERN.match(name)
        if match:
            base = match.group(1).strip()
            groups.setdefault(base, {})[int(match.group(2))] = signal

    for base, bits in groups.items():
        if len(bits) < 2:
            continue

        max_bit = max(bits)
        min_bit = min(bits)

        times = sorted({t.time for sig in bits.values() for t in sig.values})

        values = []
        for time in times:
            value = "".join(
                value_at(bits[idx], time) if idx in bits else UNKNOWN
                for idx in range(max_bit, min_bit - 1, -1)
            )
            values.append(Transition(time=time, value=value))

        composite = Signal(
            identifier=f"composite_{base}",
            name=f"{base}[{max_bit}:{min_bit}]",
            kind="wire",
            size=max_bit - min_bit + 1,
            values=values,
        )

        for sig in bits.values():
            signals.pop(sig.name, None)
        signals[composite.name] = composite
        logger.debug("Merged %d bits into %s", len(bits), composite.name)

    return signals


def parse_vcd(content: str, reconstruct: bool = True) -> Waveform:
    """Parse VCD text into a Waveform.

    Never raises on malformed input: bad lines are skipped, a missing
    $enddefinitions yields an empty waveform.
    """
    waveform = Waveform()

    split_at = content.find(HEADER_TERMINATOR)
    if split_at < 0:
        logger.info("No %s marker found, returning empty waveform", HEADER_TERMINATOR)
        return waveform

    header = content[:split_at]
    data = content[split_at + len(HEADER_TERMINATOR):]

    by_identifier = _parse_header(header, waveform)
    _parse_values(data, waveform, by_identifier)

    if reconstruct:
        reconstruct_vectors(waveform.signals)

    logger.info(
        "Parsed %d signals, timescale %s, max time %d",
        len(waveform.signals), waveform.timescale, waveform.max_time
    )
    return waveform


def parse_vcd_file(vcd_path: str | Path, reconstruct: bool = True) -> Waveform:
    """Parse a VCD file into a Waveform object."""
    vcd_path = Path(vcd_path)
    if not vcd_path.exists():
        raise FileNotFoundError(f"VCD file not found: {vcd_path}")

    return parse_vcd(vcd_path.read_text(errors="replace"), reconstruct=reconstruct)


def find_signal_by_name(waveform: Waveform, name: str) -> Signal | None:
    """Find signal by name (exact match first, then hierarchical suffix)."""
    signal = waveform.signals.get(name)
    if signal is not None:
        return signal
    for sig in waveform.signals.values():
        if sig.name.endswith("." + name):
            return sig
    return None


def get_waveform_summary(waveform: Waveform) -> dict:
    """Get summary of waveform for API response."""
    signals_info = []
    for name, signal in waveform.signals.items():
        signals_info.append({
            "id": signal.identifier,
            "name": name,
            "kind": signal.kind,
            "width": signal.size,
            "transitions": len(signal.values),
            "frequency_hz": signal_frequency(signal, waveform.timescale) if signal.size == 1 else None
        })

    return {
        "timescale": waveform.timescale,
        "max_time": waveform.max_time,
        "signal_count": len(waveform.signals),
        "signals": signals_info
    }


if __name__ == "__main__":
    test_vcd = """
$timescale 1ns $end
$scope module testbench $end
$var wire 1 ! clk $end
$var wire 1 " data [1] $end
$var wire 1 # data [0] $end
$upscope $end
$enddefinitions $end
$dumpvars
0!
0"
1#
$end
#10
1!
#20
0!
1"
"""

    wf = parse_vcd(test_vcd)
    print("Signals:", [(s.name, s.size) for s in wf.signals.values()])
    print("Max time:", wf.max_time)
    print("data at t=25:", wf.get_value_at_time("testbench.data[1:0]", 25))
