"""
Tool layer over the VCD parser and protocol decoders.
Every tool takes plain arguments and returns a JSON-ready dict.
"""

import logging
from dataclasses import asdict

from decoders import DecodedEvent, ProtocolConfig, decode_protocol
from numeric import bin_to_hex, convert_ticks_to_unit
from vcd_parser import (
    Waveform,
    find_signal_by_name,
    get_waveform_summary,
    parse_vcd,
    parse_vcd_file,
    value_at,
)


logger = logging.getLogger(__name__)


def events_to_dict(events: list[DecodedEvent]) -> list[dict]:
    """Convert decoded events to dicts for JSON serialization."""
    return [asdict(e) for e in events]


def analyze_vcd(vcd_path: str) -> dict:
    """Analyze VCD file and return summary."""
    try:
        waveform = parse_vcd_file(vcd_path)
    except OSError as e:
        logger.info("Could not read %s: %s", vcd_path, e)
        return {"error": str(e)}
    return get_waveform_summary(waveform)


def signal_value(waveform: Waveform, name: str, time: int, unit: str | None = None) -> dict:
    signal = find_signal_by_name(waveform, name)
    if signal is None:
        return {"error": f"Signal '{name}' not found"}

    value = value_at(signal, time)
    result = {
        "signal": signal.name,
        "time": time,
        "value": value,
        "hex": bin_to_hex(value)
    }
    if unit is not None:
        try:
            result["time_in_unit"] = convert_ticks_to_unit(time, waveform.timescale, unit)
        except ValueError as e:
            return {"error": str(e)}
        result["unit"] = unit
    return result


def signal_transitions(waveform: Waveform, name: str, start: int, end: int | None) -> dict:
    signal = find_signal_by_name(waveform, name)
    if signal is None:
        return {"error": f"Signal '{name}' not found"}

    if end is None:
        end = waveform.max_time
    return {
        "signal": signal.name,
        "transitions": [
            asdict(t) for t in waveform.get_transitions_in_range(signal.name, start, end)
        ]
    }


def decode(waveform: Waveform, config: ProtocolConfig) -> dict:
    events = decode_protocol(waveform, config)
    return {
        "type": config.type,
        "count": len(events),
        "events": events_to_dict(events)
    }


def execute_tool(name: str, args: dict) -> dict:
    """Execute a tool and return result as dict."""
    if name == "parse_vcd":
        waveform = parse_vcd(args["content"], args.get("reconstruct_vectors", True))
        return get_waveform_summary(waveform)

    elif name == "analyze_vcd":
        return analyze_vcd(args["vcd_path"])

    elif name == "value_at":
        return signal_value(args["waveform"], args["signal"], args["time"], args.get("unit"))

    elif name == "transitions":
        return signal_transitions(
            args["waveform"],
            args["signal"],
            args.get("start", 0),
            args.get("end")
        )

    elif name == "decode":
        return decode(args["waveform"], args["config"])

    else:
        return {"error": f"Unknown tool: {name}"}
