import pytest

from decoders import ProtocolConfig
from tools import execute_tool
from vcd_parser import parse_vcd


def test_parse_tool(clock_vcd):
    result = execute_tool("parse_vcd", {"content": clock_vcd})
    assert result["signal_count"] == 1
    assert result["timescale"] == "1ns"


def test_value_tool_uses_suffix_lookup(avalon_vcd):
    wf = parse_vcd(avalon_vcd)
    result = execute_tool("value_at", {"waveform": wf, "signal": "waitrequest", "time": 13})
    assert result == {"signal": "tb.waitrequest", "time": 13, "value": "1", "hex": "1"}


def test_transitions_tool_defaults_to_whole_dump(clock_vcd):
    wf = parse_vcd(clock_vcd)
    result = execute_tool("transitions", {"waveform": wf, "signal": "clk"})
    assert [t["time"] for t in result["transitions"]] == [0, 5, 10, 15]


def test_decode_tool_uart():
    bit = 100  # 10 Mbaud at 1ns
    text = "$timescale 1ns $end\n$var wire 1 ! rx $end\n$enddefinitions $end\n#0\n1!\n#1000\n0!\n"
    # 'R' = 0x52, LSB first 0 1 0 0 1 0 1 0
    for k, b in enumerate("01001010"):
        text += f"#{1000 + bit * (k + 1)}\n{b}!\n"
    text += f"#{1000 + bit * 9}\n1!\n"
    wf = parse_vcd(text)

    result = execute_tool("decode", {
        "waveform": wf,
        "config": ProtocolConfig(type="UART", signals=["rx"], baud_rate=10_000_000),
    })

    assert result["count"] == 1
    assert result["events"][0]["label"] == "R"


def test_errors_are_returned_not_raised(clock_vcd):
    wf = parse_vcd(clock_vcd)
    assert "error" in execute_tool("value_at", {"waveform": wf, "signal": "nope", "time": 0})
    assert "error" in execute_tool("analyze_vcd", {"vcd_path": "/nonexistent/dump.vcd"})
    assert execute_tool("bogus", {}) == {"error": "Unknown tool: bogus"}


def test_value_tool_converts_time_to_unit(clock_vcd):
    wf = parse_vcd(clock_vcd)

    result = execute_tool("value_at", {"waveform": wf, "signal": "clk", "time": 1500, "unit": "us"})
    assert result["time_in_unit"] == pytest.approx(1.5)
    assert result["value"] == "1"

    assert "error" in execute_tool("value_at", {"waveform": wf, "signal": "clk", "time": 0, "unit": "hours"})
