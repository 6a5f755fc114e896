"""
Protocol decoders over parsed VCD signals.
Each decoder walks recorded transitions as an edge-driven state machine and
returns DecodedEvent lists ordered by start time.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal

from numeric import bin_to_hex, round_half_up, timescale_to_seconds
from vcd_parser import Signal, Waveform, find_signal_by_name, rising_edges, value_at


logger = logging.getLogger(__name__)

ProtocolType = Literal["UART", "SPI", "Avalon"]

UART_FRAME_BITS = 10  # start + 8 data + stop


@dataclass
class DecodedEvent:
    start_time: int
    end_time: int
    data: str
    label: str


@dataclass
class ProtocolConfig:
    """Decoder selection: type, positional signal names and options.

    Signal order per type:
      UART:   [line]
      SPI:    [sclk, mosi, miso, cs]
      Avalon: [clk, address, read, write, writedata, readdata,
               waitrequest, readdatavalid]
    """
    type: ProtocolType
    signals: list[str] = field(default_factory=list)
    baud_rate: int = 9600
    cpol: int = 0
    cpha: int = 0

    def cache_key(self) -> tuple:
        return (self.type, tuple(self.signals), self.baud_rate, self.cpol, self.cpha)


def _byte_label(byte: int) -> str:
    if 0x20 <= byte <= 0x7E:
        return chr(byte)
    return f"\\x{byte:02X}"


def decode_uart(signal: Signal, baud_rate: float, timescale: str) -> list[DecodedEvent]:
    """Decode an idle-high 8N1 UART line."""
    if baud_rate <= 0:
        logger.warning("UART baud rate must be positive, got %s", baud_rate)
        return []

    tick_seconds = timescale_to_seconds(timescale)
    bit_ticks = max(1, round_half_up(1 / (baud_rate * tick_seconds)))

    events = []
    values = signal.values
    if len(values) < 2:
        return events

    i = 1
    while i < len(values):
        # Start bit is a falling edge on the idle-high line
        if not (values[i - 1].value == "1" and values[i].value == "0"):
            i += 1
            continue

        start_time = values[i].time
        byte = 0
        for b in range(8):
            # Middle of data bit b, one bit period after the start bit's middle
            sample = value_at(signal, start_time + bit_ticks * (b + 1.5))
            if sample not in ("0", "1"):
                logger.debug("UART frame at %d abandoned: bit %d is %r", start_time, b, sample)
                byte = None
                break
            if sample == "1":
                byte |= 1 << b

        if byte is None:
            i += 1
            continue

        end_time = start_time + bit_ticks * UART_FRAME_BITS
        events.append(DecodedEvent(
            start_time=start_time,
            end_time=end_time,
            data=f"0x{byte:02X}",
            label=_byte_label(byte)
        ))

        while i < len(values) and values[i].time < end_time:
            i += 1

    return events


def decode_spi(
    sclk: Signal,
    mosi: Signal | None = None,
    miso: Signal | None = None,
    cs: Signal | None = None,
    cpol: int = 0,
    cpha: int = 0
) -> list[DecodedEvent]:
    """Decode SPI bytes, MSB first, with an active-low chip select."""
    events = []
    if sclk is None:
        return events

    # Mode 0 and 3 sample on the rising edge, mode 1 and 2 on the falling edge
    sample_on_rising = bool(cpol) == bool(cpha)

    mosi_bits: list[int] = []
    miso_bits: list[int] = []
    byte_start = None

    values = sclk.values
    for i in range(1, len(values)):
        prev = values[i - 1]
        curr = values[i]

        if cs is not None and value_at(cs, curr.time) != "0":
            mosi_bits = []
            miso_bits = []
            byte_start = None
            continue

        is_rising = prev.value == "0" and curr.value == "1"
        is_falling = prev.value == "1" and curr.value == "0"
        if not (is_rising if sample_on_rising else is_falling):
            continue

        if byte_start is None:
            byte_start = curr.time

        if mosi is not None:
            mosi_bits.append(1 if value_at(mosi, curr.time) == "1" else 0)
        if miso is not None:
            miso_bits.append(1 if value_at(miso, curr.time) == "1" else 0)

        if len(mosi_bits) == 8 or len(miso_bits) == 8:
            mosi_byte = 0
            miso_byte = 0
            for bit in mosi_bits:
                mosi_byte = (mosi_byte << 1) | bit
            for bit in miso_bits:
                miso_byte = (miso_byte << 1) | bit

            events.append(DecodedEvent(
                start_time=byte_start,
                end_time=curr.time,
                data=f"MOSI: 0x{mosi_byte:02X}, MISO: 0x{miso_byte:02X}",
                label=f"M:{mosi_byte:02X} S:{miso_byte:02X}"
            ))

            mosi_bits = []
            miso_bits = []
            byte_start = None

    return events


def _is_high(signal: Signal | None, time: int) -> bool:
    return signal is not None and value_at(signal, time) == "1"


def _hex_at(signal: Signal | None, time: int) -> str:
    if signal is None:
        return bin_to_hex("X")
    return bin_to_hex(value_at(signal, time))


def decode_avalon(
    clk: Signal,
    address: Signal | None = None,
    read: Signal | None = None,
    write: Signal | None = None,
    writedata: Signal | None = None,
    readdata: Signal | None = None,
    waitrequest: Signal | None = None,
    readdatavalid: Signal | None = None
) -> list[DecodedEvent]:
    """Decode Avalon-MM transfers on rising clock edges.

    Writes, read requests and returned read data are reported as separate
    events; one edge can produce all three. Stalled edges are skipped.
    """
    events = []
    if clk is None or len(clk.values) < 2:
        return events

    edges = rising_edges(clk)
    clock_period = max(1, edges[1] - edges[0]) if len(edges) >= 2 else 1

    for time in edges:
        if _is_high(waitrequest, time):
            continue

        if _is_high(write, time):
            addr = _hex_at(address, time)
            data = _hex_at(writedata, time)
            events.append(DecodedEvent(
                start_time=time,
                end_time=time + clock_period,
                data=f"WRITE Addr: 0x{addr}, Data: 0x{data}",
                label=f"WR 0x{addr}"
            ))

        if _is_high(read, time):
            addr = _hex_at(address, time)
            events.append(DecodedEvent(
                start_time=time,
                end_time=time + clock_period,
                data=f"READ REQ Addr: 0x{addr}",
                label=f"RD REQ 0x{addr}"
            ))

        if _is_high(readdatavalid, time):
            data = _hex_at(readdata, time)
            events.append(DecodedEvent(
                start_time=time,
                end_time=time + clock_period,
                data=f"READ DATA: 0x{data}",
                label=f"RD DATA 0x{data}"
            ))

    return events


def decode_protocol(waveform: Waveform, config: ProtocolConfig) -> list[DecodedEvent]:
    """Run the decoder selected by `config` against `waveform`."""
    def lookup(position: int) -> Signal | None:
        if position >= len(config.signals) or not config.signals[position]:
            return None
        return find_signal_by_name(waveform, config.signals[position])

    primary = lookup(0)
    if primary is None:
        return []

    if config.type == "UART":
        return decode_uart(primary, config.baud_rate, waveform.timescale)

    elif config.type == "SPI":
        return decode_spi(
            primary, lookup(1), lookup(2), lookup(3),
            cpol=config.cpol, cpha=config.cpha
        )

    elif config.type == "Avalon":
        return decode_avalon(primary, *(lookup(p) for p in range(1, 8)))

    logger.warning("Unknown protocol type %r", config.type)
    return []
