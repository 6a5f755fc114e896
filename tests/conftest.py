import pytest

from vcd_parser import Signal, Transition


CLOCK_VCD = """
$timescale 1ns $end
$var wire 1 ! clk $end
$enddefinitions $end
#0
0!
#5
1!
#10
0!
#15
1!
"""

AVALON_VCD = """
$date today $end
$timescale 1 ns $end
$scope module tb $end
$var wire 1 ! clk $end
$var wire 4 " address [3:0] $end
$var wire 1 # write $end
$var wire 8 ) writedata [7:0] $end
$var wire 1 % waitrequest $end
$var wire 1 & read $end
$var wire 8 ' readdata [7:0] $end
$var wire 1 ( readdatavalid $end
$upscope $end
$enddefinitions $end
$dumpvars
0!
b0100 "
1#
b11111111 )
0%
0&
b00000000 '
0(
$end
#5
1!
#10
0!
#12
1%
#15
1!
#18
0%
0#
1&
#20
0!
#25
1!
#28
0&
1(
b00010010 '
#30
0!
#35
1!
#38
0(
#40
0!
#45
1!
"""


def make_signal(changes, name="sig", size=1):
    """Build a Signal from (time, value) pairs without collapsing."""
    return Signal(
        identifier=name,
        name=name,
        kind="wire",
        size=size,
        values=[Transition(time=t, value=v) for t, v in changes],
    )


def uart_changes(byte, start, bit_ticks):
    """Idle-high 8N1 frame for `byte` with its start bit at `start`."""
    changes = [(start, "0")]
    for b in range(8):
        changes.append((start + bit_ticks * (b + 1), str((byte >> b) & 1)))
    changes.append((start + bit_ticks * 9, "1"))
    return changes


@pytest.fixture
def clock_vcd():
    return CLOCK_VCD


@pytest.fixture
def avalon_vcd():
    return AVALON_VCD
