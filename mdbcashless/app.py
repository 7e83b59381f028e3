"""The firmware's main loop, run against simulated peripherals."""

from __future__ import annotations

import argparse
import itertools
import sys

from .clock import MillisClock
from .device import MdbDevice
from .mdb_types import DeviceReset, MdbContext
from .pins import PIN12, PIN13, TxSwitch
from .uplink import Uplink
from .usart import BufferFull, Direction, Usart
from .vendstate import Eeprom, VendStateStore

UPLINK_USART = 0
MDB_USART = 1
AUX_USART = 2

_TIMER_PERIOD_MS = 1000


class _DrainingPort(Usart):
    """A port whose transmitter empties into a list, like the send interrupt."""

    def __init__(self, number, baudrate, framelength, parity, stopbits, sink):
        self.sink = sink
        super().__init__(number, baudrate, framelength, parity, stopbits)

    def _write(self, direction, value):
        try:
            super()._write(direction, value)
        except BufferFull:
            if direction is not Direction.TX:
                raise
            # The sender waits until the interrupt has made room.
            self.drain()
            super()._write(direction, value)

    def drain(self):
        """Transmit everything queued into the sink."""
        unit = 2 if self.nine_bit else 1
        while self.buffer_level(Direction.TX) >= unit:
            self.sink.append(self.transmit_next())


class Firmware:
    """The cashless device: MDB handler, uplink commands and vend timer."""

    def __init__(self, eeprom=None):
        self.eeprom = eeprom if eeprom is not None else Eeprom()
        self.console = []
        self.mdb_wire = []
        self.aux_wire = []
        self.resets = 0
        self._build()

    def _build(self):
        self.uplink_port = _DrainingPort(UPLINK_USART, 38400, 8, "N", 1, self.console)
        self.mdb_port = _DrainingPort(MDB_USART, 9600, 9, "N", 1, self.mdb_wire)
        self.aux_port = _DrainingPort(AUX_USART, 9600, 8, "N", 1, self.aux_wire)
        self.clock = MillisClock()
        self.tx_switch = TxSwitch(self.uplink_port)
        self.vend_states = VendStateStore(self.eeprom, self.uplink_port)
        self.ctx = MdbContext(self.mdb_port, self.uplink_port, self.tx_switch, self.vend_states)
        self.device = MdbDevice(self.ctx)
        self.uplink = Uplink(self.ctx)
        self._last_changed = 0

    def _flush(self):
        for port in (self.uplink_port, self.mdb_port, self.aux_port):
            port.drain()

    def boot(self):
        """Configure the outputs and announce the device."""
        self.tx_switch.setup(PIN12)
        self.tx_switch.setup(PIN13)
        self.tx_switch.set_state(PIN13, 0)
        self.tx_switch.set_state(PIN12, 1)
        self.ctx.log("MDB Arduino Mega is Setting Up\r\n")
        self._flush()

    def step(self):
        """One pass of the main loop; a requested reset restarts the device."""
        try:
            self.device.handle()
            self.uplink.handle_input()
            if self.uplink.timer_running():
                now = self.clock.get()
                if (now - self._last_changed) & 0xFFFFFFFF >= _TIMER_PERIOD_MS:
                    self.ctx.log("5s Passed\r\n")
                    self.uplink.time_handler(self.uplink.timer_pass())
                    self._last_changed = now
        except DeviceReset:
            # Memory starts afresh; only the EEPROM keeps its contents.
            self._flush()
            self.resets += 1
            self._build()
            self.boot()
            return
        self._flush()

    def run(self, iterations=None):
        """Run the main loop, forever when iterations is None."""
        steps = itertools.count() if iterations is None else range(iterations)
        for _ in steps:
            self.step()


def _advance(firmware, ms):
    firmware.step()
    firmware.clock.tick(ms)


def main(argv=None):
    """Type stdin lines into the uplink port and print what the device answers."""
    parser = argparse.ArgumentParser(
        prog="mdbcashless",
        description="Run the cashless device, reading uplink commands from stdin.",
    )
    parser.add_argument("--ms-per-step", type=int, default=1,
                        help="milliseconds the clock advances per loop pass")
    parser.add_argument("--settle", type=int, default=50,
                        help="loop passes to run after each line")
    args = parser.parse_args(argv)

    firmware = Firmware()
    firmware.boot()
    shown = 0

    def show():
        nonlocal shown
        sys.stdout.write("".join(map(chr, firmware.console[shown:])))
        sys.stdout.flush()
        shown = len(firmware.console)

    show()
    for line in sys.stdin:
        for char in line.rstrip("\r\n") + "\r":
            code = ord(char)
            firmware.uplink_port.receive_byte(code if code <= 0xFF else ord("?"))
            _advance(firmware, args.ms_per_step)
        for _ in range(args.settle):
            _advance(firmware, args.ms_per_step)
        show()
    return 0