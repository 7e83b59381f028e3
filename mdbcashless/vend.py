"""Handling of the VEND command from the vending machine."""

from __future__ import annotations

from .mdb_types import ACK as ACK_WORD
from .mdb_types import MdbCommand, MdbState, PollReply
from .usart import Direction
from .vendstate import VendState


class VendHandler:
    """Handles one VEND command across repeated calls.

    The subcommand is kept between calls, so a command whose data has not
    yet arrived is resumed once enough bytes are buffered.
    """

    def __init__(self, ctx):
        self.ctx = ctx
        self.data = [0] * 6
        self.state = 0
        self._subcommands = {
            0: self._request,
            1: self._cancel,
            2: self._success,
            3: self._failure,
            4: self._complete,
        }

    def _level(self):
        return self.ctx.usart.buffer_level(Direction.RX)

    def _fetch(self, first, stop):
        for i in range(first, stop):
            self.data[i] = self.ctx.usart.recv_mdb() & 0xFF

    def _valid(self, count):
        """True when the data before index count sums to the checksum at count."""
        total = MdbCommand.VEND + sum(self.data[:count])
        return total & 0xFF == self.data[count]

    def _bad_checksum(self):
        self.state = 0
        self.ctx.finish()
        self.ctx.log("Error: invalid checksum [VEND]\r\n")

    def _acknowledge(self, mdb_state, reply=PollReply.ACK):
        ctx = self.ctx
        ctx.send(ACK_WORD)
        self.state = 0
        ctx.state = mdb_state
        ctx.finish(reply)

    def handle(self):
        """Advance the vend command as far as buffered data allows."""
        self.ctx.log("MDB-VEND00\r\n")
        if self.state == 0:
            if self._level() < 2:
                return
            self.data[0] = self.ctx.usart.recv_mdb() & 0xFF
            self.state = 1
        handler = self._subcommands.get(self.data[0])
        if handler is not None:
            handler()

    def _request(self):
        if self._level() < 10:
            return
        self._fetch(1, 6)
        if not self._valid(5):
            self._bad_checksum()
            return
        line = "@vend-request {};{};{};{};{}*\r\n".format(*self.data[1:6])
        self.ctx.log(line)
        self.ctx.log(line)
        self._acknowledge(MdbState.VENDING)

    def _cancel(self):
        if self._level() < 2:
            return
        self._fetch(1, 2)
        self.ctx.vend_states.current = VendState.FAILURE
        if not self._valid(1):
            self._bad_checksum()
            return
        self.ctx.log("vend-cancel\r\n")
        self._acknowledge(MdbState.SESSION_IDLE, PollReply.VEND_DENIED)
        self.ctx.request_reset()

    def _success(self):
        if self._level() < 6:
            return
        self.ctx.vend_states.current = VendState.SUCCESS
        self._fetch(1, 4)
        if not self._valid(3):
            self._bad_checksum()
            return
        self.ctx.log(f"vend-success {self.data[1] + self.data[2]}\r\n")
        self._acknowledge(MdbState.SESSION_IDLE)

    def _failure(self):
        if self._level() < 2:
            return
        self._fetch(1, 2)
        if not self._valid(1):
            self._bad_checksum()
            return
        self.ctx.log("vend-failure\r\n")
        self.ctx.vend_states.current = VendState.FAILURE
        self._acknowledge(MdbState.ENABLED)
        self.ctx.request_reset()

    def _complete(self):
        if self._level() < 2:
            return
        self.ctx.vend_states.current = VendState.SUCCESS
        self._fetch(1, 2)
        if not self._valid(1):
            self._bad_checksum()
            return
        self.ctx.log("session-complete\r\n")
        self._acknowledge(MdbState.ENABLED)