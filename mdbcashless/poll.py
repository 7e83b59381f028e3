"""Answers to POLL commands from the vending machine."""

from __future__ import annotations

from .mdb_types import ACK, MdbCommand, MdbState, PollReply
from .pins import PIN12
from .usart import Direction


class PollResponder:
    """Handles one POLL command across repeated calls.

    ``state`` is 0 while waiting for the checksum, 1 once the poll is
    validated and 2 while waiting for the machine to acknowledge a reply.
    """

    def __init__(self, ctx):
        self.ctx = ctx
        self.state = 0

    def _has_word(self):
        return self.ctx.usart.buffer_level(Direction.RX) >= 2

    def _fail(self, text):
        self.ctx.finish()
        self.state = 0
        self.ctx.log(text)

    def _done(self):
        self.ctx.finish()
        self.state = 0

    def _send_with_amount(self, code, amount):
        high = (amount >> 8) & 0xFF
        low = amount & 0xFF
        ctx = self.ctx
        ctx.send(code)
        ctx.send(high)
        ctx.send(low)
        ctx.send(((code + high + low) & 0xFF) | 0x100)

    def _await_ack(self, error, on_ack, on_error=None):
        """Wait for the machine's ACK; returns without change if none is buffered."""
        if not self._has_word():
            return
        if self.ctx.usart.recv_mdb() != 0x000:
            if on_error is not None:
                on_error()
            self._fail(f"Error: no ACK received on [{error}]\r\n")
            return
        on_ack()
        self._done()

    def handle(self):
        """Advance the poll exchange as far as buffered data allows."""
        ctx = self.ctx
        if self.state == 0:
            if not self._has_word():
                return
            if ctx.usart.recv_mdb() != MdbCommand.POLL:
                self._fail("Error: Invalid checksum [Poll]\r\n")
                return
            self.state = 1

        reply = ctx.poll_reply
        session = ctx.session

        if reply == PollReply.ACK:
            ctx.send(ACK)
            ctx.finish()
            ctx.log("ACK00\r\n")
            ctx.tx_switch.set_state(PIN12, 1)
            self.state = 0

        elif reply == PollReply.JUST_RESET:
            if self.state == 1:
                ctx.send(0x000)
                ctx.send(0x100)
                ctx.log("JustREset00\r\n")
                self.state = 2
            elif self.state == 2:
                self._await_ack("JUST RESET", lambda: None)

        elif reply == PollReply.DISPLAY_REQ:
            for word in (0x002, 0x032, 0x049, 0x04F, 0x054, 0x041):
                ctx.send(word)
            self._done()

        elif reply == PollReply.BEGIN_SESSION:
            if session.start.flag and self.state == 1:
                self._send_with_amount(0x003, session.start.funds)
                ctx.log("BeginSession00\r\n")
                self.state = 2
            elif session.start.flag and self.state == 2:

                def clear_start():
                    session.start.flag = False
                    session.start.funds = 0

                def begun():
                    clear_start()
                    ctx.state = MdbState.SESSION_IDLE

                self._await_ack("START SESSION", begun, clear_start)

        elif reply == PollReply.SESSION_CANCEL_REQ:
            if self.state == 1:
                ctx.send(0x004)
                ctx.send(0x104)
                ctx.log("SessionCancelled00\r\n")
                self.state = 2
            elif self.state == 2:

                def clear_start():
                    session.start.flag = False
                    session.start.funds = 0

                self._await_ack("SESSION CANCEL REQ", clear_start, clear_start)

        elif reply == PollReply.VEND_APPROVED:
            if session.result.vend_approved and self.state == 1:
                self._send_with_amount(0x005, session.result.vend_amount)
                self.state = 2
            elif session.result.vend_approved and self.state == 2:

                def clear_result():
                    session.result.vend_approved = False
                    session.result.vend_amount = 0

                self._await_ack("VEND APPROVE", clear_result, clear_result)

        elif reply == PollReply.VEND_DENIED:
            if session.result.vend_denied and self.state == 1:
                ctx.send(0x006)
                ctx.send(0x106)
                self.state = 2
            elif session.result.vend_denied and self.state == 2:

                def clear_denied():
                    session.start.flag = False
                    session.start.funds = 0
                    session.result.vend_denied = False

                self._await_ack("VEND DENY", clear_denied, clear_denied)

        elif reply == PollReply.END_SESSION:
            if self.state == 1:
                ctx.send(0x007)
                ctx.send(0x107)
                ctx.log("EndSession00\r\n")
                self.state = 2
            elif self.state == 2:
                self._await_ack("END SESSION", lambda: None)

        elif reply == PollReply.CANCELED:
            if self.state == 1:
                ctx.send(0x008)
                ctx.send(0x108)
                self.state = 2
            elif self.state == 2:
                self._await_ack("REPLY CANCELED", lambda: None)

        # READER_CFG, PERIPHERIAL_ID, ERROR and CMD_OUT_SEQUENCE get no answer.