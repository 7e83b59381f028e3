"""Text command interface on the uplink serial port."""

from __future__ import annotations

import re

from .mdb_types import MdbState, PollReply
from .pins import PIN12_OFF, PIN12_ON
from .usart import Direction
from .vendstate import VendState

MAX_CMD_LENGTH = 20

_INTEGER = re.compile(r"[+-]?[0-9]+")
_C_SPACE = " \t\n\v\f\r"

_STATE_NAMES = {
    MdbState.INACTIVE: "INACTIVE",
    MdbState.DISABLED: "DISABLED",
    MdbState.ENABLED: "ENABLED",
    MdbState.SESSION_IDLE: "SESSION IDLE",
    MdbState.VENDING: "VEND",
    MdbState.REVALUE: "REVALUE",
    MdbState.NEGATIVE_VEND: "NEGATIVE VEND",
}

_HELP = (
    "-----------------------------------------------\r\n",
    "reset:\r\n   reset the Arduino\r\n",
    "info:\r\n   shows the VMC infos transfered during the setup process\r\n",
    "mdb-state:\r\n   displays the current MDB state.\r\n",
    "start-session <funds>:\r\n   starts a session with <funds> Euro Cents.\r\n",
    "approve-vend <vend-amount>:\r\n   approves a vend request with <vend-amount> Euro Cents.\r\n",
    "deny-vend:\r\n   denies a vend request.\r\n",
    "-----------------------------------------------\r\n",
)


def c_atoi(text):
    """Leading integer of text as the C library reads it; 0 when there is none."""
    if text is None:
        return 0
    match = _INTEGER.match(text.lstrip(_C_SPACE))
    return int(match.group()) if match else 0


def _trunc_divmod(value, divisor):
    """Quotient and remainder with the quotient truncated toward zero."""
    quotient = abs(value) // divisor
    if value < 0:
        quotient = -quotient
    return quotient, value - quotient * divisor


class Uplink:
    """Reads commands typed on the uplink port and drives the vend timer."""

    def __init__(self, ctx):
        self.ctx = ctx
        self._line = [""] * MAX_CMD_LENGTH
        self._index = 0
        self._timer_on = False
        self._timer_pass = 0
        self.vend_value = None
        self.payment_method = 0
        self.commands = {
            "reset": self.cmd_reset,
            "help": self.cmd_help,
            "info": self.cmd_info,
            "mdb-state": self.cmd_mdb_state,
            "start-session": self.cmd_start_session,
            "approve-vend": self.cmd_approve_vend,
            "deny-vend": self.cmd_deny_vend,
            "cancel-session": self.cmd_cancel_session,
            "io": self.cmd_io,
            "invokevend": self.invoke_vend,
        }

    # -- line editing -------------------------------------------------

    def handle_input(self):
        """Consume one received character; False when none was waiting."""
        port = self.ctx.uplink
        if port.buffer_level(Direction.RX) < 1:
            return False
        if self._index >= MAX_CMD_LENGTH:
            self._index = 0
        char = port.recv_char()
        index = self._index
        self._line[index] = char

        if char == "\r":
            port.send_str("\r\n")
            line = "".join(self._line[:index]).split("\0", 1)[0]
            self._index = 0
            self.parse(line)
        elif char == "\n":
            pass
        elif char == "\b":
            self._index = max(index - 1, 0)
            port.send_char("\b")
        elif char in ("\x1b", "["):
            self._index = index + 1
        elif index >= 2 and self._line[index - 1] == "[" and self._line[index - 2] == "\x1b":
            # Drop a complete escape sequence such as a cursor key.
            self._index = index - 2
        else:
            port.send_char(char)
            self._index = index + 1
        return True

    def parse(self, line):
        """Run the command named by the first word of line."""
        name, sep, rest = line.partition(" ")
        command = self.commands.get(name.lower())
        if command is None:
            self.ctx.log("Error: Unknown command\r\n")
            return
        command(rest if sep else None)

    # -- commands -----------------------------------------------------

    def cmd_reset(self, arg):
        """Restart the device."""
        self.ctx.log("@RESETTING DEVICE*\r\n")
        self.ctx.request_reset()

    def cmd_help(self, arg):
        """List the commands."""
        for text in _HELP:
            self.ctx.log(text)

    def cmd_info(self, arg):
        """Show the configuration the vending machine sent during setup."""
        ctx = self.ctx
        if ctx.state < MdbState.ENABLED:
            ctx.log("Error: Setup not yet completed!\r\n")
            return
        ctx.log("@-----------------------------------------------\r\n")
        ctx.log("## VMC configuration data ##\r\n")
        ctx.log(f"VMC feature level:       {ctx.vmc.feature_level}\r\n")
        ctx.log(f"VMC display columns:     {ctx.vmc.display_cols}\r\n")
        ctx.log(f"VMC display rows:        {ctx.vmc.display_rows}\r\n")
        ctx.log(f"VMC display info:        {ctx.vmc.display_info}\r\n")
        ctx.log("##    VMC price range     ##\r\n")
        ctx.log(f"Maximum price:           {ctx.price.max}\r\n")
        ctx.log(f"Minimum price:           {ctx.price.min}\r\n")
        ctx.log("-----------------------------------------------*\r\n")

    def cmd_mdb_state(self, arg):
        """Show the current MDB state."""
        name = _STATE_NAMES.get(self.ctx.state)
        if name is not None:
            self.ctx.log(f"@State: {name}*\r\n")

    def cmd_start_session(self, arg):
        """Begin a session with the given funds."""
        ctx = self.ctx
        if ctx.state != MdbState.ENABLED:
            ctx.log("Error: MateDealer not ready for a session\r\n")
            return
        if ctx.session.start.flag:
            ctx.log("Error: Session is already running\r\n")
            return
        ctx.session.start.flag = True
        ctx.log("cmd start session00")
        ctx.session.start.funds = c_atoi(arg) & 0xFFFF
        ctx.poll_reply = PollReply.BEGIN_SESSION

    def cmd_approve_vend(self, arg):
        """Approve the pending vend for the given amount."""
        ctx = self.ctx
        if ctx.state != MdbState.VENDING:
            ctx.log("Error: MateDealer is not in a suitable state to approve a vend\r\n")
            return
        amount = c_atoi(arg)
        ctx.session.result.vend_approved = True
        ctx.session.result.vend_amount = amount & 0xFFFF
        ctx.log(f"cmd-approved {amount}")
        ctx.poll_reply = PollReply.VEND_APPROVED

    def cmd_deny_vend(self, arg):
        """Deny the pending vend."""
        ctx = self.ctx
        if ctx.state != MdbState.VENDING:
            ctx.log("Error: MateDealer is not in a suitable state to deny a vend\r\n")
            return
        ctx.session.result.vend_denied = True
        ctx.poll_reply = PollReply.VEND_DENIED

    def cmd_cancel_session(self, arg):
        """Ask the vending machine to cancel the running session."""
        ctx = self.ctx
        if ctx.state != MdbState.SESSION_IDLE:
            ctx.log("Error: MateDealer is not in a suitable state to cancel a session\r\n")
            return
        ctx.poll_reply = PollReply.SESSION_CANCEL_REQ

    def cmd_io(self, arg):
        """Drive an output: ``io 1200`` turns pin 12 off, ``io 1201`` on."""
        quotient, remainder = _trunc_divmod(c_atoi(arg), 100)
        pin = quotient & 0xFFFF
        pin_state = remainder & 0xFFFF
        if pin != 12:
            return
        ctx = self.ctx
        if pin_state == 0:
            ctx.log("@IO: PIN12 OFF*\r\n")
            ctx.tx_switch.portb = PIN12_OFF
        elif pin_state == 1:
            ctx.log("@PO: PIN12 ON*\r\n")
            ctx.tx_switch.portb = PIN12_ON
        elif pin_state == 2:
            ctx.log("@IO: PLAY3*\r\n")
        elif pin_state == 3:
            ctx.log("@IO: PLAY4*\r\n")

    def invoke_vend(self, arg):
        """Start a timed vend: ``<amount> <transaction id> <payment method>``."""
        tokens = [token for token in (arg or "").split(" ") if token]
        tokens += [None] * (3 - len(tokens))
        value, transaction, method = tokens[:3]
        self.vend_value = value
        amount = c_atoi(value)
        transaction_id = c_atoi(transaction)
        payment = c_atoi(method)
        self.payment_method = payment & 0xFF
        ctx = self.ctx
        ctx.log(f"a=={amount} b=={transaction_id} c=={payment} \r\n")
        ctx.log(f"LAST STATE={ctx.vend_states.last()}\r\n")
        self.start_timer()
        ctx.log(f"VendInvoked with Ammount:  {amount & 0xFFFF}\r\n")

    # -- vend timer ---------------------------------------------------

    def start_timer(self):
        """Start the vend timer."""
        self._timer_on = True

    def stop_timer(self):
        """Stop the vend timer and forget the vend value."""
        self._timer_on = False
        self._timer_pass = 0
        self.vend_value = "0"

    def timer_running(self):
        """True while the vend timer runs."""
        return self._timer_on

    def timer_pass(self):
        """Number of timer periods handled so far."""
        return self._timer_pass

    def increment_timer_pass(self):
        """Count one more timer period."""
        self._timer_pass = (self._timer_pass + 1) & 0xFF

    def reset_device(self):
        """Stop the timer and restart the device."""
        self.stop_timer()
        self.ctx.request_reset()

    def time_handler(self, tick):
        """Take the vend sequence's action for the given timer period."""
        succeeded = self.ctx.vend_states.current == VendState.SUCCESS
        if tick == 0:
            self.cmd_start_session(self.vend_value)
        if tick == 3:
            # The customer is assumed to have made a selection by now.
            self.cmd_approve_vend(self.vend_value)
        if tick == 9 and succeeded:
            self.ctx.log("@vend-success*\r\n")
        if tick == 12 and succeeded:
            self.reset_device()
        if tick == 27:
            self.cmd_approve_vend(self.vend_value)
        if tick == 33:
            self.ctx.log("@vend-success*\r\n" if succeeded else "@vend-failed*\r\n")
        if tick in (38, 42):
            self.reset_device()
        self.increment_timer_pass()