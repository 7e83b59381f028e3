"""Command dispatch of the MDB cashless device."""

from __future__ import annotations

from .mdb_types import ACK, MdbCommand, MdbState, PollReply
from .pins import PIN12
from .poll import PollResponder
from .usart import Direction
from .vend import VendHandler

_STAGE3_WORDS = 31
_STAGE3_REPORTED = 32


def _c_hex(value):
    """Format like printf's %#08x: no prefix for zero."""
    return f"{value:#08x}" if value else "00000000"


class MdbDevice:
    """Receives commands from the vending machine and runs their handlers."""

    def __init__(self, ctx):
        self.ctx = ctx
        self.m = 0
        self._setup_state = 0
        self._setup_checksum = int(MdbCommand.SETUP)
        self._stage3_waiting = False
        self._poll = PollResponder(ctx)
        self._vend = VendHandler(ctx)
        self._handlers = {
            MdbCommand.RESET: self.reset,
            MdbCommand.SETUP: self.setup,
            MdbCommand.POLL: self.poll,
            MdbCommand.VEND: self.vend,
            MdbCommand.READER: self.reader,
        }

    def _level(self):
        return self.ctx.usart.buffer_level(Direction.RX)

    def handle(self):
        """Run one step of the active command, or wait for the next one."""
        if self._stage3_waiting:
            self.stage3()
            return
        cmd = self.ctx.active_cmd
        if cmd == MdbCommand.IDLE:
            self._await_command()
            return
        handler = self._handlers.get(cmd)
        if handler is not None:
            handler()

    def _await_command(self):
        ctx = self.ctx
        if self._level() < 2:
            return
        data = ctx.usart.recv_mdb()
        cmd = data ^ 0x100
        if data & 0x100 and MdbCommand.RESET <= cmd <= MdbCommand.READER:
            ctx.active_cmd = MdbCommand(cmd)
            if not ctx.reset_done and ctx.active_cmd != MdbCommand.RESET:
                ctx.active_cmd = MdbCommand.IDLE
                ctx.log("resetting\n")

    def reset(self):
        """Handle RESET: clear the vending machine's settings and acknowledge."""
        ctx = self.ctx
        if self._level() < 2:
            return
        if ctx.usart.recv_mdb() != MdbCommand.RESET:
            ctx.finish()
            ctx.log("Error: invalid checksum for [RESET]\r\n")
            return
        ctx.vmc.feature_level = 0
        ctx.vmc.display_cols = 0
        ctx.vmc.display_rows = 0
        ctx.vmc.display_info = 0
        ctx.price.max = 0
        ctx.price.min = 0
        ctx.send(ACK)
        ctx.reset_done = True
        ctx.state = MdbState.INACTIVE
        ctx.finish(PollReply.JUST_RESET)

    def setup(self):
        """Handle SETUP: exchange configuration and price range."""
        ctx = self.ctx
        data = [0] * 6
        if self._setup_state < 2:
            if self._level() < 12:
                return
            data = [ctx.usart.recv_mdb() & 0xFF for _ in range(6)]
            self._setup_checksum = (self._setup_checksum + sum(data[:5])) & 0xFF
            ctx.log(
                f"data[5]: {_c_hex(data[5])} ;;checksum-calc: "
                f"{_c_hex(self._setup_checksum)}\r\n"
            )
            if self._setup_checksum != data[5]:
                self._setup_state = 0
                ctx.finish()
                self._setup_checksum = int(MdbCommand.SETUP)
                ctx.log("Error: invalid checksum [SETUP]\r\n")
                return
            self._setup_state = data[0]

        state = self._setup_state
        if state == 0:
            ctx.vmc.feature_level = data[1]
            ctx.vmc.display_cols = data[2]
            ctx.vmc.display_rows = data[3]
            ctx.vmc.display_info = data[4]
            for word in ctx.config.words():
                ctx.send(word)
            ctx.send(ctx.config.checksum())
            self._setup_state = 2
            self._setup_checksum = int(MdbCommand.SETUP)
        elif state == 1:
            ctx.price.max = (data[1] << 8) | data[2]
            ctx.price.min = (data[3] << 8) | data[4]
            ctx.send(ACK)
            ctx.state = MdbState.ENABLED
            self._setup_state = 0
            self._setup_checksum = int(MdbCommand.SETUP)
            ctx.finish()
            ctx.log(
                f"stage2checksum: {_c_hex(self._setup_checksum)} "
                f"mdb_poll_reply : {_c_hex(int(ctx.poll_reply))}\r\n"
            )
            self.m = 1
            self.stage3()
        elif state == 2:
            if self._level() < 2:
                return
            answer = ctx.usart.recv_mdb() & 0xFF
            self._setup_state = 0
            ctx.finish()
            # Some machines acknowledge a repeated setup with 0x001.
            if answer not in (0x000, 0x001):
                ctx.log("Error: no ACK received on [SETUP]")
        else:
            ctx.log("Error: unknown subcommand [SETUP]\r\n")
            self._setup_state = 0
            ctx.finish()

    def stage3(self):
        """Exchange peripheral identification; True once it has been sent.

        Until the machine's identification data is fully buffered the device
        does nothing else, and ``handle`` keeps returning here.
        """
        ctx = self.ctx
        if not self._stage3_waiting:
            ctx.log("IN STAGE3\r\n")
            self._stage3_waiting = True
        if self._level() <= 2 * _STAGE3_WORDS:
            return False
        self._stage3_waiting = False
        ctx.log("02 IN STAGE3\r\n")
        received = [ctx.usart.recv_mdb() & 0xFF for _ in range(_STAGE3_WORDS)]
        received += [0] * (_STAGE3_REPORTED - len(received))
        ctx.log("Sending up stage 3 data\r\n")
        for word in ctx.stage3:
            ctx.send(word)
        for i, value in enumerate(received):
            ctx.log(f"STAGE 3 DATA[{i}] = {_c_hex(value)}")
        return True

    def poll(self):
        """Handle POLL."""
        self._poll.handle()

    def vend(self):
        """Handle VEND."""
        self._vend.handle()

    def reader(self):
        """Handle READER: disable, enable or cancel."""
        ctx = self.ctx
        if self._level() < 4:
            return
        sub, check = (ctx.usart.recv_mdb() & 0xFF for _ in range(2))
        outcomes = {
            0: (0x14, MdbState.DISABLED, PollReply.ACK),
            1: (0x15, MdbState.ENABLED, PollReply.ACK),
            2: (0x16, MdbState.ENABLED, PollReply.CANCELED),
        }
        if sub not in outcomes:
            ctx.log("Error: unknown subcommand [READER]\r\n")
            ctx.finish()
            return
        expected, new_state, reply = outcomes[sub]
        if check != expected:
            ctx.log("Error: checksum error [READER]\r\n")
            ctx.finish()
            return
        if sub == 1:
            ctx.tx_switch.set_state(PIN12, 1)
        ctx.send(ACK)
        ctx.finish(reply)
        ctx.state = new_state

    def state_pos(self):
        """1 once setup stage 2 has completed, else 0."""
        return self.m