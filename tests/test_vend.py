import pytest

from mdbcashless.mdb_types import DeviceReset, MdbCommand, MdbContext, MdbState, PollReply
from mdbcashless.pins import TxSwitch
from mdbcashless.usart import Direction, Usart
from mdbcashless.vend import VendHandler
from mdbcashless.vendstate import Eeprom, VendState, VendStateStore


class Recorder:
    def __init__(self):
        self.lines = []

    def send_str(self, text):
        self.lines.append(text)

    @property
    def text(self):
        return "".join(self.lines)


def feed(usart, *words):
    for word in words:
        usart.receive_byte(word & 0xFF, word >> 8)


def sent(usart):
    words = []
    while (word := usart.transmit_next()) is not None:
        words.append(word)
    return words


@pytest.fixture
def ctx():
    uplink = Recorder()
    usart = Usart(1, 9600, 9, "N", 1)
    context = MdbContext(usart, uplink, TxSwitch(uplink), VendStateStore(Eeprom(), uplink))
    context.active_cmd = MdbCommand.VEND
    return context


def test_vend_request(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x000, 0x000, 0x005, 0x000, 0x001, 0x019)
    handler.handle()
    assert sent(ctx.usart) == [0x100]
    assert ctx.state == MdbState.VENDING
    assert ctx.active_cmd == MdbCommand.IDLE
    assert ctx.uplink.text.count("@vend-request 0;5;0;1;25*\r\n") == 2
    assert handler.state == 0


def test_vend_request_waits_for_data(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x000, 0x000, 0x005, 0x000)
    handler.handle()
    assert handler.state == 1
    assert sent(ctx.usart) == []
    assert ctx.usart.buffer_level(Direction.RX) == 6
    feed(ctx.usart, 0x001, 0x019)
    handler.handle()
    assert ctx.state == MdbState.VENDING
    assert sent(ctx.usart) == [0x100]


def test_vend_request_bad_checksum(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x000, 0x000, 0x005, 0x000, 0x001, 0x018)
    handler.handle()
    assert "Error: invalid checksum [VEND]\r\n" in ctx.uplink.text
    assert sent(ctx.usart) == []
    assert ctx.state == MdbState.INACTIVE
    assert ctx.active_cmd == MdbCommand.IDLE
    assert handler.state == 0


def test_vend_cancel_resets_device(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x001, 0x014)
    with pytest.raises(DeviceReset):
        handler.handle()
    assert sent(ctx.usart) == [0x100]
    assert ctx.poll_reply == PollReply.VEND_DENIED
    assert ctx.state == MdbState.SESSION_IDLE
    assert ctx.vend_states.current == VendState.FAILURE
    assert "vend-cancel\r\n" in ctx.uplink.text


def test_vend_cancel_bad_checksum_still_marks_failure(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x001, 0x015)
    handler.handle()
    assert ctx.vend_states.current == VendState.FAILURE
    assert "Error: invalid checksum [VEND]\r\n" in ctx.uplink.text
    assert ctx.poll_reply == PollReply.ACK


def test_vend_success(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x002, 0x000, 0x00A, 0x01F)
    handler.handle()
    assert "vend-success 10\r\n" in ctx.uplink.text
    assert ctx.state == MdbState.SESSION_IDLE
    assert ctx.vend_states.current == VendState.SUCCESS
    assert sent(ctx.usart) == [0x100]


def test_vend_failure_resets_device(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x003, 0x016)
    with pytest.raises(DeviceReset):
        handler.handle()
    assert ctx.state == MdbState.ENABLED
    assert ctx.vend_states.current == VendState.FAILURE
    assert "vend-failure\r\n" in ctx.uplink.text


def test_session_complete(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x004, 0x017)
    handler.handle()
    assert ctx.state == MdbState.ENABLED
    assert ctx.vend_states.current == VendState.SUCCESS
    assert "session-complete\r\n" in ctx.uplink.text
    assert sent(ctx.usart) == [0x100]


def test_subcommand_kept_between_calls(ctx):
    handler = VendHandler(ctx)
    feed(ctx.usart, 0x004)
    handler.handle()
    assert handler.state == 1
    assert ctx.state == MdbState.INACTIVE
    feed(ctx.usart, 0x017)
    handler.handle()
    assert ctx.state == MdbState.ENABLED


def test_logs_on_every_call(ctx):
    handler = VendHandler(ctx)
    handler.handle()
    handler.handle()
    assert ctx.uplink.text == "MDB-VEND00\r\n" * 2
    assert handler.state == 0