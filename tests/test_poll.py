import pytest

from mdbcashless.mdb_types import MdbCommand, MdbContext, MdbState, PollReply
from mdbcashless.pins import PIN12_ON, TxSwitch
from mdbcashless.poll import PollResponder
from mdbcashless.usart import Usart
from mdbcashless.vendstate import Eeprom, VendStateStore


def make():
    uplink = Usart(0, 38400, 8, "N", 1)
    usart = Usart(1, 9600, 9, "N", 1)
    ctx = MdbContext(usart, uplink, TxSwitch(uplink), VendStateStore(Eeprom(), uplink))
    ctx.active_cmd = MdbCommand.POLL
    return ctx, PollResponder(ctx)


def feed(ctx, *words):
    for word in words:
        ctx.usart.receive_byte(word & 0xFF, word >> 8)


def sent(ctx):
    out = []
    while (word := ctx.usart.transmit_next()) is not None:
        out.append(word)
    return out


def text(ctx):
    out = []
    while (code := ctx.uplink.transmit_next()) is not None:
        out.append(chr(code))
    return "".join(out)


def test_waits_for_poll_checksum():
    ctx, poll = make()
    poll.handle()
    assert sent(ctx) == []
    assert poll.state == 0
    assert ctx.active_cmd == MdbCommand.POLL


def test_ack_reply():
    ctx, poll = make()
    feed(ctx, 0x012)
    poll.handle()
    assert sent(ctx) == [0x100]
    assert ctx.active_cmd == MdbCommand.IDLE
    assert ctx.tx_switch.portb == PIN12_ON
    assert text(ctx) == "ACK00\r\n"
    assert poll.state == 0


def test_invalid_checksum():
    ctx, poll = make()
    ctx.poll_reply = PollReply.END_SESSION
    feed(ctx, 0x013)
    poll.handle()
    assert sent(ctx) == []
    assert ctx.active_cmd == MdbCommand.IDLE
    assert ctx.poll_reply == PollReply.ACK
    assert text(ctx) == "Error: Invalid checksum [Poll]\r\n"


def test_just_reset_exchange():
    ctx, poll = make()
    ctx.poll_reply = PollReply.JUST_RESET
    feed(ctx, 0x012)
    poll.handle()
    assert sent(ctx) == [0x000, 0x100]
    assert poll.state == 2
    poll.handle()
    assert poll.state == 2
    feed(ctx, 0x000)
    poll.handle()
    assert poll.state == 0
    assert ctx.active_cmd == MdbCommand.IDLE
    assert ctx.poll_reply == PollReply.ACK


def test_just_reset_without_ack():
    ctx, poll = make()
    ctx.poll_reply = PollReply.JUST_RESET
    feed(ctx, 0x012)
    poll.handle()
    text(ctx)
    feed(ctx, 0x0FF)
    poll.handle()
    assert "Error: no ACK received on [JUST RESET]" in text(ctx)
    assert ctx.active_cmd == MdbCommand.IDLE


def test_display_request():
    ctx, poll = make()
    ctx.poll_reply = PollReply.DISPLAY_REQ
    feed(ctx, 0x012)
    poll.handle()
    assert sent(ctx) == [0x002, 0x032, 0x049, 0x04F, 0x054, 0x041]
    assert ctx.poll_reply == PollReply.ACK


def test_begin_session():
    ctx, poll = make()
    ctx.state = MdbState.ENABLED
    ctx.poll_reply = PollReply.BEGIN_SESSION
    ctx.session.start.flag = True
    ctx.session.start.funds = 500
    feed(ctx, 0x012)
    poll.handle()
    words = sent(ctx)
    assert words[:3] == [0x003, 500 >> 8, 500 & 0xFF]
    assert words[3] & 0x100
    assert words[3] & 0xFF == sum(words[:3]) & 0xFF
    feed(ctx, 0x000)
    poll.handle()
    assert ctx.state == MdbState.SESSION_IDLE
    assert ctx.session.start.flag is False
    assert ctx.session.start.funds == 0
    assert ctx.active_cmd == MdbCommand.IDLE


def test_begin_session_without_request_does_nothing():
    ctx, poll = make()
    ctx.poll_reply = PollReply.BEGIN_SESSION
    feed(ctx, 0x012)
    poll.handle()
    assert sent(ctx) == []
    assert poll.state == 1
    assert ctx.active_cmd == MdbCommand.POLL


def test_begin_session_nack_clears_request():
    ctx, poll = make()
    ctx.state = MdbState.ENABLED
    ctx.poll_reply = PollReply.BEGIN_SESSION
    ctx.session.start.flag = True
    ctx.session.start.funds = 50
    feed(ctx, 0x012)
    poll.handle()
    text(ctx)
    feed(ctx, 0x0AA)
    poll.handle()
    assert ctx.session.start.flag is False
    assert ctx.state == MdbState.ENABLED
    assert "Error: no ACK received on [START SESSION]" in text(ctx)


def test_vend_approved():
    ctx, poll = make()
    ctx.poll_reply = PollReply.VEND_APPROVED
    ctx.session.result.vend_approved = True
    ctx.session.result.vend_amount = 250
    feed(ctx, 0x012)
    poll.handle()
    words = sent(ctx)
    assert words[:3] == [0x005, 250 >> 8, 250 & 0xFF]
    assert words[3] & 0xFF == sum(words[:3]) & 0xFF
    feed(ctx, 0x000)
    poll.handle()
    assert ctx.session.result.vend_approved is False
    assert ctx.session.result.vend_amount == 0
    assert ctx.poll_reply == PollReply.ACK


def test_vend_denied_clears_session():
    ctx, poll = make()
    ctx.poll_reply = PollReply.VEND_DENIED
    ctx.session.result.vend_denied = True
    ctx.session.start.flag = True
    feed(ctx, 0x012)
    poll.handle()
    assert sent(ctx) == [0x006, 0x106]
    feed(ctx, 0x000)
    poll.handle()
    assert ctx.session.result.vend_denied is False
    assert ctx.session.start.flag is False


@pytest.mark.parametrize(
    "reply, words, message",
    [
        (PollReply.SESSION_CANCEL_REQ, [0x004, 0x104], "SessionCancelled00\r\n"),
        (PollReply.END_SESSION, [0x007, 0x107], "EndSession00\r\n"),
        (PollReply.CANCELED, [0x008, 0x108], ""),
    ],
)
def test_two_word_replies(reply, words, message):
    ctx, poll = make()
    ctx.poll_reply = reply
    feed(ctx, 0x012)
    poll.handle()
    assert sent(ctx) == words
    assert text(ctx) == message
    feed(ctx, 0x000)
    poll.handle()
    assert ctx.active_cmd == MdbCommand.IDLE
    assert ctx.poll_reply == PollReply.ACK
    assert poll.state == 0


def test_canceled_without_ack():
    ctx, poll = make()
    ctx.poll_reply = PollReply.CANCELED
    feed(ctx, 0x012)
    poll.handle()
    feed(ctx, 0x001)
    poll.handle()
    assert text(ctx) == "Error: no ACK received on [REPLY CANCELED]\r\n"


def test_reader_config_reply_sends_nothing():
    ctx, poll = make()
    ctx.poll_reply = PollReply.READER_CFG
    feed(ctx, 0x012)
    poll.handle()
    assert sent(ctx) == []
    assert poll.state == 1
    assert ctx.active_cmd == MdbCommand.POLL