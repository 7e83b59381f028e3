"""Protocol constants, data records and shared context of the MDB cashless device."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

ACK = 0x100


class DeviceReset(Exception):
    """Raised when the firmware restarts itself from the reset vector."""


class MdbState(IntEnum):
    """States of the cashless device as seen by the vending machine."""

    INACTIVE = 0
    DISABLED = 1
    ENABLED = 2
    SESSION_IDLE = 3
    VENDING = 4
    REVALUE = 5
    NEGATIVE_VEND = 6


class MdbCommand(IntEnum):
    """Cashless device commands sent by the vending machine."""

    IDLE = 0x00
    RESET = 0x10
    SETUP = 0x11
    POLL = 0x12
    VEND = 0x13
    READER = 0x14
    STAGE3 = 0x17


class PollReply(IntEnum):
    """What the device answers to the next POLL."""

    ACK = 0
    JUST_RESET = 1
    READER_CFG = 2
    DISPLAY_REQ = 3
    BEGIN_SESSION = 4
    SESSION_CANCEL_REQ = 5
    VEND_APPROVED = 6
    VEND_DENIED = 7
    END_SESSION = 8
    CANCELED = 9
    PERIPHERIAL_ID = 10
    ERROR = 11
    CMD_OUT_SEQUENCE = 12


@dataclass
class VmcConfig:
    """Configuration the vending machine reports during setup."""

    feature_level: int = 0
    display_cols: int = 0
    display_rows: int = 0
    display_info: int = 0


@dataclass
class VmcPrice:
    """Price range the vending machine reports during setup."""

    max: int = 0
    min: int = 0


@dataclass(frozen=True)
class CashlessConfig:
    """The reader configuration sent in answer to SETUP stage 1."""

    reader_cfg: int = 0x01
    feature_level: int = 0x02
    country_code: int = 0x01CA
    scale_factor: int = 0x01
    decimal_places: int = 0x00
    max_resp_time: int = 0x07
    misc_options: int = 0x0D

    def words(self):
        """Data words in transmission order, country code split high then low."""
        return [
            self.reader_cfg,
            self.feature_level,
            self.country_code >> 8,
            self.country_code & 0xFF,
            self.scale_factor,
            self.decimal_places,
            self.max_resp_time,
            self.misc_options,
        ]

    def checksum(self):
        """Checksum word with the mode bit set."""
        return (sum(self.words()) & 0xFF) | 0x100


# Peripheral identification sent after setup stage 2: manufacturer code,
# serial number, model number, software version and a trailing word.
STAGE3_DATA = (
    (0x09,)
    + tuple(b"NYX")
    + tuple(b"012345678901")
    + tuple(b"DMX - 2011  ")
    + (0x01, 0x00, 0x1B3)
)


@dataclass
class SessionStart:
    """A session requested from the uplink, with the funds available."""

    flag: bool = False
    funds: int = 0


@dataclass
class VendResult:
    """The uplink's decision on a vend request."""

    vend_approved: bool = False
    vend_denied: bool = False
    vend_amount: int = 0


@dataclass
class Session:
    """Current session request and vend decision."""

    start: SessionStart = field(default_factory=SessionStart)
    result: VendResult = field(default_factory=VendResult)


class MdbContext:
    """State shared by the MDB command handlers and the uplink."""

    def __init__(self, usart, uplink, tx_switch, vend_states):
        self.usart = usart
        self.uplink = uplink
        self.tx_switch = tx_switch
        self.vend_states = vend_states
        self.tx_ready = True
        self.state = MdbState.INACTIVE
        self.poll_reply = PollReply.ACK
        self.active_cmd = MdbCommand.IDLE
        self.reset_done = False
        self.vmc = VmcConfig()
        self.price = VmcPrice()
        self.session = Session()
        self.config = CashlessConfig()
        self.stage3 = STAGE3_DATA

    def send(self, word):
        """Queue one 9-bit word to the vending machine."""
        self.usart.send_mdb(word, self.tx_ready)

    def log(self, text):
        """Write text to the uplink port."""
        self.uplink.send_str(text)

    def finish(self, reply=PollReply.ACK):
        """End the active command and choose the next poll reply."""
        self.active_cmd = MdbCommand.IDLE
        self.poll_reply = reply

    def request_reset(self):
        """Restart the device."""
        raise DeviceReset("device reset requested")