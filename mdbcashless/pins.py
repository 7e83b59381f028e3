"""Transmit-line switch outputs and push-button inputs."""

from __future__ import annotations

PIN12 = 12
PIN13 = 13
PIN32 = 32
PIN33 = 33
PIN34 = 34

PIN12_ON = 1 << 6
PIN12_OFF = 1 >> 6
PIN13_ON = 1 << 7
PIN13_OFF = 1 >> 7

# push-button pin -> bit in port C
_BUTTON_BITS = {PIN32: 4, PIN33: 5, PIN34: 3}


class TxSwitch:
    """Output port B driving the transmit-line switches on pins 12 and 13."""

    def __init__(self, uplink):
        self.uplink = uplink
        self.ddrb = 0
        self.portb = 0

    def setup(self, pin):
        """Configure a switch pin as output and announce it."""
        if pin == PIN12:
            self.ddrb = 0xFF
            self.portb = 0x00
        self.uplink.send_str("SettingUp Tx Switch\r\n")

    def set_state(self, pin, value):
        """Drive a switch pin; the whole port is written at once."""
        states = {
            (PIN12, 0): PIN12_OFF,
            (PIN12, 1): PIN12_ON,
            (PIN13, 0): PIN13_OFF,
            (PIN13, 1): PIN13_ON,
        }
        port = states.get((pin, value))
        if port is not None:
            self.portb = port


class PushButtons:
    """Active-low push buttons on port C with internal pull-ups."""

    def __init__(self):
        self.ddrc = 0
        self.portc = 0
        self.pinc = 0xFF

    @staticmethod
    def _bit(pin):
        try:
            return _BUTTON_BITS[pin]
        except KeyError:
            raise ValueError(f"no push button on pin {pin}") from None

    def setup(self, pin):
        """Make port C an input with pull-ups enabled."""
        self._bit(pin)
        self.ddrc = 0x00
        self.portc = 0xFF

    def press(self, pin, pressed=True):
        """Press or release a button, pulling its line low or letting it go."""
        bit = self._bit(pin)
        if pressed:
            self.pinc &= ~(1 << bit) & 0xFF
        else:
            self.pinc |= 1 << bit

    def state(self, pin):
        """1 while the button is held down, else 0."""
        mask = 1 << self._bit(pin)
        line_high = bool(self.pinc & mask)
        # The line is pulled up; a pressed button drives it low.
        if line_high:
            return 0
        return 1