"""Persisted outcome of the last vend, kept in EEPROM."""

from __future__ import annotations

from enum import IntEnum

EEPROM_SIZE = 4096
VEND_STATE_ADDRESS = 64


class Eeprom:
    """Byte-addressed non-volatile memory; erased bytes read 0xFF."""

    def __init__(self, size=EEPROM_SIZE):
        self._data = bytearray(b"\xff" * size)
        self.writes = 0

    def _check(self, address):
        if not 0 <= address < len(self._data):
            raise IndexError(f"EEPROM address out of range: {address}")

    def update_byte(self, address, value):
        """Write a byte, skipping the write if it already holds that value."""
        self._check(address)
        if not 0 <= value <= 0xFF:
            raise ValueError(f"byte out of range: {value}")
        if self._data[address] != value:
            self._data[address] = value
            self.writes += 1

    def read_byte(self, address):
        """Read one byte."""
        self._check(address)
        return self._data[address]


class VendState(IntEnum):
    """Outcome of the last vend."""

    DEFAULT = 0
    SUCCESS = 1
    FAILURE = 2


class VendStateStore:
    """Tracks the last vend outcome in memory and in EEPROM."""

    def __init__(self, eeprom, uplink):
        self.eeprom = eeprom
        self.uplink = uplink
        self.current = VendState.DEFAULT

    def save(self, state):
        """Record a known vend state; other values are ignored."""
        try:
            state = VendState(state)
        except ValueError:
            return
        self.eeprom.update_byte(VEND_STATE_ADDRESS, state)
        self.current = state

    def last(self):
        """Raw byte stored for the last vend state."""
        return self.eeprom.read_byte(VEND_STATE_ADDRESS)

    def clear(self):
        """Reset the stored and current state to the default."""
        self.eeprom.update_byte(VEND_STATE_ADDRESS, VendState.DEFAULT)
        self.current = VendState.DEFAULT

    def check_startup(self):
        """Reset the current state at startup and report it."""
        self.current = VendState.DEFAULT
        if self.current == VendState.DEFAULT:
            self.uplink.send_str("LAST state was 0\r\n")
        elif self.current == VendState.SUCCESS:
            self.uplink.send_str("VEND SESSION COMPLETE\r\n")
        elif self.current == VendState.FAILURE:
            self.uplink.send_str("LAST state was Failed\r\n")