"""Buffered serial port model with 9-bit MDB framing."""

from __future__ import annotations

from enum import IntEnum

F_CPU = 16_000_000
BUFFER_SIZE = 128

# UCSRnB bits
_TXB8 = 0
_UCSZ2 = 2
_TXEN = 3
_RXEN = 4
_UDRIE = 5
_RXCIE = 7

# UCSRnC bits
_UCSZ0 = 1
_UCSZ1 = 2
_USBS = 3
_UPM0 = 4
_UPM1 = 5

# framelength -> (UCSZ0, UCSZ1, UCSZ2)
_FRAME_BITS = {
    5: (0, 0, 0),
    6: (1, 0, 0),
    7: (0, 1, 0),
    8: (1, 1, 0),
    9: (1, 1, 1),
}

# parity -> (UPM0, UPM1)
_PARITY_BITS = {
    "N": (0, 0),
    "E": (0, 1),
    "O": (1, 1),
}


class Direction(IntEnum):
    """Which of a port's two buffers is meant."""

    RX = 0
    TX = 1


class BufferEmpty(Exception):
    """Raised when reading from an empty buffer."""


class BufferFull(Exception):
    """Raised when writing to a full buffer."""


class RingBuffer:
    """Fixed-size byte ring buffer; holds one byte less than its size."""

    def __init__(self, size=BUFFER_SIZE):
        if size < 2 or size & (size - 1):
            raise ValueError(f"buffer size must be a power of two >= 2, got {size}")
        self._data = bytearray(size)
        self._mask = size - 1
        self._read = 0
        self._write = 0

    def __len__(self):
        return (self._write - self._read) & self._mask

    @property
    def capacity(self):
        """Number of bytes the buffer can hold at once."""
        return self._mask

    def read(self):
        """Remove and return the oldest byte."""
        if self._read == self._write:
            raise BufferEmpty("buffer is empty")
        value = self._data[self._read]
        self._read = (self._read + 1) & self._mask
        return value

    def write(self, value):
        """Append one byte."""
        if not 0 <= value <= 0xFF:
            raise ValueError(f"byte out of range: {value}")
        nxt = (self._write + 1) & self._mask
        if nxt == self._read:
            raise BufferFull("buffer is full")
        self._data[self._write] = value
        self._write = nxt


def baud_divisor(baudrate, f_cpu=F_CPU):
    """Baud rate register value for the given clock, rounded to nearest."""
    if baudrate <= 0:
        raise ValueError(f"baud rate must be positive, got {baudrate}")
    return (f_cpu // 8 // baudrate - 1) // 2


class Usart:
    """One serial port with receive and transmit buffers.

    In 9-bit mode each character occupies two buffer bytes: the ninth bit
    followed by the low eight bits.
    """

    def __init__(self, number, baudrate=9600, framelength=8, parity="N", stopbits=1):
        self.number = number
        self.ubrrh = 0
        self.ubrrl = 0
        self.ucsrb = 0
        self.ucsrc = 0
        self.buffers = {Direction.RX: RingBuffer(), Direction.TX: RingBuffer()}
        self.configure(baudrate, framelength, parity, stopbits)

    def _set_b(self, bit, on):
        if on:
            self.ucsrb |= 1 << bit
        else:
            self.ucsrb &= ~(1 << bit)

    def _set_c(self, bit, on):
        if on:
            self.ucsrc |= 1 << bit
        else:
            self.ucsrc &= ~(1 << bit)

    def configure(self, baudrate, framelength, parity, stopbits):
        """Set baud rate, frame length, parity and stop bits."""
        if framelength not in _FRAME_BITS:
            raise ValueError(f"unsupported frame length: {framelength}")
        if parity not in _PARITY_BITS:
            raise ValueError(f"unsupported parity: {parity!r}")
        divisor = baud_divisor(baudrate)
        self.ubrrh = (divisor >> 8) & 0xFF
        self.ubrrl = divisor & 0xFF

        self.ucsrb |= (1 << _TXEN) | (1 << _RXEN) | (1 << _RXCIE)

        ucsz0, ucsz1, ucsz2 = _FRAME_BITS[framelength]
        self._set_c(_UCSZ0, ucsz0)
        self._set_c(_UCSZ1, ucsz1)
        self._set_b(_UCSZ2, ucsz2)

        upm0, upm1 = _PARITY_BITS[parity]
        self._set_c(_UPM0, upm0)
        self._set_c(_UPM1, upm1)

        self._set_c(_USBS, stopbits > 1)

    @property
    def nine_bit(self):
        """True when the port runs with 9-bit characters."""
        return bool(self.ucsrb & (1 << _UCSZ2))

    @property
    def tx_interrupt_enabled(self):
        """True when the transmit-ready interrupt is armed."""
        return bool(self.ucsrb & (1 << _UDRIE))

    def buffer_level(self, direction):
        """Number of bytes waiting in the given buffer."""
        return len(self.buffers[Direction(direction)])

    def _write(self, direction, value):
        buffer = self.buffers[direction]
        buffer.write(value)
        if direction is Direction.TX:
            # In 9-bit mode only arm the interrupt once a full pair is queued.
            if not self.nine_bit or len(buffer) % 2 == 0:
                self._set_b(_UDRIE, True)

    def send_char(self, char):
        """Queue one character for transmission."""
        code = ord(char)
        if code > 0xFF:
            raise ValueError(f"character does not fit in a byte: {char!r}")
        self._write(Direction.TX, code)

    def recv_char(self):
        """Take one received character."""
        return chr(self.buffers[Direction.RX].read())

    def send_str(self, text):
        """Queue every character of text."""
        for char in text:
            self.send_char(char)

    def recv_str(self):
        """Take received characters up to a NUL, which is consumed."""
        chars = []
        while True:
            char = self.recv_char()
            if char == "\0":
                return "".join(chars)
            chars.append(char)

    def send_mdb(self, word, ready=True):
        """Queue a 9-bit MDB word as high byte then low byte."""
        if not ready:
            return
        self._write(Direction.TX, (word >> 8) & 0xFF)
        self._write(Direction.TX, word & 0xFF)

    def recv_mdb(self):
        """Take a 9-bit MDB word from the receive buffer."""
        rx = self.buffers[Direction.RX]
        if len(rx) < 2:
            raise BufferEmpty("an MDB word needs two buffered bytes")
        high = rx.read()
        low = rx.read()
        return (high << 8) | low

    def receive_byte(self, data, ninth_bit=0):
        """Store a character arriving on the line."""
        if self.nine_bit:
            self._write(Direction.RX, ninth_bit & 0x01)
        self._write(Direction.RX, data & 0xFF)

    def transmit_next(self):
        """Put the next queued character on the line.

        Returns the character (with the ninth bit as bit 8 in 9-bit mode),
        or None when nothing is queued, which also disarms the interrupt.
        """
        tx = self.buffers[Direction.TX]
        if not tx:
            self._set_b(_UDRIE, False)
            return None
        if self.nine_bit:
            ninth = tx.read() & 0x01
            self._set_b(_TXB8, ninth)
            return (ninth << 8) | tx.read()
        return tx.read()