"""Millisecond clock driven by a compare-match timer tick."""

from __future__ import annotations

from dataclasses import dataclass

F_CPU = 16_000_000
TIMER0 = 0
TIMER1 = 1
TIMER2 = 2

_MILLIS_MASK = 0xFFFFFFFF


@dataclass(frozen=True)
class TimerSettings:
    """Prescaler and compare value giving a 1 kHz timer interrupt."""

    timer: int
    prescaler: int
    clock_select: tuple
    compare: int


def timer_settings(f_cpu=F_CPU, timer=TIMER2):
    """Choose prescaler and compare value for the given clock and timer."""
    if f_cpu < 256 or f_cpu >= 32_640_000:
        raise ValueError(f"bad clock frequency (<256 or >=32640000): {f_cpu}")
    if timer == TIMER0:
        if f_cpu > 16_320_000:
            prescaler, select = 256, ("CS20",)
        elif f_cpu > 2_040_000:
            prescaler, select = 64, ("CS01", "CS00")
        else:
            prescaler, select = 8, ("CS01",)
    elif timer == TIMER1:
        prescaler, select = 1, ("CS10",)
    elif timer == TIMER2:
        if f_cpu > 16_320_000:
            prescaler, select = 128, ("CS22", "CS20")
        elif f_cpu > 8_160_000:
            prescaler, select = 64, ("CS22",)
        elif f_cpu > 2_040_000:
            prescaler, select = 32, ("CS21", "CS20")
        else:
            prescaler, select = 8, ("CS21",)
    else:
        raise ValueError(f"bad timer: {timer}")
    return TimerSettings(timer, prescaler, select, (f_cpu // prescaler) // 1000)


def seconds_to_millis(seconds):
    """Convert seconds to milliseconds in the clock's 32-bit range."""
    return (seconds * 1000) & _MILLIS_MASK


class MillisClock:
    """A wrapping 32-bit millisecond counter advanced by timer ticks."""

    def __init__(self, f_cpu=F_CPU, timer=TIMER2):
        self.settings = timer_settings(f_cpu, timer)
        self.running = True
        self._ms = 0

    def get(self):
        """Current millisecond count."""
        return self._ms

    def tick(self, count=1):
        """Advance by count timer interrupts, if the clock is running."""
        if self.running:
            self._ms = (self._ms + count) & _MILLIS_MASK

    def resume(self):
        """Resume time keeping."""
        self.running = True

    def pause(self):
        """Pause time keeping."""
        self.running = False

    def reset(self):
        """Set the count back to zero."""
        self._ms = 0

    def add(self, ms):
        """Add time."""
        self._ms = (self._ms + ms) & _MILLIS_MASK

    def subtract(self, ms):
        """Subtract time."""
        self._ms = (self._ms - ms) & _MILLIS_MASK