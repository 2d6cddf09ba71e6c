import random
from enum import Enum

from config import CALIBRATION_DWELL_MS, SIGNAL_DWELL_MS, DOCUMENT_ZONE_COUNT
from processing.signals import Signal, Stimulus


class ColorScheduler:
    """Cycles through the color schedule on a fixed cadence.

    The calibration flash (when it leads the list) is shown for
    `calibration_dwell_ms`, every other color for `dwell_ms`. The current color
    is computed from elapsed time, so no timer thread is involved.
    """

    def __init__(
        self,
        signals: list[Signal],
        calibration_dwell_ms: int = CALIBRATION_DWELL_MS,
        dwell_ms: int = SIGNAL_DWELL_MS,
    ):
        if not signals:
            raise ValueError("color schedule is empty")
        if Signal.CALIBRATION_WHITE in signals[1:]:
            raise ValueError("calibration flash must come first")
        self.signals = list(signals)
        self.dwells = [
            calibration_dwell_ms if s == Signal.CALIBRATION_WHITE else dwell_ms
            for s in self.signals
        ]
        self.cycle_ms = sum(self.dwells)
        self.started_at: float | None = None

    def start(self, now_ms: float):
        self.started_at = now_ms

    def stop(self):
        self.started_at = None

    def current(self, now_ms: float) -> Signal | None:
        """Signal on screen at `now_ms`; None before start (screen is black)."""
        if self.started_at is None or now_ms < self.started_at:
            return None
        position = (now_ms - self.started_at) % self.cycle_ms
        for signal, dwell in zip(self.signals, self.dwells):
            if position < dwell:
                return signal
            position -= dwell
        return self.signals[-1]

    def steps(self) -> list[Stimulus]:
        return [Stimulus(signal) for signal in self.signals]


class ZoneState(str, Enum):
    INCOMPLETE = "INCOMPLETE"
    ACTIVE = "ACTIVE"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class ActiveZoneScheduler:
    """Picks which document zone is highlighted.

    After each zone passes, the next one is chosen at random among the zones
    that have not passed yet. The full order is drawn on `reset` so the
    sequencer can hold it as its schedule.
    """

    def __init__(
        self,
        signal: Signal = Signal.BLUE,
        zone_count: int = DOCUMENT_ZONE_COUNT,
        rng: random.Random | None = None,
    ):
        self.signal = signal
        self.zone_count = zone_count
        self.rng = rng or random.Random()
        self.order: list[int] = []
        self.reset()

    def reset(self):
        remaining = list(range(self.zone_count))
        self.order = []
        while remaining:
            zone = self.rng.choice(remaining)
            remaining.remove(zone)
            self.order.append(zone)

    def steps(self) -> list[Stimulus]:
        return [Stimulus(self.signal, zone) for zone in self.order]

    def active_zone(self, index: int) -> int | None:
        """Zone to highlight while the sequence sits at `index`, None once done."""
        if 0 <= index < len(self.order):
            return self.order[index]
        return None

    def zone_states(self, index: int, failed: bool = False) -> list[ZoneState]:
        states = [ZoneState.INCOMPLETE] * self.zone_count
        for zone in self.order[:index]:
            states[zone] = ZoneState.SUCCESS
        active = self.active_zone(index)
        if active is not None:
            states[active] = ZoneState.FAILURE if failed else ZoneState.ACTIVE
        return states
