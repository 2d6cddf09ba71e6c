from enum import Enum
from dataclasses import dataclass


class Signal(str, Enum):
    CALIBRATION_WHITE = "CALIBRATION_WHITE"
    RED = "RED"
    GREEN = "GREEN"
    BLUE = "BLUE"

    @property
    def rgb(self) -> tuple[int, int, int]:
        return _SIGNAL_RGB[self]

    @property
    def channel(self) -> int | None:
        """Index of the dominant RGB channel, None for the white calibration flash."""
        return _SIGNAL_CHANNEL[self]

    @property
    def display_name(self) -> str:
        if self is Signal.CALIBRATION_WHITE:
            return "WHITE (Calibration)"
        return self.value


_SIGNAL_RGB = {
    Signal.CALIBRATION_WHITE: (255, 255, 255),
    Signal.RED: (255, 0, 0),
    Signal.GREEN: (0, 255, 0),
    Signal.BLUE: (0, 0, 255),
}

_SIGNAL_CHANNEL = {
    Signal.CALIBRATION_WHITE: None,
    Signal.RED: 0,
    Signal.GREEN: 1,
    Signal.BLUE: 2,
}


class AnalysisMode(str, Enum):
    CALIBRATION = "CALIBRATION"
    DETECT_PRESENCE = "DETECT_PRESENCE"
    DETECT_ABSENCE = "DETECT_ABSENCE"


@dataclass(frozen=True)
class Stimulus:
    """What was on screen when a frame was captured.

    `zone` is the highlighted document zone index and stays None for the
    color-flash flow.
    """
    signal: Signal
    zone: int | None = None


# Document zones in overlay order: top-left, top-center, top-right,
# bottom-left, bottom-center, bottom-right. Corners must stay free of any
# reflection, edge midpoints must show exactly one.
DOCUMENT_ZONE_MODES = (
    AnalysisMode.DETECT_ABSENCE,
    AnalysisMode.DETECT_PRESENCE,
    AnalysisMode.DETECT_ABSENCE,
    AnalysisMode.DETECT_ABSENCE,
    AnalysisMode.DETECT_PRESENCE,
    AnalysisMode.DETECT_ABSENCE,
)
