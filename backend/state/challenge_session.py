from enum import Enum
from dataclasses import dataclass


class SessionPhase(str, Enum):
    AWAITING_START = "AWAITING_START"
    RUNNING = "RUNNING"
    PASSED = "PASSED"
    FAILED = "FAILED"


class FailureReason(str, Enum):
    STEP_TIMEOUT = "STEP_TIMEOUT"
    SEQUENCE_TIMEOUT = "SEQUENCE_TIMEOUT"


@dataclass
class SequenceState:
    phase: SessionPhase = SessionPhase.AWAITING_START
    current_index: int = 0
    sequence_start_ms: float | None = None
    last_step_change_ms: float | None = None
    stable_frame_count: int = 0
    is_calibrated: bool = False
    failure_reason: FailureReason | None = None

    @property
    def terminal(self) -> bool:
        return self.phase in (SessionPhase.PASSED, SessionPhase.FAILED)

    def reset(self):
        self.phase = SessionPhase.AWAITING_START
        self.current_index = 0
        self.sequence_start_ms = None
        self.last_step_change_ms = None
        self.stable_frame_count = 0
        self.is_calibrated = False
        self.failure_reason = None
