"""
Challenge Sequencer

Drives one verification session through its stimulus schedule:

    AWAITING_START -> RUNNING(index) -> PASSED | FAILED

Every processed frame re-checks the sequence and step deadlines against the
frame's capture timestamp; there are no background timers, so a stalled
camera is only noticed on the next frame. Frames captured under a different
stimulus than the current step expects are ignored. A step advances after
`stable_frames_required` consecutive matching frames; any miss resets the
streak. PASSED and FAILED are terminal until `reset()`.

Not thread-safe: callers deliver frames one at a time.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np

from config import STABLE_FRAMES_REQUIRED, STEP_TIMEOUT_MS, SEQUENCE_TIMEOUT_MS
from processing.calibration import CalibrationStore, EYES
from processing.geometry import Frame
from processing.signals import Signal, Stimulus
from state.challenge_session import SequenceState, SessionPhase, FailureReason

logger = logging.getLogger("uvicorn.error")


@dataclass
class SequencerConfig:
    stable_frames_required: int = field(default_factory=lambda: STABLE_FRAMES_REQUIRED)
    step_timeout_ms: float = field(default_factory=lambda: STEP_TIMEOUT_MS)
    sequence_timeout_ms: float = field(default_factory=lambda: SEQUENCE_TIMEOUT_MS)


@dataclass
class SessionStatus:
    phase: SessionPhase
    current_index: int
    stable_frame_count: int
    total_steps: int
    step_matched: bool | None = None    # None when the frame was not evaluated
    failure_reason: FailureReason | None = None
    expected: Stimulus | None = None

    @property
    def terminal(self) -> bool:
        return self.phase in (SessionPhase.PASSED, SessionPhase.FAILED)

    @property
    def passed(self) -> bool:
        return self.phase == SessionPhase.PASSED


def _validate_steps(steps: list[Stimulus]) -> list[Stimulus]:
    steps = list(steps)
    if not steps:
        raise ValueError("challenge schedule is empty")
    if any(s.signal == Signal.CALIBRATION_WHITE for s in steps[1:]):
        raise ValueError("calibration step must be the first step")
    return steps


class ChallengeSequencer:
    def __init__(
        self,
        steps: list[Stimulus],
        evaluator: Any,
        config: SequencerConfig | None = None,
        calibration: CalibrationStore | None = None,
        on_step_verdict: Callable[[int, bool], None] | None = None,
        on_session_result: Callable[[bool], None] | None = None,
        on_debug_frame: Callable[[np.ndarray], None] | None = None,
    ):
        self.steps = _validate_steps(steps)
        self.evaluator = evaluator
        self.config = config or SequencerConfig()
        if calibration is None:
            needs_calibration = self.steps[0].signal == Signal.CALIBRATION_WHITE
            calibration = CalibrationStore(EYES if needs_calibration else ())
        self.calibration = calibration
        self.on_step_verdict = on_step_verdict
        self.on_session_result = on_session_result
        self.on_debug_frame = on_debug_frame
        self.state = SequenceState()
        self.reset()

    def reset(self, steps: list[Stimulus] | None = None):
        """Back to AWAITING_START; clears position, counters and calibration."""
        if steps is not None:
            self.steps = _validate_steps(steps)
        self.state.reset()
        self.calibration.begin_session()
        self.state.is_calibrated = self.calibration.is_calibrated

    @property
    def expected(self) -> Stimulus | None:
        if self.state.terminal or self.state.current_index >= len(self.steps):
            return None
        return self.steps[self.state.current_index]

    def status(self, step_matched: bool | None = None) -> SessionStatus:
        return SessionStatus(
            phase=self.state.phase,
            current_index=self.state.current_index,
            stable_frame_count=self.state.stable_frame_count,
            total_steps=len(self.steps),
            step_matched=step_matched,
            failure_reason=self.state.failure_reason,
            expected=self.expected,
        )

    def process_frame(self, frame: Frame, geometry, stimulus: Stimulus | None) -> SessionStatus:
        """Evaluate one frame captured while `stimulus` was on screen.

        `geometry` is whatever the evaluator consumes (iris landmarks or a
        document box); None means nothing was detected and the frame is
        skipped after the deadline checks.
        """
        state = self.state
        if state.terminal:
            return self.status()

        now = frame.timestamp_ms
        if not math.isfinite(now):
            logger.warning(f"[Sequencer] Ignoring frame with non-finite timestamp {now}")
            return self.status()

        if state.phase == SessionPhase.AWAITING_START:
            state.phase = SessionPhase.RUNNING
            state.sequence_start_ms = now
            state.last_step_change_ms = now

        target = self.steps[state.current_index]

        if now - state.sequence_start_ms > self.config.sequence_timeout_ms:
            logger.warning("[Sequencer] Liveness check failed: sequence timed out.")
            return self._finish(False, FailureReason.SEQUENCE_TIMEOUT)

        if now - state.last_step_change_ms > self.config.step_timeout_ms:
            logger.warning(f"[Sequencer] Liveness check failed: timed out waiting for {self._describe(target)}.")
            return self._finish(False, FailureReason.STEP_TIMEOUT)

        if stimulus != target or geometry is None:
            return self.status()

        calibrating = target.signal == Signal.CALIBRATION_WHITE and not state.is_calibrated
        evaluation = self.evaluator.evaluate(frame, geometry, target, self.calibration, calibrating)

        if self.on_debug_frame is not None:
            for image in evaluation.diagnostics:
                self.on_debug_frame(image)

        matched = bool(evaluation.matched)
        if calibrating and matched:
            logger.info("[Sequencer] PASSED calibration. Glare locations recorded.")
            state.is_calibrated = True
            # One calibrated frame is enough.
            state.stable_frame_count = self.config.stable_frames_required

        if matched:
            state.stable_frame_count += 1
        else:
            state.stable_frame_count = 0

        if self.on_step_verdict is not None:
            self.on_step_verdict(state.current_index, matched)

        if state.stable_frame_count >= self.config.stable_frames_required:
            logger.info(f"[Sequencer] PASSED step {state.current_index}: {self._describe(target)}")
            state.current_index += 1
            state.stable_frame_count = 0
            state.last_step_change_ms = now
            if state.current_index >= len(self.steps):
                logger.info("[Sequencer] Liveness check passed!")
                return self._finish(True, None, step_matched=matched)

        return self.status(step_matched=matched)

    def _finish(self, passed: bool, reason: FailureReason | None, step_matched: bool | None = None) -> SessionStatus:
        self.state.phase = SessionPhase.PASSED if passed else SessionPhase.FAILED
        self.state.failure_reason = reason
        if self.on_session_result is not None:
            self.on_session_result(passed)
        return self.status(step_matched=step_matched)

    @staticmethod
    def _describe(stimulus: Stimulus) -> str:
        name = stimulus.signal.display_name
        return name if stimulus.zone is None else f"{name} in zone {stimulus.zone}"
