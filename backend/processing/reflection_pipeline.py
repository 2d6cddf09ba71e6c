import base64
import logging
import cv2
import numpy as np

from config import COLOR_SEQUENCE, DOCUMENT_SIGNAL
from processing.evaluation import IrisEvaluator, DocumentEvaluator
from processing.face_detection import detect_face, iris_geometry
from processing.geometry import Frame, Rect, DocumentGeometry
from processing.regions import guide_box
from processing.sequencer import ChallengeSequencer, SequencerConfig, SessionStatus
from processing.signals import Signal, Stimulus
from processing.stimulus import ColorScheduler, ActiveZoneScheduler
from schemas.messages import (
    FrameMessage, DocumentFrameMessage, FrameResponse, ReflectionResultResponse,
    ScheduleMessage, ScheduleEntry,
)

logger = logging.getLogger("uvicorn.error")


def decode_frame(jpeg_b64: str) -> np.ndarray | None:
    """Base64 JPEG -> RGB array, or None if it does not decode."""
    try:
        data = base64.b64decode(jpeg_b64, validate=True)
    except ValueError:
        return None
    frame_bgr = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    if frame_bgr is None:
        return None
    return cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)


def encode_png_b64(image_rgb: np.ndarray) -> str:
    ok, buf = cv2.imencode(".png", cv2.cvtColor(image_rgb, cv2.COLOR_RGB2BGR))
    if not ok:
        raise ValueError("could not encode diagnostic crop")
    return base64.b64encode(buf.tobytes()).decode("ascii")


def parse_signal(name: str) -> Signal | None:
    try:
        return Signal(name)
    except ValueError:
        return None


class ColorFlashSession:
    """Per-connection state for the eye reflection check."""

    def __init__(self, config: SequencerConfig | None = None, signals: list[Signal] | None = None):
        self.scheduler = ColorScheduler(signals or [Signal(s) for s in COLOR_SEQUENCE])
        self.evaluator = IrisEvaluator()
        self.debug_crops: list[np.ndarray] = []
        self.sequencer = ChallengeSequencer(
            self.scheduler.steps(), self.evaluator, config,
            on_debug_frame=self.debug_crops.append,
        )

    def reset(self):
        self.scheduler.stop()
        self.sequencer.reset()
        self.debug_crops.clear()

    def schedule_message(self) -> dict:
        return ScheduleMessage(
            steps=[
                ScheduleEntry(signal=s.value, color=list(s.rgb), dwell_ms=d)
                for s, d in zip(self.scheduler.signals, self.scheduler.dwells)
            ],
            step_timeout_ms=self.sequencer.config.step_timeout_ms,
            sequence_timeout_ms=self.sequencer.config.sequence_timeout_ms,
        ).model_dump()


class DocumentSession:
    """Per-connection state for the document hologram check."""

    def __init__(self, config: SequencerConfig | None = None, scheduler: ActiveZoneScheduler | None = None):
        self.scheduler = scheduler or ActiveZoneScheduler(signal=Signal(DOCUMENT_SIGNAL))
        self.evaluator = DocumentEvaluator()
        self.debug_crops: list[np.ndarray] = []
        self.sequencer = ChallengeSequencer(
            self.scheduler.steps(), self.evaluator, config,
            on_debug_frame=self.debug_crops.append,
        )

    def reset(self):
        self.scheduler.reset()
        self.sequencer.reset(self.scheduler.steps())
        self.debug_crops.clear()

    def zone_states(self, status: SessionStatus) -> list[str]:
        failed = status.failure_reason is not None
        return [s.value for s in self.scheduler.zone_states(status.current_index, failed)]


def _result_response(status: SessionStatus, zone_states: list[str] | None = None) -> dict:
    return ReflectionResultResponse(
        phase=status.phase.value,
        passed=status.passed,
        failure_reason=status.failure_reason.value if status.failure_reason else None,
        zone_states=zone_states,
    ).model_dump()


def _take_crops(session) -> list[str] | None:
    if not session.debug_crops:
        return None
    crops = [encode_png_b64(c) for c in session.debug_crops]
    session.debug_crops.clear()
    return crops


def process_frame_reflection(
    frame_rgb: np.ndarray,
    message: FrameMessage,
    session: ColorFlashSession,
    landmarker,
) -> dict:
    """One frame of the eye reflection check. Returns a JSON-serializable dict."""
    if session.sequencer.state.terminal:
        return _result_response(session.sequencer.status())

    if session.scheduler.started_at is None:
        session.scheduler.start(message.timestamp)

    geometry = iris_geometry(detect_face(landmarker, frame_rgb))
    signal = parse_signal(message.signal)
    stimulus = Stimulus(signal) if signal is not None else None

    session.evaluator.with_diagnostic = message.debug
    frame = Frame(pixels=frame_rgb, timestamp_ms=message.timestamp)
    status = session.sequencer.process_frame(frame, geometry, stimulus)

    if status.terminal:
        session.scheduler.stop()
        logger.info(f"[Reflection] Session result: {status.phase.value}"
                    + (f" ({status.failure_reason.value})" if status.failure_reason else ""))
        return _result_response(status)

    display = session.scheduler.current(message.timestamp)
    return FrameResponse(
        phase=status.phase.value,
        step_index=status.current_index,
        total_steps=status.total_steps,
        stable_frames=status.stable_frame_count,
        detected=geometry is not None,
        step_matched=status.step_matched,
        display_signal=display.value if display else None,
        display_color=list(display.rgb) if display else None,
        debug_crops=_take_crops(session),
    ).model_dump()


def process_frame_document(
    frame_rgb: np.ndarray,
    message: DocumentFrameMessage,
    session: DocumentSession,
) -> dict:
    """One frame of the document hologram check. Returns a JSON-serializable dict."""
    if session.sequencer.state.terminal:
        status = session.sequencer.status()
        return _result_response(status, session.zone_states(status))

    box = None
    if message.box is not None:
        box = Rect(message.box.left, message.box.top, message.box.right, message.box.bottom)
    elif message.use_guide_box:
        box = guide_box(message.preview_width, message.preview_height)
    geometry = None
    if box is not None:
        geometry = DocumentGeometry(box=box, preview_width=message.preview_width,
                                    preview_height=message.preview_height)
    signal = parse_signal(message.signal)
    stimulus = Stimulus(signal, message.active_zone) if signal is not None else None

    session.evaluator.with_diagnostic = message.debug
    frame = Frame(pixels=frame_rgb, timestamp_ms=message.timestamp)
    status = session.sequencer.process_frame(frame, geometry, stimulus)

    if status.terminal:
        logger.info(f"[Document] Session result: {status.phase.value}"
                    + (f" ({status.failure_reason.value})" if status.failure_reason else ""))
        return _result_response(status, session.zone_states(status))

    return FrameResponse(
        phase=status.phase.value,
        step_index=status.current_index,
        total_steps=status.total_steps,
        stable_frames=status.stable_frame_count,
        detected=geometry is not None,
        step_matched=status.step_matched,
        display_signal=session.scheduler.signal.value,
        display_color=list(session.scheduler.signal.rgb),
        active_zone=session.scheduler.active_zone(status.current_index),
        zone_states=session.zone_states(status),
        debug_crops=_take_crops(session),
    ).model_dump()
