from pydantic import BaseModel, ConfigDict, Field


class BoxModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    left: float
    top: float
    right: float
    bottom: float


class FrameMessage(BaseModel):
    """A captured frame, tagged with what the screen showed at capture time."""
    model_config = ConfigDict(allow_inf_nan=False)

    type: str = "frame"
    timestamp: float            # capture time, ms
    signal: str                 # Signal name on screen
    jpeg_b64: str               # base64-encoded JPEG
    debug: bool = False


class DocumentFrameMessage(FrameMessage):
    active_zone: int | None = None
    box: BoxModel | None = None         # document bbox in preview coordinates
    use_guide_box: bool = False         # no detector: assume the card fills the on-screen guide
    preview_width: float = Field(gt=0)
    preview_height: float = Field(gt=0)


class ScheduleEntry(BaseModel):
    signal: str
    color: list[int]            # [R, G, B], each 0-255
    dwell_ms: int


class ScheduleMessage(BaseModel):
    type: str = "schedule"
    steps: list[ScheduleEntry]
    step_timeout_ms: float
    sequence_timeout_ms: float


class FrameResponse(BaseModel):
    type: str = "frame_result"
    phase: str
    step_index: int
    total_steps: int
    stable_frames: int
    detected: bool                  # face (iris flow) or document box present
    step_matched: bool | None = None
    display_signal: str | None = None
    display_color: list[int] | None = None
    active_zone: int | None = None
    zone_states: list[str] | None = None
    debug_crops: list[str] | None = None    # base64 PNG


class ReflectionResultResponse(BaseModel):
    type: str = "reflection_result"
    phase: str
    passed: bool
    failure_reason: str | None = None
    zone_states: list[str] | None = None
