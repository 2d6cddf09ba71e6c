import logging

from processing.geometry import Rect

logger = logging.getLogger("uvicorn.error")

EYES = ("left", "right")


class CalibrationStore:
    """Baseline glare zones for one session, one per required landmark.

    A zone is written once per session and never replaced; `begin_session`
    is the only way to clear it. Flows without a calibration step pass an
    empty `required` tuple and count as calibrated from the start.
    """

    def __init__(self, required: tuple[str, ...] = EYES):
        self.required = tuple(required)
        self._zones: dict[str, Rect] = {}

    def begin_session(self):
        self._zones.clear()

    def record_zone(self, landmark_id: str, zone: Rect):
        if landmark_id in self._zones:
            raise ValueError(f"glare zone for '{landmark_id}' already recorded this session")
        self._zones[landmark_id] = zone
        logger.info(
            f"[Calibration] {landmark_id} glare zone recorded at "
            f"({zone.left:.1f},{zone.top:.1f})-({zone.right:.1f},{zone.bottom:.1f})"
        )

    def zone_for(self, landmark_id: str) -> Rect | None:
        return self._zones.get(landmark_id)

    def is_complete(self) -> bool:
        return all(landmark_id in self._zones for landmark_id in self.required)

    @property
    def is_calibrated(self) -> bool:
        return self.is_complete()
