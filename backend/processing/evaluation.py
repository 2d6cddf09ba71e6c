"""Turns one frame plus upstream geometry into a single step verdict.

Each flow owns its region layout and its aggregation rule:
- IrisEvaluator: one circle per eye, the step passes if either eye shows the
  flashed color. Calibration needs a white glare in every eye in one frame.
- DocumentEvaluator: six zones on the document; only the active zone is
  scored, with the polarity from DOCUMENT_ZONE_MODES.

Malformed input for a region (no landmarks, empty box, bad pixels) is logged
and scored as a non-match for that region; it never raises.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from processing.calibration import CalibrationStore, EYES
from processing.geometry import Frame, IrisGeometry, DocumentGeometry, Region, Rect
from processing.reflection import AnalyzerSettings, ReflectionResult, analyze
from processing.regions import PreviewMapping, document_regions, iris_region
from processing.signals import AnalysisMode, Signal, Stimulus, DOCUMENT_ZONE_MODES

logger = logging.getLogger("uvicorn.error")


@dataclass
class StepEvaluation:
    matched: bool
    regions: dict[str, bool] = field(default_factory=dict)
    diagnostics: list[np.ndarray] = field(default_factory=list)


def _safe_analyze(label, frame, region_fn, mode, signal, exclusion, settings, with_diagnostic):
    try:
        region = region_fn()
        return analyze(frame.pixels, region, mode, signal, exclusion,
                       settings=settings, with_diagnostic=with_diagnostic)
    except (ValueError, IndexError, TypeError, OverflowError) as e:
        logger.warning(f"[Reflection] {label}: unusable region input ({e}), scoring as no match")
        return None


class IrisEvaluator:
    def __init__(self, settings: AnalyzerSettings | None = None, with_diagnostic: bool = False):
        self.settings = settings or AnalyzerSettings()
        self.with_diagnostic = with_diagnostic
        self.landmark_ids = EYES

    def _eye(self, frame: Frame, geometry: IrisGeometry, eye: str, mode, signal, exclusion):
        def region() -> Region:
            return iris_region(geometry.points.get(eye, []), frame.width, frame.height,
                               self.settings.min_radius)
        return _safe_analyze(f"{eye} eye", frame, region, mode, signal, exclusion,
                             self.settings, self.with_diagnostic)

    def evaluate(
        self,
        frame: Frame,
        geometry: IrisGeometry,
        stimulus: Stimulus,
        store: CalibrationStore,
        calibrating: bool = False,
    ) -> StepEvaluation:
        if calibrating:
            return self._calibrate(frame, geometry, store)

        evaluation = StepEvaluation(matched=False)
        for eye in self.landmark_ids:
            result = self._eye(frame, geometry, eye, AnalysisMode.DETECT_PRESENCE,
                               stimulus.signal, store.zone_for(eye))
            self._collect(evaluation, eye, result)
        evaluation.matched = any(evaluation.regions.values())
        return evaluation

    def _calibrate(self, frame: Frame, geometry: IrisGeometry, store: CalibrationStore) -> StepEvaluation:
        evaluation = StepEvaluation(matched=False)
        zones: dict[str, Rect] = {}
        for eye in self.landmark_ids:
            result = self._eye(frame, geometry, eye, AnalysisMode.CALIBRATION,
                               Signal.CALIBRATION_WHITE, None)
            self._collect(evaluation, eye, result)
            if result is not None and result.matched:
                zones[eye] = result.glare_zone

        # Zones are only kept when every eye calibrated in this same frame.
        if len(zones) == len(self.landmark_ids):
            for eye, zone in zones.items():
                store.record_zone(eye, zone)
            evaluation.matched = True
        return evaluation

    @staticmethod
    def _collect(evaluation: StepEvaluation, label: str, result: ReflectionResult | None):
        evaluation.regions[label] = bool(result is not None and result.matched)
        if result is not None and result.diagnostic is not None:
            evaluation.diagnostics.append(result.diagnostic)


class DocumentEvaluator:
    def __init__(
        self,
        zone_modes: tuple[AnalysisMode, ...] = DOCUMENT_ZONE_MODES,
        settings: AnalyzerSettings | None = None,
        with_diagnostic: bool = False,
    ):
        self.zone_modes = zone_modes
        self.settings = settings or AnalyzerSettings()
        self.with_diagnostic = with_diagnostic

    def zone_regions(self, frame: Frame, geometry: DocumentGeometry) -> list[Region]:
        mapping = PreviewMapping(frame.width, frame.height,
                                 geometry.preview_width, geometry.preview_height)
        return document_regions(mapping.to_image(geometry.box))

    def evaluate(
        self,
        frame: Frame,
        geometry: DocumentGeometry,
        stimulus: Stimulus,
        store: CalibrationStore,
        calibrating: bool = False,
    ) -> StepEvaluation:
        zone = stimulus.zone
        label = f"zone {zone}"
        if zone is None or not 0 <= zone < len(self.zone_modes):
            logger.warning(f"[Document] no valid active zone on stimulus ({zone}), scoring as no match")
            return StepEvaluation(matched=False, regions={label: False})

        mode = self.zone_modes[zone]
        result = _safe_analyze(
            label, frame, lambda: self.zone_regions(frame, geometry)[zone],
            mode, stimulus.signal, None, self.settings, self.with_diagnostic,
        )
        evaluation = StepEvaluation(matched=bool(result is not None and result.matched))
        evaluation.regions[label] = evaluation.matched
        if result is not None and result.diagnostic is not None:
            evaluation.diagnostics.append(result.diagnostic)
        return evaluation
