"""
Debug script: Run the reflection analyzer over saved frames and write the
annotated iris crops.

Usage:
  python3 debug_reflection_crops.py FRAMES_DIR --signal RED [--calibration WHITE_FRAME]

With --calibration, the glare zones found in that frame are excluded from the
detection pass, exactly as in a live session. Crops are upscaled 4x and saved
to debug_reflection_crops/ as <frame>_<eye>_<pass|fail>.png.
"""

import argparse
import os
import cv2

from processing.face_detection import create_landmarker, detect_face, iris_geometry
from processing.calibration import CalibrationStore
from processing.evaluation import IrisEvaluator
from processing.geometry import Frame
from processing.reflection import analyze
from processing.regions import iris_region
from processing.signals import AnalysisMode, Signal, Stimulus


def load_rgb(path):
    frame_bgr = cv2.imread(path)
    if frame_bgr is None:
        return None
    return cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)


def calibrate_from(path, landmarker) -> CalibrationStore:
    store = CalibrationStore()
    frame_rgb = load_rgb(path)
    if frame_rgb is None:
        print(f"Could not read calibration frame {path}")
        return store
    geometry = iris_geometry(detect_face(landmarker, frame_rgb))
    if geometry is None:
        print("Calibration frame: no iris landmarks")
        return store
    evaluation = IrisEvaluator().evaluate(
        Frame(frame_rgb, 0.0), geometry, Stimulus(Signal.CALIBRATION_WHITE), store, calibrating=True,
    )
    print(f"Calibration: {'ok' if evaluation.matched else 'failed'} {evaluation.regions}")
    return store


def save_crops(frame_rgb, landmarker, name, signal, store, output_dir):
    geometry = iris_geometry(detect_face(landmarker, frame_rgb))
    if geometry is None:
        print(f"  {name}: no iris landmarks, skipping")
        return

    img_h, img_w = frame_rgb.shape[:2]
    for eye, points in geometry.points.items():
        region = iris_region(points, img_w, img_h)
        result = analyze(frame_rgb, region, AnalysisMode.DETECT_PRESENCE, signal,
                         store.zone_for(eye), with_diagnostic=True)
        verdict = "pass" if result.matched else "fail"
        ratio = f"{result.dark_ratio:.2f}" if result.dark_ratio is not None else "-"
        print(f"  {name} {eye}: {verdict}, highlight={result.highlight_point}, dark_ratio={ratio}")
        if result.diagnostic is None:
            continue
        crop = cv2.cvtColor(result.diagnostic, cv2.COLOR_RGB2BGR)
        big = cv2.resize(crop, (crop.shape[1] * 4, crop.shape[0] * 4), interpolation=cv2.INTER_NEAREST)
        cv2.imwrite(os.path.join(output_dir, f"{name}_{eye}_{verdict}.png"), big)


def main():
    parser = argparse.ArgumentParser(description="Write reflection analyzer crops for saved frames")
    parser.add_argument("frames_dir")
    parser.add_argument("--signal", default="RED", choices=[s.value for s in Signal if s.channel is not None])
    parser.add_argument("--calibration", help="frame captured under the white calibration flash")
    parser.add_argument("--output", default="debug_reflection_crops")
    args = parser.parse_args()

    if not os.path.isdir(args.frames_dir):
        print(f"No frames found at {args.frames_dir}/")
        return

    frame_files = sorted(f for f in os.listdir(args.frames_dir) if f.endswith((".jpg", ".png")))
    if not frame_files:
        print(f"No frame images found in {args.frames_dir}/")
        return

    os.makedirs(args.output, exist_ok=True)
    signal = Signal(args.signal)
    print(f"Found {len(frame_files)} frames, analyzing for {signal.display_name}")

    landmarker = create_landmarker()
    try:
        store = calibrate_from(args.calibration, landmarker) if args.calibration else CalibrationStore()
        for fname in frame_files:
            frame_rgb = load_rgb(os.path.join(args.frames_dir, fname))
            if frame_rgb is None:
                print(f"  Could not read {fname}")
                continue
            save_crops(frame_rgb, landmarker, os.path.splitext(fname)[0], signal, store, args.output)
    finally:
        landmarker.close()

    print(f"\nCrops saved to {args.output}/")


if __name__ == "__main__":
    main()
