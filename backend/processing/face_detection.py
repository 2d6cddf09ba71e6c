import numpy as np
import mediapipe as mp
from config import LANDMARKER_PATH, LEFT_IRIS, RIGHT_IRIS

from processing.geometry import IrisGeometry


def create_landmarker():
    """Create a new MediaPipe FaceLandmarker in IMAGE mode (thread-safe, per-session)."""
    BaseOptions = mp.tasks.BaseOptions
    FaceLandmarker = mp.tasks.vision.FaceLandmarker
    FaceLandmarkerOptions = mp.tasks.vision.FaceLandmarkerOptions
    VisionRunningMode = mp.tasks.vision.RunningMode

    options = FaceLandmarkerOptions(
        base_options=BaseOptions(model_asset_path=str(LANDMARKER_PATH)),
        running_mode=VisionRunningMode.IMAGE,
        num_faces=1,
        min_face_detection_confidence=0.5,
        min_face_presence_confidence=0.5,
        output_face_blendshapes=False,
        output_facial_transformation_matrixes=False,
    )
    return FaceLandmarker.create_from_options(options)


def detect_face(landmarker, frame_rgb: np.ndarray):
    """Run face detection on an RGB frame. Returns the landmark list or None."""
    mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(frame_rgb))
    result = landmarker.detect(mp_image)

    if not result.face_landmarks:
        return None
    return result.face_landmarks[0]


def iris_geometry(landmarks) -> IrisGeometry | None:
    """Normalized iris ring points per eye; None without the refined iris landmarks."""
    if landmarks is None or len(landmarks) < 478:
        return None

    # Ring only: the center landmark would pull the mean radius down.
    return IrisGeometry(points={
        "left": [(landmarks[i].x, landmarks[i].y) for i in LEFT_IRIS[1:]],
        "right": [(landmarks[i].x, landmarks[i].y) for i in RIGHT_IRIS[1:]],
    })
