import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")
load_dotenv(Path(__file__).resolve().parent / ".env")

BASE_DIR = Path(__file__).resolve().parent

# Landmarker model path
LANDMARKER_PATH = BASE_DIR / os.getenv("LANDMARKER_PATH", "weights/face_landmarker.task")

# MediaPipe iris landmarks (478-point model): center followed by the 4-point ring.
# Left/right are the subject's, matching FACE_LANDMARKS_LEFT_IRIS / RIGHT_IRIS.
LEFT_IRIS = [473, 474, 475, 476, 477]
RIGHT_IRIS = [468, 469, 470, 471, 472]

# Highlight classification
WHITE_THRESHOLD = int(os.getenv("WHITE_THRESHOLD", "200"))
REFLECTION_THRESHOLD = int(os.getenv("REFLECTION_THRESHOLD", "140"))
COLOR_DOMINANCE_FACTOR = float(os.getenv("COLOR_DOMINANCE_FACTOR", "1.2"))

# Darkness validation
ADAPTIVE_DARKNESS_FACTOR = float(os.getenv("ADAPTIVE_DARKNESS_FACTOR", "0.4"))
DARK_RATIO_REQUIRED = float(os.getenv("DARK_RATIO_REQUIRED", "0.75"))

# Calibration glare zone: half-width = radius / 4 * GLARE_IGNORE_RADIUS
GLARE_IGNORE_RADIUS = float(os.getenv("GLARE_IGNORE_RADIUS", "1.5"))
MIN_REGION_RADIUS = float(os.getenv("MIN_REGION_RADIUS", "5"))

# Sequencer
SEQUENCE_TIMEOUT_MS = int(os.getenv("SEQUENCE_TIMEOUT_MS", "10000"))
STEP_TIMEOUT_MS = int(os.getenv("STEP_TIMEOUT_MS", "3000"))
STABLE_FRAMES_REQUIRED = int(os.getenv("STABLE_FRAMES_REQUIRED", "3"))

# Stimulus cadence
CALIBRATION_DWELL_MS = int(os.getenv("CALIBRATION_DWELL_MS", "1000"))
SIGNAL_DWELL_MS = int(os.getenv("SIGNAL_DWELL_MS", "1500"))
COLOR_SEQUENCE = ["CALIBRATION_WHITE", "RED", "GREEN", "BLUE"]

# Document hologram check
DOCUMENT_SIGNAL = os.getenv("DOCUMENT_SIGNAL", "BLUE")
DOCUMENT_ZONE_COUNT = 6
GUIDE_BOX_FRACTION = 0.85

# Diagnostics
DEBUG_CROP_PADDING = 2.0
DEBUG_CROP_MIN_SIZE = int(os.getenv("DEBUG_CROP_MIN_SIZE", "80"))

# Server
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
