# Configuration settings for Spine Guard posture monitor

import logging
import os
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)

# Camera
CAMERA_INDEX = 0
CAMERA_WIDTH = 640
CAMERA_HEIGHT = 480
MIN_FPS = 8

# MediaPipe Pose Landmarker (download the .task bundle into MODEL_PATH)
MODEL_PATH = os.path.join("models", "pose_landmarker_lite.task")
MODEL_URL = ("https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
             "pose_landmarker_lite/float16/latest/pose_landmarker_lite.task")
DETECTION_CONFIDENCE = 0.5
TRACKING_CONFIDENCE = 0.5
# Landmarks below this visibility count as missing (face points only)
VISIBILITY_MIN = 0.5

# Frame gate: ~30 Hz classification
FRAME_BUDGET_MS = 33

# Smoothing: alpha = BASE + sensitivity * GAIN
SMOOTHING_BASE = 0.1
SMOOTHING_GAIN = 0.1

# Fallback thresholds (degrees) when not calibrated: (good, moderate)
FALLBACK_THRESHOLDS = {
    "sitting": (6.0, 12.0),
    "standing": (8.0, 15.0),
}
POSTURE_MODES = tuple(FALLBACK_THRESHOLDS)

# Calibration
GOOD_FRACTION = 0.4       # good within lower 40% of neutral→slouch range
MODERATE_FRACTION = 0.75  # moderate within lower 75%
MIN_CALIBRATION_RANGE = 0.1
SLOUCH_PLACEHOLDER_OFFSET = 10.0

# Session
LIVE_READINGS_CAP = 100

# Detection quality hints
QUALITY_EXCELLENT = 0.8
QUALITY_GOOD = 0.5

# Achievements: good-posture streak milestones (minutes)
STREAK_MILESTONES = (5, 15, 30)
WEEK_WARRIOR_DAYS = 7

# Analytics
DETAILED_RETENTION_DAYS = 15
GOOD_DAY_THRESHOLD = 0.6  # 60% score = good day
TREND_THRESHOLD = 5

# Display colors (BGR format)
COLOR_GOOD = (0, 255, 0)  # Green
COLOR_MODERATE = (0, 165, 255)  # Orange
COLOR_POOR = (0, 0, 255)  # Red
COLOR_NEUTRAL = (200, 200, 200)  # Grey
COLOR_TEXT = (255, 255, 255)  # White

# Overlay themes: (panel, text) colors
THEMES = {
    "light": ((235, 235, 235), (40, 40, 40)),
    "dark": ((30, 30, 30), COLOR_TEXT),
}
PANEL_ALPHA = 0.55

# File paths and directories
DATA_DIR = "data"
SESSIONS_DIR = os.path.join(DATA_DIR, "sessions")
REPORTS_DIR = os.path.join(DATA_DIR, "reports")
STORE_FILE = os.path.join(DATA_DIR, "spine_guard.json")

# Storage keys
KEY_CALIBRATION = "calibration"
KEY_SETTINGS = "settings"
KEY_ACHIEVEMENTS = "achievements"
KEY_ANALYTICS = "analytics"


# ============================================================================
# USER SETTINGS (persisted, editable at runtime)
# ============================================================================
@dataclass
class Settings:
    theme: str = "light"
    sensitivity: float = 0.5
    nudges_enabled: bool = True
    sound_enabled: bool = False  # terminal chime on poor posture
    show_overlay: bool = True
    break_reminders: bool = True
    break_interval: int = 45  # minutes
    voice_enabled: bool = False
    posture_mode: str = "sitting"

    def __post_init__(self):
        self.sensitivity = min(1.0, max(0.0, float(self.sensitivity)))
        self.break_interval = int(self.break_interval)
        if self.posture_mode not in POSTURE_MODES:
            self.posture_mode = "sitting"
        if self.theme not in THEMES:
            self.theme = "light"

    def toggle_mode(self):
        """Flip between sitting and standing."""
        self.posture_mode = "standing" if self.posture_mode == "sitting" else "sitting"
        return self.posture_mode

    def toggle_theme(self):
        self.theme = "dark" if self.theme == "light" else "light"
        return self.theme

    @property
    def overlay_colors(self):
        """(panel, text) BGR colors for the current theme"""
        return THEMES[self.theme]


def load_settings(store):
    """
    Load user settings from the key-value store.

    Unknown keys are ignored so older files keep loading; a record with
    badly typed values falls back to the defaults.

    Returns:
        Settings: saved settings, or defaults if nothing is stored
    """
    saved = store.get(KEY_SETTINGS)
    if not isinstance(saved, dict):
        return Settings()
    known = {k: v for k, v in saved.items() if k in Settings.__dataclass_fields__}
    try:
        return Settings(**known)
    except (TypeError, ValueError) as e:
        logger.warning("Ignoring malformed settings record: %s", e)
        print("⚠️  Saved settings are invalid - using defaults")
        return Settings()


def save_settings(store, settings):
    store.set(KEY_SETTINGS, asdict(settings))
