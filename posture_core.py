# posture_core.py - Angle extraction + classification (The Signal Brain)

import logging
import math
from enum import Enum
from typing import NamedTuple, Optional

import configure_setting as config

logger = logging.getLogger(__name__)


# ============================================================================
# DATA MODEL
# ============================================================================
class Keypoint(NamedTuple):
    """A joint position in image space (pixels, y grows downward)."""
    x: float
    y: float
    z: float = 0.0


class PoseLandmarks(NamedTuple):
    """
    The joints the pipeline cares about for one frame.

    Shoulders and hips are required for a torso angle; nose and ear are
    only used for the optional neck angle. Any of them may be None when the
    pose model lost track of that joint.
    """
    left_shoulder: Optional[Keypoint]
    right_shoulder: Optional[Keypoint]
    left_hip: Optional[Keypoint]
    right_hip: Optional[Keypoint]
    nose: Optional[Keypoint] = None
    ear: Optional[Keypoint] = None

    def has_torso(self):
        return None not in (self.left_shoulder, self.right_shoulder,
                            self.left_hip, self.right_hip)


class PostureStatus(Enum):
    GOOD = "Good"
    MODERATE = "Moderate"
    POOR = "Poor"
    UNCALIBRATED = "Uncalibrated"

    def __str__(self):
        return self.value


class Thresholds(NamedTuple):
    good: float
    moderate: float

    def classify(self, angle):
        """Three-way comparison, both boundaries inclusive."""
        if angle <= self.good:
            return PostureStatus.GOOD
        if angle <= self.moderate:
            return PostureStatus.MODERATE
        return PostureStatus.POOR


class Classification(NamedTuple):
    status: PostureStatus
    smoothed_angle: float
    raw_angle: float
    previous_status: PostureStatus

    @property
    def changed(self):
        return self.status != self.previous_status


# ============================================================================
# ANGLE EXTRACTOR
# ============================================================================
def _midpoint(a, b):
    return ((a.x + b.x) / 2, (a.y + b.y) / 2)


def torso_angle(landmarks):
    """
    Lean of the shoulder-hip line away from vertical.

    Args:
        landmarks: PoseLandmarks with both shoulders and both hips

    Returns:
        float: Angle in degrees in [0, 90] (0 = upright), or None if any
        of the four torso joints is missing
    """
    if not landmarks.has_torso():
        return None

    shoulder_x, shoulder_y = _midpoint(landmarks.left_shoulder, landmarks.right_shoulder)
    hip_x, hip_y = _midpoint(landmarks.left_hip, landmarks.right_hip)

    dx = abs(shoulder_x - hip_x)
    dy = abs(shoulder_y - hip_y)

    # atan2(0, 0) is 0, so coinciding midpoints read as upright
    return math.degrees(math.atan2(dx, dy))


def neck_angle(landmarks):
    """
    Angle at the ear between the ear→nose and ear→shoulder vectors.

    Uses the left shoulder, falling back to the right one.

    Returns:
        float: Angle in degrees, or None when a point is missing or a
        vector has zero length
    """
    ear, nose = landmarks.ear, landmarks.nose
    shoulder = landmarks.left_shoulder or landmarks.right_shoulder
    if ear is None or nose is None or shoulder is None:
        return None

    ax, ay = nose.x - ear.x, nose.y - ear.y
    bx, by = shoulder.x - ear.x, shoulder.y - ear.y
    denominator = math.hypot(ax, ay) * math.hypot(bx, by)
    if denominator == 0:
        return None

    cosine = (ax * bx + ay * by) / denominator
    # Float error can push the ratio a hair outside acos' domain
    cosine = max(-1.0, min(1.0, cosine))
    return math.degrees(math.acos(cosine))


# ============================================================================
# CALIBRATION (Uncalibrated → NeutralCaptured → Calibrated)
# ============================================================================
def derive_thresholds(neutral, slouch):
    """
    Place the good/moderate cut-offs inside the neutral→slouch range.

    The range is floored at MIN_CALIBRATION_RANGE so a slouch captured at
    (or below) neutral still yields ordered thresholds.
    """
    diff = max(config.MIN_CALIBRATION_RANGE, slouch - neutral)
    return Thresholds(
        good=neutral + diff * config.GOOD_FRACTION,
        moderate=neutral + diff * config.MODERATE_FRACTION,
    )


class Uncalibrated:
    """No captures yet: classify with the mode-aware fallback thresholds."""

    captured_neutral = False
    captured_slouch = False

    def thresholds(self, posture_mode):
        good, moderate = config.FALLBACK_THRESHOLDS.get(
            posture_mode, config.FALLBACK_THRESHOLDS["sitting"])
        return Thresholds(good, moderate)

    def capture_neutral(self, angle):
        return NeutralCaptured(angle)

    def capture_slouch(self, angle):
        # Out of order: neutral must come first
        return self

    def to_dict(self):
        return None

    def __eq__(self, other):
        return isinstance(other, Uncalibrated)

    def __repr__(self):
        return "Uncalibrated()"


class NeutralCaptured:
    """
    Neutral recorded, slouch still pending.

    The slouch value is a display placeholder (neutral + 10) and never
    feeds the thresholds, which stay at 0 until slouch is captured.
    """

    captured_neutral = True
    captured_slouch = False

    def __init__(self, neutral):
        self.neutral = neutral
        self.slouch = neutral + config.SLOUCH_PLACEHOLDER_OFFSET

    def thresholds(self, posture_mode):
        return Thresholds(0.0, 0.0)

    def capture_neutral(self, angle):
        return NeutralCaptured(angle)

    def capture_slouch(self, angle):
        return Calibrated(self.neutral, angle)

    def to_dict(self):
        return {
            'neutral': self.neutral,
            'slouch': self.slouch,
            'good_threshold': 0.0,
            'moderate_threshold': 0.0,
            'slouch_captured': False,
        }

    def __eq__(self, other):
        return isinstance(other, NeutralCaptured) and other.neutral == self.neutral

    def __repr__(self):
        return f"NeutralCaptured(neutral={self.neutral:.2f})"


class Calibrated:
    """Both references captured; thresholds derived from them."""

    captured_neutral = True
    captured_slouch = True

    def __init__(self, neutral, slouch):
        self.neutral = neutral
        self.slouch = slouch
        self.good_threshold, self.moderate_threshold = derive_thresholds(neutral, slouch)

    def thresholds(self, posture_mode):
        return Thresholds(self.good_threshold, self.moderate_threshold)

    def capture_neutral(self, angle):
        return Calibrated(angle, self.slouch)

    def capture_slouch(self, angle):
        return Calibrated(self.neutral, angle)

    def to_dict(self):
        return {
            'neutral': self.neutral,
            'slouch': self.slouch,
            'good_threshold': self.good_threshold,
            'moderate_threshold': self.moderate_threshold,
            'slouch_captured': True,
        }

    def __eq__(self, other):
        return (isinstance(other, Calibrated)
                and other.neutral == self.neutral and other.slouch == self.slouch)

    def __repr__(self):
        return (f"Calibrated(neutral={self.neutral:.2f}, slouch={self.slouch:.2f}, "
                f"good<={self.good_threshold:.2f}, moderate<={self.moderate_threshold:.2f})")


def calibration_from_dict(data):
    """
    Rebuild a calibration state from its stored form.

    Records written before the slouch_captured flag existed count as
    calibrated once they carry non-zero thresholds.
    """
    if not isinstance(data, dict) or 'neutral' not in data:
        return Uncalibrated()

    try:
        neutral = float(data['neutral'])
        if 'slouch_captured' in data:
            slouch_captured = bool(data['slouch_captured'])
        else:
            slouch_captured = float(data.get('moderate_threshold', 0)) > 0
        if slouch_captured:
            return Calibrated(neutral, float(data['slouch']))
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Ignoring malformed calibration record: %s", e)
        return Uncalibrated()

    return NeutralCaptured(neutral)


def load_calibration(store):
    """
    Load previously saved calibration

    Returns:
        Uncalibrated, NeutralCaptured or Calibrated
    """
    return calibration_from_dict(store.get(config.KEY_CALIBRATION))


def save_calibration(store, calibration):
    data = calibration.to_dict()
    if data is None:
        store.remove(config.KEY_CALIBRATION)
    else:
        store.set(config.KEY_CALIBRATION, data)


# ============================================================================
# POSTURE CLASSIFIER (EWMA smoothing + thresholding + transitions)
# ============================================================================
def smoothing_alpha(sensitivity):
    """Higher sensitivity → larger alpha → faster response to new readings."""
    sensitivity = min(1.0, max(0.0, sensitivity))
    return config.SMOOTHING_BASE + sensitivity * config.SMOOTHING_GAIN


class PostureClassifier:
    """
    Turns a stream of raw torso angles into a stable posture status.

    Holds the smoothed angle and the current status for one monitoring
    session. Listeners registered with add_listener() are called only when
    the status changes, never for frames that hold the same status.
    """

    def __init__(self, calibration=None, initial_angle=0.0):
        """
        Args:
            calibration: Starting calibration state (defaults to Uncalibrated)
            initial_angle: Seed for the smoothed angle
        """
        self.calibration = calibration if calibration is not None else Uncalibrated()
        self.smoothed_angle = initial_angle
        self.current_status = PostureStatus.UNCALIBRATED
        self.last_raw_angle = None
        self._listeners = []

    def add_listener(self, callback):
        """Register callback(classification) for status transitions."""
        self._listeners.append(callback)

    def update(self, raw_angle, sensitivity, posture_mode):
        """
        Feed one raw angle through smoothing and thresholding.

        Args:
            raw_angle: Unsmoothed torso angle in degrees
            sensitivity: 0-1, read fresh every call
            posture_mode: 'sitting' or 'standing', read fresh every call

        Returns:
            Classification
        """
        self.last_raw_angle = raw_angle

        alpha = smoothing_alpha(sensitivity)
        self.smoothed_angle = alpha * raw_angle + (1 - alpha) * self.smoothed_angle

        status = self.calibration.thresholds(posture_mode).classify(self.smoothed_angle)
        result = Classification(status, self.smoothed_angle, raw_angle, self.current_status)
        self.current_status = status

        if result.changed:
            logger.debug("Status %s → %s at %.2f°", result.previous_status, status,
                         self.smoothed_angle)
            for callback in self._listeners:
                callback(result)

        return result

    def capture_neutral(self):
        """
        Record the latest raw angle as the neutral reference.

        Returns:
            bool: False when no angle has been seen yet
        """
        if self.last_raw_angle is None:
            return False
        self.calibration = self.calibration.capture_neutral(self.last_raw_angle)
        return True

    def capture_slouch(self):
        """
        Record the latest raw angle as the slouch reference.

        Returns:
            bool: False when rejected (no neutral yet, or no angle seen)
        """
        if self.last_raw_angle is None:
            return False
        updated = self.calibration.capture_slouch(self.last_raw_angle)
        if updated is self.calibration:
            logger.info("Slouch capture ignored: capture neutral first")
            return False
        self.calibration = updated
        return True


# ============================================================================
# FRAME GATE (~30 Hz)
# ============================================================================
class FrameGate:
    """Lets at most one frame through per budget window."""

    def __init__(self, budget_ms=config.FRAME_BUDGET_MS):
        self.budget_ms = budget_ms
        self.last_ms = None

    def ready(self, now_ms):
        if self.last_ms is not None and now_ms - self.last_ms < self.budget_ms:
            return False
        self.last_ms = now_ms
        return True
