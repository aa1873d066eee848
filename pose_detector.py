# pose_detector.py - Detection (wraps MediaPipe Pose Landmarker)

import os

import cv2
import mediapipe as mp
import numpy as np

import configure_setting as config
from posture_core import Keypoint, PoseLandmarks, neck_angle

# MediaPipe pose landmark indices
NOSE = 0
LEFT_EAR = 7
RIGHT_EAR = 8
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_HIP = 23
RIGHT_HIP = 24

TORSO = (LEFT_SHOULDER, RIGHT_SHOULDER, LEFT_HIP, RIGHT_HIP)

# Upper-body skeleton edges drawn on the overlay
EDGES = [
    (LEFT_SHOULDER, RIGHT_SHOULDER), (LEFT_HIP, RIGHT_HIP),
    (LEFT_SHOULDER, LEFT_HIP), (RIGHT_SHOULDER, RIGHT_HIP),
    (LEFT_SHOULDER, 13), (13, 15), (RIGHT_SHOULDER, 14), (14, 16),
    (NOSE, LEFT_EAR), (NOSE, RIGHT_EAR),
]


class PoseDetector:
    """Detects human pose from camera frames"""

    def __init__(self, model_path=config.MODEL_PATH):
        if not os.path.exists(model_path):
            raise FileNotFoundError(
                f"Pose model not found at {model_path}. Download it from {config.MODEL_URL}")

        options = mp.tasks.vision.PoseLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=model_path),
            running_mode=mp.tasks.vision.RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=config.DETECTION_CONFIDENCE,
            min_tracking_confidence=config.TRACKING_CONFIDENCE,
        )
        self.landmarker = mp.tasks.vision.PoseLandmarker.create_from_options(options)
        self._last_timestamp_ms = -1

    def detect(self, frame, timestamp_ms):
        """
        Takes a frame, returns the raw landmark list (or None if no person detected)

        Args:
            frame: OpenCV image (BGR format)
            timestamp_ms: Monotonic frame time in milliseconds

        Returns:
            list: 33 normalized landmarks, or None
        """
        # VIDEO mode rejects non-increasing timestamps
        timestamp_ms = max(int(timestamp_ms), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        image = mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))
        result = self.landmarker.detect_for_video(image, timestamp_ms)

        if result.pose_landmarks:
            return result.pose_landmarks[0]
        return None

    def close(self):
        self.landmarker.close()

    def draw_skeleton(self, frame, landmarks):
        """
        Draw the upper-body skeleton on the frame

        Args:
            frame: OpenCV image to draw on
            landmarks: Landmark list from detect()
        """
        height, width = frame.shape[:2]
        points = [(int(lm.x * width), int(lm.y * height)) for lm in landmarks]

        for a, b in EDGES:
            if a < len(points) and b < len(points):
                cv2.line(frame, points[a], points[b], (0, 255, 136), 3, lineType=cv2.LINE_AA)
        for index in (NOSE, LEFT_EAR, RIGHT_EAR) + TORSO:
            if index < len(points):
                cv2.circle(frame, points[index], 5, (136, 0, 255), thickness=-1,
                           lineType=cv2.FILLED)


def _to_keypoint(landmarks, index, width, height, min_visibility=None):
    if index >= len(landmarks):
        return None
    lm = landmarks[index]
    if min_visibility is not None and (lm.visibility or 0.0) < min_visibility:
        return None
    return Keypoint(lm.x * width, lm.y * height, lm.z * width)


def extract_frame(landmarks, width, height):
    """
    Convert a raw landmark list into the pipeline's per-frame inputs.

    Coordinates are scaled to pixels so the torso angle is not skewed by
    the frame's aspect ratio.

    Args:
        landmarks: Landmark list from PoseDetector.detect()
        width, height: Frame size in pixels

    Returns:
        tuple: (PoseLandmarks, confidence 0-1, neck angle or None)
    """
    # An ear turned away from the camera reports low visibility
    ear = _to_keypoint(landmarks, LEFT_EAR, width, height, config.VISIBILITY_MIN)
    if ear is None:
        ear = _to_keypoint(landmarks, RIGHT_EAR, width, height, config.VISIBILITY_MIN)

    pose = PoseLandmarks(
        left_shoulder=_to_keypoint(landmarks, LEFT_SHOULDER, width, height),
        right_shoulder=_to_keypoint(landmarks, RIGHT_SHOULDER, width, height),
        left_hip=_to_keypoint(landmarks, LEFT_HIP, width, height),
        right_hip=_to_keypoint(landmarks, RIGHT_HIP, width, height),
        nose=_to_keypoint(landmarks, NOSE, width, height, config.VISIBILITY_MIN),
        ear=ear,
    )

    visible = [landmarks[i].visibility or 0.0 for i in TORSO if i < len(landmarks)]
    confidence = sum(visible) / len(visible) if visible else 0.0

    return pose, confidence, neck_angle(pose)
