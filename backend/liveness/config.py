"""
Configuration management for the liveness service
"""
import os
from pathlib import Path
from dotenv import load_dotenv

from .models.data_models import LivenessThresholds

load_dotenv()

MODELS_DIR = Path.home() / ".mediapipe_models"


class Config:
    """Application configuration"""

    # Challenge thresholds
    BLINK_EAR_THRESHOLD = float(os.getenv('BLINK_EAR_THRESHOLD', '0.30'))
    BLINK_MIN_CLOSED_FRAMES = int(os.getenv('BLINK_MIN_CLOSED_FRAMES', '1'))
    MOUTH_MAR_THRESHOLD = float(os.getenv('MOUTH_MAR_THRESHOLD', '0.30'))
    MOUTH_HOLD_FRAMES = int(os.getenv('MOUTH_HOLD_FRAMES', '3'))
    HEAD_TURN_LOW_RATIO = float(os.getenv('HEAD_TURN_LOW_RATIO', '0.4'))
    HEAD_TURN_HIGH_RATIO = float(os.getenv('HEAD_TURN_HIGH_RATIO', '0.6'))
    HEAD_TURN_WINDOW_MS = int(os.getenv('HEAD_TURN_WINDOW_MS', '2000'))
    FRONTAL_BAND_LOW = float(os.getenv('FRONTAL_BAND_LOW', '0.45'))
    FRONTAL_BAND_HIGH = float(os.getenv('FRONTAL_BAND_HIGH', '0.55'))

    # Frame pump
    FRAME_INTERVAL_MS = int(os.getenv('FRAME_INTERVAL_MS', '50'))
    CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', '0'))

    # Best capture encoding
    CAPTURE_IMAGE_FORMAT = os.getenv('CAPTURE_IMAGE_FORMAT', '.jpg')
    CAPTURE_JPEG_QUALITY = int(os.getenv('CAPTURE_JPEG_QUALITY', '90'))

    # ML Model Configuration
    MEDIAPIPE_LANDMARKER_MODEL_PATH = os.getenv(
        'MEDIAPIPE_LANDMARKER_MODEL_PATH',
        str(MODELS_DIR / 'face_landmarker.task')
    )
    MEDIAPIPE_DETECTOR_MODEL_PATH = os.getenv(
        'MEDIAPIPE_DETECTOR_MODEL_PATH',
        str(MODELS_DIR / 'blaze_face_short_range.tflite')
    )
    MIN_DETECTION_CONFIDENCE = float(os.getenv('MIN_DETECTION_CONFIDENCE', '0.5'))

    # Server Configuration
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', '8000'))
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    @classmethod
    def liveness_thresholds(cls) -> LivenessThresholds:
        """Build the challenge thresholds from the environment"""
        return LivenessThresholds(
            blink_ear_threshold=cls.BLINK_EAR_THRESHOLD,
            blink_min_closed_frames=cls.BLINK_MIN_CLOSED_FRAMES,
            mouth_mar_threshold=cls.MOUTH_MAR_THRESHOLD,
            mouth_hold_frames=cls.MOUTH_HOLD_FRAMES,
            head_turn_low_ratio=cls.HEAD_TURN_LOW_RATIO,
            head_turn_high_ratio=cls.HEAD_TURN_HIGH_RATIO,
            head_turn_window_ms=cls.HEAD_TURN_WINDOW_MS,
            frontal_band_low=cls.FRONTAL_BAND_LOW,
            frontal_band_high=cls.FRONTAL_BAND_HIGH,
        )


config = Config()
