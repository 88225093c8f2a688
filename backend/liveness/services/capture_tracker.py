"""
Best-capture tracker: keeps the highest-confidence frontal still of a session
"""
import logging
from typing import Optional

import cv2
import numpy as np

from ..models.data_models import BestCapture, LandmarkSet, LivenessThresholds
from .geometry import landmarks_nose_relative_x

logger = logging.getLogger(__name__)


class BestCaptureTracker:
    """
    Holds the single best still image of the subject's face.

    A frame replaces the held capture only when the pose is frontal
    (nose tip inside the frontal band) and its detection confidence is
    strictly greater than the held score. The score check runs before
    encoding so non-improving frames never cost an encode.
    """

    def __init__(
        self,
        thresholds: Optional[LivenessThresholds] = None,
        image_format: str = '.jpg',
        jpeg_quality: int = 90
    ):
        self.thresholds = thresholds or LivenessThresholds()
        self.image_format = image_format
        self.jpeg_quality = jpeg_quality
        self.best = BestCapture()

    def reset(self) -> None:
        self.best = BestCapture()

    def is_frontal(self, landmarks: LandmarkSet) -> bool:
        nose_rel_x = landmarks_nose_relative_x(landmarks)
        return self.thresholds.frontal_band_low <= nose_rel_x <= self.thresholds.frontal_band_high

    def update(
        self,
        confidence_score: float,
        landmarks: LandmarkSet,
        frame: Optional[np.ndarray],
        timestamp_ms: Optional[int] = None
    ) -> bool:
        """
        Offer one frame to the tracker.

        Args:
            confidence_score: Face detection confidence in [0, 1]
            landmarks: Landmarks of the detected face
            frame: Current video frame (BGR); nothing is captured without one
            timestamp_ms: Frame timestamp recorded with the capture

        Returns:
            bool: True if the held capture was replaced
        """
        if not self.is_frontal(landmarks):
            return False
        if confidence_score <= self.best.score:
            return False
        if frame is None:
            return False

        image = self._encode(frame)
        if image is None:
            return False

        logger.debug(f"Best capture replaced: score {self.best.score:.3f} -> {confidence_score:.3f}")
        self.best = BestCapture(image=image, score=confidence_score, captured_at_ms=timestamp_ms)
        return True

    def _encode(self, frame: np.ndarray) -> Optional[bytes]:
        params = []
        if self.image_format.lower() in ('.jpg', '.jpeg'):
            params = [int(cv2.IMWRITE_JPEG_QUALITY), self.jpeg_quality]

        try:
            ok, buffer = cv2.imencode(self.image_format, frame, params)
        except cv2.error as e:
            logger.error(f"Failed to encode capture: {e}")
            return None

        if not ok:
            logger.error("Failed to encode capture: cv2.imencode returned False")
            return None

        return buffer.tobytes()
