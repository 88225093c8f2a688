"""
Per-challenge detectors for the blink, mouth-open and head-turn gestures.

Each detector consumes one landmark set per frame, accumulates its own
counters and returns True on the frame where its challenge is satisfied.
Frames without a face are never fed to a detector.
"""
import logging
from typing import Optional

from ..models.data_models import ChallengeName, LandmarkSet, LivenessThresholds
from .geometry import (
    average_eye_aspect_ratio,
    landmarks_mouth_aspect_ratio,
    landmarks_nose_relative_x,
)

logger = logging.getLogger(__name__)


class ChallengeDetector:
    """Base class: sample -> accumulate -> debounce -> emit edge"""

    name: ChallengeName

    def __init__(self, thresholds: Optional[LivenessThresholds] = None):
        self.thresholds = thresholds or LivenessThresholds()
        self.reset()

    def reset(self) -> None:
        raise NotImplementedError

    def update(self, landmarks: LandmarkSet, timestamp_ms: int) -> bool:
        raise NotImplementedError


class BlinkDetector(ChallengeDetector):
    """
    Satisfied by an open -> closed -> open cycle.

    Closed frames (average EAR below threshold) are counted; the first open
    frame after at least `blink_min_closed_frames` closed ones emits the edge.
    The counter is cleared on every open frame.
    """

    name = ChallengeName.BLINK

    def reset(self) -> None:
        self.closed_frames = 0

    def update(self, landmarks: LandmarkSet, timestamp_ms: int) -> bool:
        avg_ear = average_eye_aspect_ratio(landmarks)

        if avg_ear < self.thresholds.blink_ear_threshold:
            self.closed_frames += 1
            logger.debug(f"Eyes closed: {self.closed_frames} (EAR: {avg_ear:.2f})")
            return False

        satisfied = self.closed_frames >= self.thresholds.blink_min_closed_frames
        self.closed_frames = 0
        logger.debug(f"Eyes open (EAR: {avg_ear:.2f})")
        return satisfied


class MouthOpenDetector(ChallengeDetector):
    """
    Satisfied when the mouth was held open for `mouth_hold_frames`
    consecutive frames and then closes.
    """

    name = ChallengeName.MOUTH

    def reset(self) -> None:
        self.open_frames = 0

    def update(self, landmarks: LandmarkSet, timestamp_ms: int) -> bool:
        mar = landmarks_mouth_aspect_ratio(landmarks)

        if mar > self.thresholds.mouth_mar_threshold:
            self.open_frames += 1
            logger.debug(f"Mouth open: {self.open_frames} (MAR: {mar:.2f})")
            return False

        satisfied = self.open_frames >= self.thresholds.mouth_hold_frames
        self.open_frames = 0
        logger.debug(f"Mouth closed (MAR: {mar:.2f})")
        return satisfied


class HeadTurnDetector(ChallengeDetector):
    """
    Satisfied once both a left and a right turn were seen within the window.

    The latest left and right sightings are kept for the whole challenge;
    a failed pairing is not cleared and is compared again every frame.
    """

    name = ChallengeName.SHAKE

    def reset(self) -> None:
        self.left_seen_at_ms: Optional[int] = None
        self.right_seen_at_ms: Optional[int] = None

    def update(self, landmarks: LandmarkSet, timestamp_ms: int) -> bool:
        nose_rel_x = landmarks_nose_relative_x(landmarks)

        if nose_rel_x < self.thresholds.head_turn_low_ratio:
            self.left_seen_at_ms = timestamp_ms
        if nose_rel_x > self.thresholds.head_turn_high_ratio:
            self.right_seen_at_ms = timestamp_ms

        logger.debug(f"Head position: noseRelX={nose_rel_x:.2f}")

        if self.left_seen_at_ms is None or self.right_seen_at_ms is None:
            return False

        return abs(self.left_seen_at_ms - self.right_seen_at_ms) < self.thresholds.head_turn_window_ms
