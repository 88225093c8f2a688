"""
Geometric metrics computed from facial landmark groups.

All functions are pure. Ratios whose denominator collapses below
DEGENERATE_EPSILON return a sentinel instead of a non-finite value:
EAR reports an open eye, MAR a closed mouth and the yaw proxy a frontal pose.
"""
import math
from typing import Sequence

import numpy as np

from ..models.data_models import LandmarkSet, Point

DEGENERATE_EPSILON = 1e-6

OPEN_EYE_SENTINEL = math.inf
CLOSED_MOUTH_SENTINEL = 0.0
FRONTAL_SENTINEL = 0.5


def distance(p1: Point, p2: Point) -> float:
    """Euclidean distance between two points"""
    return float(np.hypot(p1.x - p2.x, p1.y - p2.y))


def eye_aspect_ratio(eye: Sequence[Point]) -> float:
    """
    Eye Aspect Ratio (Soukupová & Čech, 2016).

    EAR = (|p1-p5| + |p2-p4|) / (2 * |p0-p3|)

    Args:
        eye: 6 points ordered [outer corner, top lid 1, top lid 2,
             inner corner, bottom lid 1, bottom lid 2]

    Returns:
        float: EAR, lower means more closed; +inf for a degenerate contour
    """
    horizontal = distance(eye[0], eye[3])
    if horizontal < DEGENERATE_EPSILON:
        return OPEN_EYE_SENTINEL

    vertical = distance(eye[1], eye[5]) + distance(eye[2], eye[4])
    return vertical / (2.0 * horizontal)


def mouth_aspect_ratio(mouth: Sequence[Point]) -> float:
    """
    Mouth Aspect Ratio from the outer lip ring.

    MAR = |p3-p9| / |p0-p6|  (upper/lower lip centers over corner-to-corner width)
    """
    width = distance(mouth[0], mouth[6])
    if width < DEGENERATE_EPSILON:
        return CLOSED_MOUTH_SENTINEL

    return distance(mouth[3], mouth[9]) / width


def nose_relative_x(jaw: Sequence[Point], nose_tip: Point) -> float:
    """
    Head-yaw proxy: horizontal position of the nose tip between the jaw extremes.

    ~0.5 is frontal, smaller values are a turn towards the jaw's left
    extreme, larger values towards its right extreme. Not clamped.
    """
    face_left = jaw[0].x
    face_width = jaw[16].x - face_left
    if abs(face_width) < DEGENERATE_EPSILON:
        return FRONTAL_SENTINEL

    return (nose_tip.x - face_left) / face_width


def average_eye_aspect_ratio(landmarks: LandmarkSet) -> float:
    return (eye_aspect_ratio(landmarks.left_eye) + eye_aspect_ratio(landmarks.right_eye)) / 2.0


def landmarks_mouth_aspect_ratio(landmarks: LandmarkSet) -> float:
    return mouth_aspect_ratio(landmarks.mouth)


def landmarks_nose_relative_x(landmarks: LandmarkSet) -> float:
    return nose_relative_x(landmarks.jaw, landmarks.nose_tip)
