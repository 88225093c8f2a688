"""
Unit tests for the geometry metrics
"""
import math

import pytest
from hypothesis import given, strategies as st

from liveness.models.data_models import Point
from liveness.services.geometry import (
    average_eye_aspect_ratio,
    distance,
    eye_aspect_ratio,
    landmarks_mouth_aspect_ratio,
    landmarks_nose_relative_x,
    mouth_aspect_ratio,
    nose_relative_x,
)
from synthetic_landmarks import make_eye, make_jaw, make_landmarks, make_mouth


class TestDistance:
    """Tests for Euclidean distance"""

    def test_distance_3_4_5(self):
        assert distance(Point(0, 0), Point(3, 4)) == pytest.approx(5.0)

    def test_distance_is_symmetric(self):
        a, b = Point(1.5, -2.0), Point(-4.0, 7.25)
        assert distance(a, b) == pytest.approx(distance(b, a))

    def test_distance_to_self_is_zero(self):
        assert distance(Point(10, 10), Point(10, 10)) == 0.0


class TestEyeAspectRatio:
    """Tests for EAR"""

    def test_known_contour(self):
        eye = [Point(0, 0), Point(2, -1), Point(4, -1), Point(6, 0), Point(4, 1), Point(2, 1)]
        # (|p1-p5| + |p2-p4|) / (2 * |p0-p3|) = (2 + 2) / 12
        assert eye_aspect_ratio(eye) == pytest.approx(4 / 12)

    def test_closed_eye_has_low_ear(self):
        assert eye_aspect_ratio(make_eye(0.05, 100, 100)) < 0.30

    def test_degenerate_contour_reads_as_open(self):
        """Coincident corners must not raise and must classify as open"""
        eye = [Point(5, 5), Point(5, 4), Point(5, 4), Point(5, 5), Point(5, 6), Point(5, 6)]
        ear = eye_aspect_ratio(eye)
        assert ear == math.inf
        assert not ear < 0.30

    def test_average_of_both_eyes(self):
        landmarks = make_landmarks(left_ear=0.2, right_ear=0.4)
        assert average_eye_aspect_ratio(landmarks) == pytest.approx(0.3)

    @given(st.floats(min_value=0.0, max_value=1.5, allow_nan=False))
    def test_synthetic_eye_matches_requested_ear(self, ear):
        assert eye_aspect_ratio(make_eye(ear, 200, 200)) == pytest.approx(ear, abs=1e-9)


class TestMouthAspectRatio:
    """Tests for MAR"""

    def test_known_mouth(self):
        mouth = make_mouth(0.5)
        assert mouth_aspect_ratio(mouth) == pytest.approx(0.5)

    def test_uses_outer_ring_indices(self):
        mouth = [Point(0, 0)] * 12
        mouth[0] = Point(0, 0)
        mouth[6] = Point(10, 0)
        mouth[3] = Point(5, -2)
        mouth[9] = Point(5, 2)
        assert mouth_aspect_ratio(mouth) == pytest.approx(0.4)

    def test_degenerate_mouth_reads_as_closed(self):
        mouth = [Point(3, 3)] * 12
        assert mouth_aspect_ratio(mouth) == 0.0

    def test_from_landmark_set(self):
        assert landmarks_mouth_aspect_ratio(make_landmarks(mar=0.42)) == pytest.approx(0.42)


class TestNoseRelativeX:
    """Tests for the head-yaw proxy"""

    def test_frontal(self):
        jaw = make_jaw(left_x=0, width=100)
        assert nose_relative_x(jaw, Point(50, 60)) == pytest.approx(0.5)

    def test_turns(self):
        jaw = make_jaw(left_x=0, width=100)
        assert nose_relative_x(jaw, Point(30, 60)) == pytest.approx(0.3)
        assert nose_relative_x(jaw, Point(70, 60)) == pytest.approx(0.7)

    def test_not_clamped(self):
        jaw = make_jaw(left_x=0, width=100)
        assert nose_relative_x(jaw, Point(-20, 60)) == pytest.approx(-0.2)
        assert nose_relative_x(jaw, Point(130, 60)) == pytest.approx(1.3)

    def test_degenerate_jaw_reads_as_frontal(self):
        jaw = [Point(10, i) for i in range(17)]
        assert nose_relative_x(jaw, Point(40, 5)) == 0.5

    def test_uses_nose_tip_from_landmark_set(self):
        assert landmarks_nose_relative_x(make_landmarks(nose_rel_x=0.3)) == pytest.approx(0.3)

    @given(st.floats(min_value=-0.5, max_value=1.5, allow_nan=False))
    def test_result_is_always_finite(self, ratio):
        value = landmarks_nose_relative_x(make_landmarks(nose_rel_x=ratio))
        assert math.isfinite(value)
        assert value == pytest.approx(ratio, abs=1e-9)
