"""
Data models for the liveness session: states, landmark schema, samples and events
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple


class SessionState(str, Enum):
    """Session lifecycle. LOADING and READY are driven by the host before start()."""
    LOADING = "loading"
    READY = "ready"
    BLINK = "blink"
    MOUTH = "mouth"
    SHAKE = "shake"
    COMPLETED = "completed"


class ChallengeName(str, Enum):
    BLINK = "blink"
    MOUTH = "mouth"
    SHAKE = "shake"


class SessionEventType(str, Enum):
    STATE_CHANGED = "state_changed"
    CHALLENGE_SATISFIED = "challenge_satisfied"
    SESSION_COMPLETED = "session_completed"
    SESSION_ERROR = "session_error"


class SessionOutcome(str, Enum):
    CAPTURED = "captured"
    COMPLETED_WITHOUT_CAPTURE = "completed_without_capture"


class LandmarkSchemaError(ValueError):
    """Raised when a landmark set does not match the fixed group arities"""


# Fixed arities of the named landmark groups
EYE_POINTS = 6
JAW_POINTS = 17
MIN_MOUTH_POINTS = 10
MIN_NOSE_RIDGE_POINTS = 4

# Slices of the 68-point iBUG layout (dlib, face-api.js)
JAW_SLICE = slice(0, 17)
NOSE_RIDGE_SLICE = slice(27, 31)
LEFT_EYE_SLICE = slice(36, 42)
RIGHT_EYE_SLICE = slice(42, 48)
MOUTH_SLICE = slice(48, 68)


@dataclass(frozen=True)
class Point:
    x: float
    y: float


def _to_point(value: Any) -> Point:
    if isinstance(value, Point):
        return value
    if hasattr(value, 'x') and hasattr(value, 'y'):
        return Point(float(value.x), float(value.y))
    return Point(float(value[0]), float(value[1]))


@dataclass(frozen=True)
class LandmarkSet:
    """
    Named 2-D landmark groups for one face in frame coordinates.

    Group order is positional and model-defined:
    - eyes: [outer corner, top lid 1, top lid 2, inner corner, bottom lid 1, bottom lid 2]
    - mouth: outer ring starting at the left corner (0), upper center (3),
      right corner (6), lower center (9); an inner ring may follow
    - jaw: 17 points from the left extreme (0) to the right extreme (16)
    - nose_ridge: top of the bridge down to the tip (3)

    Arities are validated on construction so the index-based geometry
    never reads past a group.
    """
    left_eye: Tuple[Point, ...]
    right_eye: Tuple[Point, ...]
    mouth: Tuple[Point, ...]
    jaw: Tuple[Point, ...]
    nose_ridge: Tuple[Point, ...]

    def __post_init__(self):
        for name in ('left_eye', 'right_eye', 'mouth', 'jaw', 'nose_ridge'):
            try:
                points = tuple(_to_point(p) for p in getattr(self, name))
            except (TypeError, IndexError, ValueError) as e:
                raise LandmarkSchemaError(f"Invalid point in '{name}': {e}") from e
            object.__setattr__(self, name, points)

        self._check_arity('left_eye', EYE_POINTS, exact=True)
        self._check_arity('right_eye', EYE_POINTS, exact=True)
        self._check_arity('jaw', JAW_POINTS, exact=True)
        self._check_arity('mouth', MIN_MOUTH_POINTS)
        self._check_arity('nose_ridge', MIN_NOSE_RIDGE_POINTS)

    def _check_arity(self, name: str, expected: int, exact: bool = False):
        count = len(getattr(self, name))
        if exact and count != expected:
            raise LandmarkSchemaError(f"'{name}' needs exactly {expected} points, got {count}")
        if count < expected:
            raise LandmarkSchemaError(f"'{name}' needs at least {expected} points, got {count}")

    @property
    def nose_tip(self) -> Point:
        return self.nose_ridge[3]

    @classmethod
    def from_68_points(cls, points: Sequence[Any]) -> "LandmarkSet":
        """
        Build a landmark set from the 68-point iBUG layout.

        Args:
            points: 68 entries, each an (x, y) pair or an object with x/y attributes

        Raises:
            LandmarkSchemaError: if fewer than 68 points are supplied
        """
        points = list(points)
        if len(points) < 68:
            raise LandmarkSchemaError(f"Expected 68 landmark points, got {len(points)}")

        return cls(
            left_eye=points[LEFT_EYE_SLICE],
            right_eye=points[RIGHT_EYE_SLICE],
            mouth=points[MOUTH_SLICE],
            jaw=points[JAW_SLICE],
            nose_ridge=points[NOSE_RIDGE_SLICE],
        )


@dataclass
class DetectionSample:
    """One frame's face observation, produced and consumed within a tick"""
    confidence_score: float
    landmarks: LandmarkSet
    timestamp_ms: int


@dataclass(frozen=True)
class LivenessThresholds:
    """Challenge tunables; lower EAR threshold and higher MAR threshold are stricter"""
    blink_ear_threshold: float = 0.30
    blink_min_closed_frames: int = 1
    mouth_mar_threshold: float = 0.30
    mouth_hold_frames: int = 3
    head_turn_low_ratio: float = 0.4
    head_turn_high_ratio: float = 0.6
    head_turn_window_ms: int = 2000
    frontal_band_low: float = 0.45
    frontal_band_high: float = 0.55


@dataclass
class ChallengeTrackingState:
    """Snapshot of the per-challenge counters"""
    blink_counter: int = 0
    mouth_open_counter: int = 0
    left_seen_at_ms: Optional[int] = None
    right_seen_at_ms: Optional[int] = None


@dataclass
class BestCapture:
    image: Optional[bytes] = None
    score: float = -math.inf
    captured_at_ms: Optional[int] = None

    @property
    def has_image(self) -> bool:
        return self.image is not None


@dataclass
class SessionResult:
    """What a completed session hands to the export collaborator"""
    outcome: SessionOutcome
    image: Optional[bytes]
    score: Optional[float]
    completed_at_ms: int


@dataclass
class SessionEvent:
    type: SessionEventType
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
