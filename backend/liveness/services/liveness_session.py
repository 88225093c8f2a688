"""
Liveness session state machine.

Sequences the blink, mouth-open and head-turn challenges, owns every piece of
mutable session state and reports progress to listeners as SessionEvents.
"""
import logging
import uuid
from typing import Callable, Dict, List, Optional

import numpy as np

from ..models.data_models import (
    BestCapture,
    ChallengeTrackingState,
    DetectionSample,
    LivenessThresholds,
    SessionEvent,
    SessionEventType,
    SessionOutcome,
    SessionResult,
    SessionState,
)
from .capture_tracker import BestCaptureTracker
from .challenge_detectors import (
    BlinkDetector,
    ChallengeDetector,
    HeadTurnDetector,
    MouthOpenDetector,
)

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionEvent], None]

ACTIVE_STATES = (SessionState.BLINK, SessionState.MOUTH, SessionState.SHAKE)

NEXT_STATE = {
    SessionState.BLINK: SessionState.MOUTH,
    SessionState.MOUTH: SessionState.SHAKE,
    SessionState.SHAKE: SessionState.COMPLETED,
}

STATE_INSTRUCTIONS = {
    SessionState.LOADING: "Loading models...",
    SessionState.READY: "Get ready",
    SessionState.BLINK: "Please blink your eyes",
    SessionState.MOUTH: "Please open your mouth",
    SessionState.SHAKE: "Please shake your head",
    SessionState.COMPLETED: "Verification complete",
}


class LivenessSession:
    """
    One subject's pass through the ordered challenges.

    States move strictly forward BLINK -> MOUTH -> SHAKE -> COMPLETED;
    start() and restart() are the only way back to BLINK and they clear
    every challenge counter and the best capture. All mutation happens in
    process_frame(), which is called serially by a single driver.
    """

    def __init__(
        self,
        thresholds: Optional[LivenessThresholds] = None,
        capture_tracker: Optional[BestCaptureTracker] = None,
        session_id: Optional[str] = None
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.thresholds = thresholds or LivenessThresholds()
        self.capture_tracker = capture_tracker or BestCaptureTracker(self.thresholds)
        self.state = SessionState.LOADING
        self.result: Optional[SessionResult] = None

        self._blink = BlinkDetector(self.thresholds)
        self._mouth = MouthOpenDetector(self.thresholds)
        self._shake = HeadTurnDetector(self.thresholds)
        self._detectors: Dict[SessionState, ChallengeDetector] = {
            SessionState.BLINK: self._blink,
            SessionState.MOUTH: self._mouth,
            SessionState.SHAKE: self._shake,
        }
        self._listeners: List[SessionListener] = []

    # Listeners

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event_type: SessionEventType, message: str, **data) -> None:
        event = SessionEvent(type=event_type, message=message, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Session {self.session_id}: listener failed on {event_type.value} event")

    # Commands

    def mark_ready(self) -> None:
        """Record that the host finished bootstrapping (models and camera)"""
        if self.state == SessionState.LOADING:
            self._set_state(SessionState.READY)

    def start(self) -> None:
        """Enter BLINK with clean trackers and no capture"""
        for detector in self._detectors.values():
            detector.reset()
        self.capture_tracker.reset()
        self.result = None
        logger.info(f"Session {self.session_id}: liveness test started")
        self._set_state(SessionState.BLINK)

    def restart(self) -> None:
        """Reset to BLINK from any state"""
        logger.info(f"Session {self.session_id}: restart requested in state {self.state.value}")
        self.start()

    # Tick handling

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def is_completed(self) -> bool:
        return self.state == SessionState.COMPLETED

    def process_frame(
        self,
        sample: Optional[DetectionSample],
        frame: Optional[np.ndarray] = None
    ) -> Optional[SessionState]:
        """
        Run one tick of the liveness logic.

        Args:
            sample: The detected face for this frame, or None when no face was found
            frame: The video frame the sample came from, used for the best capture

        Returns:
            The new state if this frame caused a transition, otherwise None
        """
        if sample is None or not self.is_active:
            return None

        self.capture_tracker.update(
            sample.confidence_score,
            sample.landmarks,
            frame,
            sample.timestamp_ms
        )

        detector = self._detectors[self.state]
        if not detector.update(sample.landmarks, sample.timestamp_ms):
            return None

        logger.info(f"Session {self.session_id}: {detector.name.value} challenge satisfied")
        self._emit(
            SessionEventType.CHALLENGE_SATISFIED,
            f"Challenge satisfied: {detector.name.value}",
            challenge=detector.name.value
        )

        next_state = NEXT_STATE[self.state]
        self._set_state(next_state)
        if next_state == SessionState.COMPLETED:
            self._complete(sample.timestamp_ms)
        return next_state

    def report_error(self, error: BaseException) -> None:
        """Surface a collaborator failure without changing the session state"""
        logger.error(f"Session {self.session_id}: collaborator failure in state {self.state.value}: {error}")
        self._emit(
            SessionEventType.SESSION_ERROR,
            f"Detection failed: {error}",
            state=self.state.value,
            error_type=type(error).__name__
        )

    # Introspection

    @property
    def best_capture(self) -> BestCapture:
        return self.capture_tracker.best

    def tracking_state(self) -> ChallengeTrackingState:
        return ChallengeTrackingState(
            blink_counter=self._blink.closed_frames,
            mouth_open_counter=self._mouth.open_frames,
            left_seen_at_ms=self._shake.left_seen_at_ms,
            right_seen_at_ms=self._shake.right_seen_at_ms,
        )

    # Internals

    def _set_state(self, new_state: SessionState) -> None:
        detector = self._detectors.get(new_state)
        if detector is not None:
            detector.reset()

        old_state = self.state
        self.state = new_state
        logger.info(f"Session {self.session_id}: {old_state.value} -> {new_state.value}")
        self._emit(
            SessionEventType.STATE_CHANGED,
            STATE_INSTRUCTIONS[new_state],
            state=new_state.value,
            previous_state=old_state.value,
            instruction=STATE_INSTRUCTIONS[new_state]
        )

    def _complete(self, timestamp_ms: int) -> None:
        best = self.capture_tracker.best
        if best.has_image:
            self.result = SessionResult(
                outcome=SessionOutcome.CAPTURED,
                image=best.image,
                score=best.score,
                completed_at_ms=timestamp_ms
            )
            message = "Verification success"
        else:
            self.result = SessionResult(
                outcome=SessionOutcome.COMPLETED_WITHOUT_CAPTURE,
                image=None,
                score=None,
                completed_at_ms=timestamp_ms
            )
            message = "Verification success without a frontal capture"

        logger.info(f"Session {self.session_id}: completed ({self.result.outcome.value})")
        self._emit(
            SessionEventType.SESSION_COMPLETED,
            message,
            outcome=self.result.outcome.value,
            result=self.result
        )
