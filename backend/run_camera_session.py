#!/usr/bin/env python3
"""
Run a liveness session against the local camera.

Blink, open your mouth, then shake your head. The best frontal capture is
written next to this script when the session completes.
"""

import asyncio
import logging
from pathlib import Path

from liveness.config import config
from liveness.models.data_models import SessionEvent, SessionEventType, SessionOutcome
from liveness.services.capture_tracker import BestCaptureTracker
from liveness.services.face_landmarks import MediaPipeLandmarkDetector
from liveness.services.frame_pump import CameraFrameSource, FramePump
from liveness.services.liveness_session import LivenessSession

logger = logging.getLogger("run_camera_session")

OUTPUT_DIR = Path(__file__).parent / "captures"


def log_event(event: SessionEvent) -> None:
    if event.type == SessionEventType.SESSION_ERROR:
        logger.warning(event.message)
    else:
        logger.info(event.message)

    if event.type != SessionEventType.SESSION_COMPLETED:
        return

    result = event.data["result"]
    if result.outcome == SessionOutcome.COMPLETED_WITHOUT_CAPTURE:
        logger.info("No frontal capture was taken during the session")
        return

    OUTPUT_DIR.mkdir(exist_ok=True)
    path = OUTPUT_DIR / f"best_capture{config.CAPTURE_IMAGE_FORMAT}"
    path.write_bytes(result.image)
    logger.info(f"Best capture (score {result.score:.3f}) written to {path}")


async def run() -> None:
    thresholds = config.liveness_thresholds()
    session = LivenessSession(
        thresholds=thresholds,
        capture_tracker=BestCaptureTracker(
            thresholds,
            image_format=config.CAPTURE_IMAGE_FORMAT,
            jpeg_quality=config.CAPTURE_JPEG_QUALITY
        )
    )
    session.add_listener(log_event)

    detector = MediaPipeLandmarkDetector(
        landmarker_model_path=config.MEDIAPIPE_LANDMARKER_MODEL_PATH,
        detector_model_path=config.MEDIAPIPE_DETECTOR_MODEL_PATH,
        min_detection_confidence=config.MIN_DETECTION_CONFIDENCE
    )
    if not detector.available:
        logger.error("MediaPipe models missing. Run: python download_mediapipe_model.py")
        return

    camera = CameraFrameSource(config.CAMERA_INDEX)
    pump = FramePump(session, camera.read, detector.detect_async, interval_ms=config.FRAME_INTERVAL_MS)

    session.mark_ready()
    session.start()
    pump.start()
    try:
        await pump.wait()
    finally:
        await pump.stop()
        camera.release()
        detector.close()


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
