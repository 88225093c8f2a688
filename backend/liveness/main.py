"""
FastAPI application exposing liveness sessions over WebSocket
"""
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from liveness.config import config
from liveness.services.capture_tracker import BestCaptureTracker
from liveness.services.face_landmarks import MediaPipeLandmarkDetector
from liveness.services.frame_pump import now_ms
from liveness.services.liveness_session import LivenessSession
from liveness.services.websocket_handler import RESTART, VIDEO_FRAME, WebSocketHandler

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Liveness Check API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

landmark_detector = MediaPipeLandmarkDetector(
    landmarker_model_path=config.MEDIAPIPE_LANDMARKER_MODEL_PATH,
    detector_model_path=config.MEDIAPIPE_DETECTOR_MODEL_PATH,
    min_detection_confidence=config.MIN_DETECTION_CONFIDENCE
)
websocket_handler = WebSocketHandler()


def create_session(session_id: str) -> LivenessSession:
    thresholds = config.liveness_thresholds()
    tracker = BestCaptureTracker(
        thresholds,
        image_format=config.CAPTURE_IMAGE_FORMAT,
        jpeg_quality=config.CAPTURE_JPEG_QUALITY
    )
    return LivenessSession(thresholds=thresholds, capture_tracker=tracker, session_id=session_id)


@app.get("/")
async def root():
    return {
        "message": "Liveness Check API",
        "status": "running",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "services": {
            "api": "operational",
            "landmarks": "operational" if landmark_detector.available else "unavailable"
        }
    }


@app.websocket("/ws/liveness/{session_id}")
async def liveness_websocket(websocket: WebSocket, session_id: str):
    """
    Run one liveness session driven by frames sent from the client.

    Frames are handled one at a time in arrival order; every event the
    session emits while handling a message is sent back before the next
    message is read.
    """
    await websocket_handler.handle_connection(websocket, session_id)

    session = create_session(session_id)
    pending = []
    session.add_listener(pending.append)
    session.mark_ready()
    session.start()

    try:
        await websocket_handler.flush_events(websocket, pending)

        while True:
            message = await websocket_handler.receive_message(websocket)
            if message is None:
                continue

            message_type, frame = message
            if message_type == RESTART:
                session.restart()
            elif message_type == VIDEO_FRAME and session.is_active:
                try:
                    sample = await landmark_detector.detect_async(frame, now_ms())
                except Exception as e:
                    session.report_error(e)
                else:
                    session.process_frame(sample, frame)

            await websocket_handler.flush_events(websocket, pending)

    except WebSocketDisconnect:
        logger.info(f"Session {session_id}: client disconnected in state {session.state.value}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
