"""
WebSocket handler for real-time liveness sessions.

This module provides the WebSocketHandler class that manages WebSocket connections,
video frame reception and delivery of session events to the client.
"""
from fastapi import WebSocket, WebSocketDisconnect
from typing import Any, Dict, List, Optional, Tuple
import logging
import json
import base64
import numpy as np
import cv2

from liveness.models.data_models import SessionEvent, SessionResult

logger = logging.getLogger(__name__)

VIDEO_FRAME = "video_frame"
RESTART = "restart"


class WebSocketHandler:
    """
    Manages WebSocket communication for a liveness session.

    This class encapsulates all WebSocket-related functionality including:
    - Connection lifecycle management
    - Video frame reception and decoding
    - Restart commands from the client
    - Serialization and delivery of session events
    """

    async def handle_connection(
        self,
        websocket: WebSocket,
        session_id: str
    ) -> None:
        """
        Accept the WebSocket connection for a session.

        Args:
            websocket: FastAPI WebSocket connection object
            session_id: Unique session identifier
        """
        await websocket.accept()
        logger.info(f"WebSocket connection established for session {session_id}")

    async def receive_message(
        self,
        websocket: WebSocket
    ) -> Optional[Tuple[str, Optional[np.ndarray]]]:
        """
        Receive one client message.

        Returns:
            ("video_frame", frame) for a decodable frame, ("restart", None) for a
            restart command, or None when the message is unknown, malformed or
            its frame cannot be decoded

        Raises:
            WebSocketDisconnect: when the client goes away
        """
        received = await websocket.receive()
        if received["type"] == "websocket.disconnect":
            logger.info("WebSocket disconnected while receiving message")
            raise WebSocketDisconnect(code=received.get("code", 1000), reason=received.get("reason"))

        data = received.get("text")
        if data is None:
            logger.warning("Ignoring non-text WebSocket message")
            return None

        try:
            message = json.loads(data)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON received: {e}")
            return None

        if not isinstance(message, dict):
            logger.error(f"Unexpected message payload: {type(message).__name__}")
            return None

        message_type = message.get("type")
        if message_type == RESTART:
            return RESTART, None

        if message_type == VIDEO_FRAME:
            frame_data = message.get("frame")
            if not frame_data:
                return None
            frame = self._decode_frame(frame_data)
            if frame is None:
                return None
            return VIDEO_FRAME, frame

        logger.warning(f"Ignoring unknown message type: {message_type}")
        return None

    async def send_event(
        self,
        websocket: WebSocket,
        event: SessionEvent
    ) -> None:
        """
        Send one session event to the client.

        Raises:
            Exception: transport errors are logged and re-raised
        """
        try:
            await websocket.send_json(self.serialize_event(event))
            logger.debug(f"Sent event: {event.type.value}")
        except Exception as e:
            logger.error(f"Error sending event: {e}")
            raise

    async def flush_events(
        self,
        websocket: WebSocket,
        events: List[SessionEvent]
    ) -> None:
        """Send queued events in order and clear the queue"""
        while events:
            await self.send_event(websocket, events.pop(0))

    async def close_connection(
        self,
        websocket: WebSocket,
        code: int = 1000,
        reason: str = "Normal closure"
    ) -> None:
        """
        Close the WebSocket connection gracefully.

        Args:
            websocket: FastAPI WebSocket connection object
            code: WebSocket close code (default: 1000 for normal closure)
            reason: Human-readable reason for closure
        """
        try:
            await websocket.close(code=code, reason=reason)
            logger.info(f"WebSocket closed: {reason} (code: {code})")
        except Exception as e:
            logger.error(f"Error closing WebSocket: {e}")

    @staticmethod
    def serialize_event(event: SessionEvent) -> Dict[str, Any]:
        """Convert an event to JSON; a completion result carries its image as base64"""
        data = {}
        for key, value in event.data.items():
            if isinstance(value, SessionResult):
                value = {
                    "outcome": value.outcome.value,
                    "image": base64.b64encode(value.image).decode('ascii') if value.image is not None else None,
                    "score": value.score,
                    "completed_at_ms": value.completed_at_ms,
                }
            data[key] = value

        return {
            "type": event.type.value,
            "message": event.message,
            "data": data
        }

    def _decode_frame(self, frame_data: str) -> Optional[np.ndarray]:
        """
        Decode a base64-encoded video frame.

        Args:
            frame_data: Base64-encoded image data (may include data URL prefix)

        Returns:
            Decoded frame as numpy array (BGR format), or None if decoding fails
        """
        try:
            # Remove data URL prefix if present (e.g., "data:image/jpeg;base64,")
            if "," in frame_data:
                frame_data = frame_data.split(",")[1]

            img_bytes = base64.b64decode(frame_data)
            nparr = np.frombuffer(img_bytes, np.uint8)
            frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

            if frame is None:
                logger.error("Failed to decode frame: cv2.imdecode returned None")
                return None

            return frame

        except Exception as e:
            logger.error(f"Error decoding frame: {e}")
            return None
