"""
Periodic frame pump driving a LivenessSession from a frame source and a detector
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import cv2
import numpy as np

from ..models.data_models import DetectionSample
from .liveness_session import LivenessSession

logger = logging.getLogger(__name__)

FrameReader = Callable[[], Awaitable[Optional[np.ndarray]]]
Detector = Callable[[np.ndarray, int], Awaitable[Optional[DetectionSample]]]


def now_ms() -> int:
    return int(time.monotonic() * 1000)


class CameraFrameSource:
    """
    Reads frames from a local camera through OpenCV.

    The capture device is opened lazily on the first read and the blocking
    read runs in a worker thread so the event loop stays responsive.
    """

    def __init__(self, camera_index: int = 0, width: int = 640, height: int = 480):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._capture = None

    def _open(self) -> cv2.VideoCapture:
        if self._capture is None:
            capture = cv2.VideoCapture(self.camera_index)
            if not capture.isOpened():
                raise RuntimeError(f"Camera {self.camera_index} could not be opened")
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._capture = capture
            logger.info(f"Camera {self.camera_index} opened")
        return self._capture

    def _read_blocking(self) -> Optional[np.ndarray]:
        ok, frame = self._open().read()
        if not ok:
            raise RuntimeError(f"Camera {self.camera_index} returned no frame")
        return frame

    async def read(self) -> Optional[np.ndarray]:
        return await asyncio.to_thread(self._read_blocking)

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Camera {self.camera_index} released")


class FramePump:
    """
    Cancellable periodic driver for a liveness session.

    Each tick reads a frame, awaits face detection and hands the result to
    the session. Ticks never overlap: the next one starts only after the
    previous finished, at the configured period when time allows.
    Failures of the frame source or detector are reported to the session
    as errors and the pump keeps running.
    """

    def __init__(
        self,
        session: LivenessSession,
        read_frame: FrameReader,
        detect: Detector,
        interval_ms: int = 50,
        stop_on_complete: bool = True
    ):
        self.session = session
        self.read_frame = read_frame
        self.detect = detect
        self.interval_ms = interval_ms
        self.stop_on_complete = stop_on_complete

        self.ticks = 0
        self.faceless_ticks = 0
        self.errors = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start pumping frames; a no-op while already running"""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"frame-pump-{self.session.session_id}")
        logger.info(f"Frame pump started for session {self.session.session_id} ({self.interval_ms} ms)")

    async def stop(self) -> None:
        """Cancel the pump and wait for it to finish; safe to call when stopped"""
        task = self._task
        self._task = None
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception(f"Frame pump for session {self.session.session_id} had failed")
        logger.info(f"Frame pump stopped for session {self.session.session_id} after {self.ticks} ticks")

    async def wait(self) -> None:
        """Wait until the pump ends on its own (session completed)"""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def tick(self) -> None:
        """Process exactly one frame"""
        self.ticks += 1
        try:
            frame = await self.read_frame()
            if frame is None:
                self.faceless_ticks += 1
                return
            sample = await self.detect(frame, now_ms())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.errors += 1
            self.session.report_error(e)
            return

        if sample is None:
            self.faceless_ticks += 1
            return
        self.session.process_frame(sample, frame)

    async def _run(self) -> None:
        interval = self.interval_ms / 1000.0
        while True:
            started = time.monotonic()
            await self.tick()

            if self.stop_on_complete and self.session.is_completed:
                logger.info(f"Session {self.session.session_id} completed, frame pump exiting")
                return

            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, interval - elapsed))
