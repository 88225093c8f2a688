"""
MediaPipe face detection and landmark extraction for the liveness session
"""
import asyncio
import logging
import os
from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from ..models.data_models import DetectionSample, LandmarkSchemaError, LandmarkSet, Point

logger = logging.getLogger(__name__)

# FaceMesh indices approximating the 68-point groups, in the same positional order
LEFT_EYE_INDICES = [33, 160, 158, 133, 153, 144]
RIGHT_EYE_INDICES = [362, 385, 387, 263, 373, 380]
# Outer ring (corner 61, upper center 0, corner 291, lower center 17), then inner ring
MOUTH_INDICES = [
    61, 40, 37, 0, 267, 270, 291, 321, 314, 17, 84, 91,
    78, 81, 13, 311, 308, 402, 14, 178,
]
JAW_INDICES = [234, 93, 132, 58, 172, 136, 150, 149, 152, 378, 379, 365, 397, 288, 361, 323, 454]
NOSE_RIDGE_INDICES = [168, 6, 197, 1]


class MediaPipeLandmarkDetector:
    """
    Produces one DetectionSample per frame using MediaPipe Tasks.

    The FaceDetector supplies the confidence score and the FaceLandmarker the
    mesh, which is mapped onto the named landmark groups in pixel coordinates.
    Both models are initialized lazily on first use so the class can be
    constructed without the model files present.
    """

    def __init__(
        self,
        landmarker_model_path: Optional[str] = None,
        detector_model_path: Optional[str] = None,
        min_detection_confidence: float = 0.5
    ):
        self.landmarker_model_path = landmarker_model_path
        self.detector_model_path = detector_model_path
        self.min_detection_confidence = min_detection_confidence
        self._face_landmarker = None
        self._face_detector = None

    @staticmethod
    def _model_available(model_path: Optional[str]) -> bool:
        if model_path is None:
            logger.warning(
                "Model path not provided. "
                "Download the models using: python download_mediapipe_model.py"
            )
            return False
        if not os.path.exists(model_path):
            logger.warning(
                f"MediaPipe model not found at {model_path}. "
                "Download it using: python download_mediapipe_model.py"
            )
            return False
        return True

    @property
    def face_landmarker(self):
        """Lazily created FaceLandmarker, or None if the model cannot be loaded"""
        if self._face_landmarker is None:
            if not self._model_available(self.landmarker_model_path):
                return None

            try:
                base_options = mp.tasks.BaseOptions(model_asset_path=self.landmarker_model_path)
                options = mp.tasks.vision.FaceLandmarkerOptions(
                    base_options=base_options,
                    running_mode=mp.tasks.vision.RunningMode.IMAGE,
                    num_faces=1,
                    min_face_detection_confidence=self.min_detection_confidence,
                    min_face_presence_confidence=self.min_detection_confidence,
                    output_face_blendshapes=False,
                    output_facial_transformation_matrixes=False
                )
                self._face_landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
            except Exception as e:
                logger.error(f"Failed to initialize MediaPipe FaceLandmarker: {e}")
                return None

        return self._face_landmarker

    @property
    def face_detector(self):
        """Lazily created FaceDetector, or None if the model cannot be loaded"""
        if self._face_detector is None:
            if not self._model_available(self.detector_model_path):
                return None

            try:
                base_options = mp.tasks.BaseOptions(model_asset_path=self.detector_model_path)
                options = mp.tasks.vision.FaceDetectorOptions(
                    base_options=base_options,
                    running_mode=mp.tasks.vision.RunningMode.IMAGE,
                    min_detection_confidence=self.min_detection_confidence
                )
                self._face_detector = mp.tasks.vision.FaceDetector.create_from_options(options)
            except Exception as e:
                logger.error(f"Failed to initialize MediaPipe FaceDetector: {e}")
                return None

        return self._face_detector

    @property
    def available(self) -> bool:
        return self.face_landmarker is not None and self.face_detector is not None

    def preprocess_frame(self, frame: np.ndarray) -> np.ndarray:
        """Convert a BGR frame (OpenCV default) to RGB for MediaPipe"""
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def detect(self, frame: np.ndarray, timestamp_ms: int) -> Optional[DetectionSample]:
        """
        Detect the single designated face in a frame.

        Args:
            frame: Video frame in BGR format
            timestamp_ms: Timestamp stamped on the sample

        Returns:
            DetectionSample, or None when no usable face is found

        Raises:
            RuntimeError: if the MediaPipe models are not available
        """
        if not self.available:
            raise RuntimeError("MediaPipe models are not available")

        height, width = frame.shape[:2]
        rgb_frame = self.preprocess_frame(frame)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        detection_result = self.face_detector.detect(mp_image)
        if not detection_result.detections:
            return None

        landmark_result = self.face_landmarker.detect(mp_image)
        if not landmark_result.face_landmarks:
            return None

        try:
            landmarks = self.map_face_mesh(landmark_result.face_landmarks[0], width, height)
        except LandmarkSchemaError as e:
            logger.warning(f"Dropping frame with malformed landmarks: {e}")
            return None

        # The landmarker tracks one face; its score comes from the detection box around that face
        score = self._score_for_face(detection_result.detections, landmarks.nose_tip)
        if score is None:
            logger.debug("No face detection encloses the landmarked face, dropping frame")
            return None

        return DetectionSample(confidence_score=score, landmarks=landmarks, timestamp_ms=timestamp_ms)

    async def detect_async(self, frame: np.ndarray, timestamp_ms: int) -> Optional[DetectionSample]:
        """Run detect() in a worker thread"""
        return await asyncio.to_thread(self.detect, frame, timestamp_ms)

    @staticmethod
    def _score_for_face(detections, nose_tip: Point) -> Optional[float]:
        """Highest score among detections whose bounding box contains the nose tip"""
        scores = []
        for detection in detections:
            box = detection.bounding_box
            if not detection.categories:
                continue
            if (box.origin_x <= nose_tip.x <= box.origin_x + box.width
                    and box.origin_y <= nose_tip.y <= box.origin_y + box.height):
                scores.append(detection.categories[0].score)
        if not scores:
            return None
        return float(max(scores))

    @staticmethod
    def map_face_mesh(mesh, width: int, height: int) -> LandmarkSet:
        """
        Map normalized FaceMesh landmarks onto the named groups in pixel space.

        Raises:
            LandmarkSchemaError: if the mesh is too short for the index tables
        """
        if len(mesh) <= max(MOUTH_INDICES + JAW_INDICES + LEFT_EYE_INDICES + RIGHT_EYE_INDICES):
            raise LandmarkSchemaError(f"Face mesh has only {len(mesh)} points")

        def group(indices: List[int]) -> List[Point]:
            return [Point(mesh[i].x * width, mesh[i].y * height) for i in indices]

        return LandmarkSet(
            left_eye=group(LEFT_EYE_INDICES),
            right_eye=group(RIGHT_EYE_INDICES),
            mouth=group(MOUTH_INDICES),
            jaw=group(JAW_INDICES),
            nose_ridge=group(NOSE_RIDGE_INDICES),
        )

    def close(self) -> None:
        """Release MediaPipe resources"""
        if self._face_landmarker is not None:
            self._face_landmarker.close()
            self._face_landmarker = None
        if self._face_detector is not None:
            self._face_detector.close()
            self._face_detector = None
