"""
Unit tests for FastAPI main application
"""
import base64

import cv2
import pytest
from fastapi.testclient import TestClient

import liveness.main as main
from liveness.main import app
from synthetic_landmarks import make_frame, make_sample

client = TestClient(app)


def encode_frame(frame):
    _, buffer = cv2.imencode('.jpg', frame)
    return "data:image/jpeg;base64," + base64.b64encode(buffer).decode('utf-8')


FRAME_MESSAGE = {"type": "video_frame", "frame": encode_frame(make_frame())}


class FakeLandmarkDetector:
    """Returns scripted samples, then frontal open-eyed faces"""

    def __init__(self, samples=(), available=True, error=None):
        self.samples = list(samples)
        self.available = available
        self.error = error
        self.timestamps = []

    async def detect_async(self, frame, timestamp_ms):
        self.timestamps.append(timestamp_ms)
        if self.error is not None:
            raise self.error
        if self.samples:
            return self.samples.pop(0)
        return make_sample(timestamp_ms=timestamp_ms)


@pytest.fixture
def fake_detector(monkeypatch):
    def install(**kwargs):
        detector = FakeLandmarkDetector(**kwargs)
        monkeypatch.setattr(main, "landmark_detector", detector)
        return detector
    return install


def send_frame(websocket):
    websocket.send_json(FRAME_MESSAGE)


def test_root_endpoint():
    """Test root endpoint returns correct response"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Liveness Check API"
    assert data["status"] == "running"
    assert data["version"] == "1.0.0"


def test_health_check_with_models(fake_detector):
    fake_detector(available=True)
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["api"] == "operational"
    assert data["services"]["landmarks"] == "operational"


def test_health_check_without_models(fake_detector):
    fake_detector(available=False)
    data = client.get("/health").json()
    assert data["services"]["landmarks"] == "unavailable"


def test_nonexistent_endpoint():
    """Test that nonexistent endpoints return 404"""
    response = client.get("/nonexistent")
    assert response.status_code == 404


class TestLivenessWebSocket:
    """End-to-end tests over the WebSocket endpoint"""

    def test_connection_announces_blink(self, fake_detector):
        fake_detector()
        with client.websocket_connect("/ws/liveness/session_a") as websocket:
            ready = websocket.receive_json()
            blink = websocket.receive_json()

        assert ready["type"] == "state_changed"
        assert ready["data"]["state"] == "ready"
        assert blink["type"] == "state_changed"
        assert blink["data"]["state"] == "blink"
        assert blink["message"] == "Please blink your eyes"

    def test_full_session_reports_capture(self, fake_detector):
        fake_detector(samples=[
            make_sample(ear=0.2, timestamp_ms=0),
            make_sample(ear=0.35, timestamp_ms=50),
            make_sample(mar=0.5, timestamp_ms=100),
            make_sample(mar=0.5, timestamp_ms=150),
            make_sample(mar=0.5, timestamp_ms=200),
            make_sample(mar=0.1, timestamp_ms=250),
            make_sample(nose_rel_x=0.3, timestamp_ms=1000),
            make_sample(nose_rel_x=0.7, timestamp_ms=1500),
        ])

        with client.websocket_connect("/ws/liveness/session_b") as websocket:
            websocket.receive_json()
            websocket.receive_json()

            # Closed eyes produce no event, the following open frame completes the blink
            send_frame(websocket)
            send_frame(websocket)
            assert websocket.receive_json()["data"] == {"challenge": "blink"}
            assert websocket.receive_json()["data"]["state"] == "mouth"

            for _ in range(4):
                send_frame(websocket)
            assert websocket.receive_json()["data"] == {"challenge": "mouth"}
            assert websocket.receive_json()["data"]["state"] == "shake"

            send_frame(websocket)
            send_frame(websocket)
            assert websocket.receive_json()["data"] == {"challenge": "shake"}
            assert websocket.receive_json()["data"]["state"] == "completed"
            completed = websocket.receive_json()

        assert completed["type"] == "session_completed"
        assert completed["data"]["outcome"] == "captured"
        result = completed["data"]["result"]
        assert result["score"] == pytest.approx(0.9)
        assert result["completed_at_ms"] == 1500
        image = base64.b64decode(result["image"])
        assert image[:2] == b"\xff\xd8"

    def test_restart_returns_to_blink(self, fake_detector):
        fake_detector(samples=[
            make_sample(ear=0.2, timestamp_ms=0),
            make_sample(ear=0.35, timestamp_ms=50),
        ])

        with client.websocket_connect("/ws/liveness/session_c") as websocket:
            websocket.receive_json()
            websocket.receive_json()
            send_frame(websocket)
            send_frame(websocket)
            websocket.receive_json()
            assert websocket.receive_json()["data"]["state"] == "mouth"

            websocket.send_json({"type": "restart"})
            restarted = websocket.receive_json()

        assert restarted["type"] == "state_changed"
        assert restarted["data"]["state"] == "blink"
        assert restarted["data"]["previous_state"] == "mouth"

    def test_detector_failure_is_reported(self, fake_detector):
        detector = fake_detector(error=RuntimeError("model crashed"))

        with client.websocket_connect("/ws/liveness/session_d") as websocket:
            websocket.receive_json()
            websocket.receive_json()
            send_frame(websocket)
            error = websocket.receive_json()

        assert error["type"] == "session_error"
        assert error["data"] == {"state": "blink", "error_type": "RuntimeError"}
        assert "model crashed" in error["message"]
        assert len(detector.timestamps) == 1

    def test_malformed_messages_are_ignored(self, fake_detector):
        fake_detector(error=RuntimeError("unexpected"))

        with client.websocket_connect("/ws/liveness/session_e") as websocket:
            websocket.receive_json()
            websocket.receive_json()
            websocket.send_bytes(b"\x00\x01 not text")
            websocket.send_text("not json")
            websocket.send_json({"type": "unknown"})
            websocket.send_json({"type": "restart"})
            restarted = websocket.receive_json()

        assert restarted["data"]["state"] == "blink"
        assert restarted["data"]["previous_state"] == "blink"

    def test_frames_after_completion_skip_detection(self, fake_detector):
        detector = fake_detector(samples=[
            make_sample(ear=0.2, timestamp_ms=0),
            make_sample(ear=0.35, timestamp_ms=50),
            make_sample(mar=0.5, timestamp_ms=100),
            make_sample(mar=0.5, timestamp_ms=150),
            make_sample(mar=0.5, timestamp_ms=200),
            make_sample(mar=0.1, timestamp_ms=250),
            make_sample(nose_rel_x=0.3, timestamp_ms=1000),
            make_sample(nose_rel_x=0.7, timestamp_ms=1500),
        ])

        with client.websocket_connect("/ws/liveness/session_f") as websocket:
            for _ in range(2):
                websocket.receive_json()
            for _ in range(8):
                send_frame(websocket)
            # blink, mouth and shake each yield two events, then the completion
            for _ in range(7):
                websocket.receive_json()

            send_frame(websocket)
            send_frame(websocket)
            websocket.send_json({"type": "restart"})
            restarted = websocket.receive_json()

        assert restarted["data"]["previous_state"] == "completed"
        assert len(detector.timestamps) == 8
