#!/usr/bin/env python3
"""
Download the MediaPipe models used by the liveness session.

- Face Detector (BlazeFace short range): supplies the per-frame confidence score
- Face Landmarker: supplies the face mesh mapped onto eye, mouth, jaw and nose groups
"""

import urllib.request
from pathlib import Path

MODELS = {
    "face_landmarker.task": (
        "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
        "face_landmarker/float16/latest/face_landmarker.task"
    ),
    "blaze_face_short_range.tflite": (
        "https://storage.googleapis.com/mediapipe-models/face_detector/"
        "blaze_face_short_range/float16/latest/blaze_face_short_range.tflite"
    ),
}

# Download location
MODELS_DIR = Path.home() / ".mediapipe_models"


def download_model(name: str, url: str) -> bool:
    """Download one model unless it is already present."""
    model_path = MODELS_DIR / name

    if model_path.exists():
        print(f"✓ {name} already exists at {model_path}")
        return True

    print(f"Downloading {name} from {url}...")

    try:
        def report_progress(block_num, block_size, total_size):
            downloaded = block_num * block_size
            percent = min(100, downloaded * 100 / total_size) if total_size > 0 else 0
            print(f"\rProgress: {percent:.1f}%", end="")

        urllib.request.urlretrieve(url, model_path, reporthook=report_progress)
        file_size = model_path.stat().st_size
        print(f"\n✓ {name} ready ({file_size / 1024 / 1024:.2f} MB)")
        return True

    except Exception as e:
        print(f"\n✗ Download of {name} failed: {e}")
        if model_path.exists():
            model_path.unlink()
        return False


def main():
    """Main function."""
    print("=" * 60)
    print("MediaPipe Model Downloader")
    print("=" * 60)
    print()

    MODELS_DIR.mkdir(parents=True, exist_ok=True)
    results = [download_model(name, url) for name, url in MODELS.items()]

    print("\n" + "=" * 60)
    if all(results):
        print("Setup Complete!")
        print("=" * 60)
        print(f"\nModels location: {MODELS_DIR}")
        print("\nOr point the service at other copies with:")
        print("  MEDIAPIPE_LANDMARKER_MODEL_PATH=/path/to/face_landmarker.task")
        print("  MEDIAPIPE_DETECTOR_MODEL_PATH=/path/to/blaze_face_short_range.tflite")
    else:
        print("Setup Failed")
        print("=" * 60)
        print("\nPlease check your internet connection and try again.")


if __name__ == "__main__":
    main()
