"""
Shared fixtures for the face session tests.
"""

import os
import sys

import pytest

# Add project root and this directory to path
TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.dirname(TESTS_DIR))
sys.path.insert(0, TESTS_DIR)

from fakes import CaptureFactory, FakeEngine, FakeFrameSource


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def frame_source():
    return FakeFrameSource()


@pytest.fixture
def capture_factory():
    return CaptureFactory()


@pytest.fixture
def test_config():
    """Full config dict with fast timings."""
    return {
        "camera": {"width": 640, "height": 480, "fps": 30, "metadata_timeout_sec": 1.0},
        "engine": {
            "module": "core.mock_engine",
            "reentrant": False,
            "mock": {"no_face_rate": 0.0, "latency_sec": 0.0, "seed": 7},
        },
        "detection_loop": {"target_fps": 200, "marker_radius": 2},
        "session": {
            "min_register_identifiers": 2,
            "min_verify_identifiers": 1,
            "notification_expiry_sec": 5.0,
            "default_identifiers": "",
        },
    }
