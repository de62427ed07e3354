"""
Tests for the engine interface, loader and mock engine.

Run with: pytest tests/test_engine.py -v
"""

import asyncio

import pytest
import pytest_asyncio

from core.engine import SerializedEngine, guard_engine, load_engine
from core.errors import EngineLoadError, EngineRejection
from core.mock_engine import MockFaceEngine, create_engine
from fakes import FakeEngine, FakeFrameSource


class TestLoadEngine:
    """Tests for load_engine."""

    def test_loads_mock_engine(self):
        engine = load_engine("core.mock_engine", {"mock": {"latency_sec": 0, "seed": 1}})
        assert isinstance(engine, MockFaceEngine)
        assert engine.latency_sec == 0

    def test_missing_module(self):
        with pytest.raises(EngineLoadError, match="core.not_an_engine"):
            load_engine("core.not_an_engine", {})

    def test_module_without_factory(self):
        with pytest.raises(EngineLoadError, match="create_engine"):
            load_engine("core.errors", {})

    def test_factory_failure(self):
        with pytest.raises(EngineLoadError, match="construction failed"):
            load_engine("core.mock_engine", {"mock": {"no_face_rate": "lots"}})


class TestSerializedEngine:
    """Tests for call serialization."""

    def test_guard_wraps_non_reentrant(self):
        engine = FakeEngine()
        guarded = guard_engine(engine)
        assert isinstance(guarded, SerializedEngine)
        assert guarded.face_connections == engine.face_connections

    def test_guard_keeps_reentrant(self):
        engine = FakeEngine()
        engine.reentrant = True
        assert guard_engine(engine) is engine

    @pytest.mark.asyncio
    async def test_calls_never_overlap(self):
        engine = FakeEngine()
        state = {"active": 0, "peak": 0}

        async def tracked(*args):
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0.01)
            state["active"] -= 1
            return []

        engine.landmarks.side_effect = tracked
        engine.register.side_effect = tracked
        engine.verify.side_effect = tracked
        guarded = SerializedEngine(engine)
        source = FakeFrameSource()

        await asyncio.gather(
            guarded.detect_landmarks(source),
            guarded.register_face(["a", "b"], source),
            guarded.verify_face("cred", ["a"], source),
            guarded.detect_landmarks(source),
        )

        assert state["peak"] == 1


class TestMockFaceEngine:
    """Tests for the mock engine contract."""

    @pytest_asyncio.fixture
    async def engine(self):
        engine = MockFaceEngine(no_face_rate=0.0, latency_sec=0.0, seed=42)
        await engine.load_models()
        return engine

    @pytest.mark.asyncio
    async def test_register_returns_credential_and_metadata(self, engine, frame_source):
        result = await engine.register_face(["a", "b"], frame_source)

        assert isinstance(result["encryptedFace"], str)
        assert result["metadata"]["modelVersion"] == "mock-1.0"
        assert "createdAt" in result["metadata"]

    @pytest.mark.asyncio
    async def test_credentials_are_unique(self, engine, frame_source):
        first = await engine.register_face(["a", "b"], frame_source)
        second = await engine.register_face(["a", "b"], frame_source)
        assert first["encryptedFace"] != second["encryptedFace"]

    @pytest.mark.asyncio
    async def test_verify_matches_same_identifiers(self, engine, frame_source):
        credential = (await engine.register_face(["a", "b"], frame_source))["encryptedFace"]

        assert await engine.verify_face(credential, ["a", "b"], frame_source) is True
        assert await engine.verify_face(credential, ["b", "a"], frame_source) is False
        assert await engine.verify_face(credential, ["a"], frame_source) is False

    @pytest.mark.asyncio
    async def test_verify_rejects_garbage(self, engine, frame_source):
        with pytest.raises(EngineRejection, match="Invalid encrypted face data"):
            await engine.verify_face("not-a-credential!!", ["a"], frame_source)

    @pytest.mark.asyncio
    async def test_no_face(self, frame_source):
        engine = MockFaceEngine(no_face_rate=1.0, latency_sec=0.0)
        await engine.load_models()

        with pytest.raises(EngineRejection, match="No face detected"):
            await engine.register_face(["a", "b"], frame_source)

    @pytest.mark.asyncio
    async def test_no_frame_means_no_face(self, engine):
        with pytest.raises(EngineRejection, match="No face detected"):
            await engine.register_face(["a", "b"], FakeFrameSource(has_frame=False))

    @pytest.mark.asyncio
    async def test_requires_models(self, frame_source):
        engine = MockFaceEngine(latency_sec=0.0)
        with pytest.raises(EngineRejection, match="Models not loaded"):
            await engine.detect_landmarks(frame_source)

    @pytest.mark.asyncio
    async def test_landmarks_inside_frame(self, engine):
        points = await engine.detect_landmarks(FakeFrameSource(320, 240))

        assert len(points) == engine.n_points
        assert all(0 <= x < 320 and 0 <= y < 240 for x, y in points)

    def test_connections_form_closed_outline(self):
        engine = MockFaceEngine(n_points=4)
        assert list(engine.face_connections) == [(0, 1), (1, 2), (2, 3), (3, 0)]

    def test_create_engine_reads_mock_section(self):
        engine = create_engine({"mock": {"no_face_rate": 0.5, "model_version": "x"}})
        assert engine.no_face_rate == 0.5
        assert engine.model_version == "x"
