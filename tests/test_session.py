"""
Tests for the Session State Machine

This test suite verifies:
- Flow exclusivity (at most one flow active)
- Validation failures keep the flow in input without calling the engine
- No-face failures return to input with input preserved
- Other failures return to idle
- One-shot pre-fill of verification after registration
- Every trigger is disabled while a request is processing

Run with: pytest tests/test_session.py -v
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from core.errors import EngineRejection, InvalidTransition, ValidationError
from core.overlay import OverlaySurface
from core.pipeline import NO_FACE_REMEDIATION, RequestPipeline
from core.session import (
    IDENTIFIERS_FIELD,
    NOT_MATCHED_MESSAGE,
    PREFILL_MESSAGE,
    REGISTERED_MESSAGE,
    VERIFIED_MESSAGE,
    SessionStateMachine,
    Stage,
)
from fakes import FakeEngine, FakeFrameSource


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.message = None
    return notifier


@pytest.fixture
def surface():
    return OverlaySurface(width=64, height=48)


@pytest.fixture
def session(engine, notifier, surface):
    machine = SessionStateMachine(RequestPipeline(engine), notifier=notifier, surface=surface)
    machine.attach(FakeFrameSource())
    return machine


async def register(session, text="alice, alice@example.com"):
    session.start_registration()
    session.set_identifiers_text(text)
    return await session.submit_registration()


class TestStartTransitions:
    """Tests for start_registration / start_verification."""

    def test_initial_state(self, session):
        assert session.registration_stage is Stage.IDLE
        assert session.verification_stage is Stage.IDLE
        assert session.actions_enabled

    def test_start_registration(self, session, surface):
        surface.image[:] = 255
        session.credential = "old"
        session.verification_result = VERIFIED_MESSAGE

        session.start_registration()

        assert session.registration_stage is Stage.INPUT
        assert session.verification_stage is Stage.IDLE
        assert session.credential is None
        assert session.verification_result is None
        assert session.focus == IDENTIFIERS_FIELD
        assert not surface.image.any()

    def test_flows_are_exclusive(self, session):
        session.start_verification()
        session.start_registration()
        assert session.registration_stage is Stage.INPUT
        assert session.verification_stage is Stage.IDLE

        session.start_verification()
        assert session.verification_stage is Stage.INPUT
        assert session.registration_stage is Stage.IDLE

    def test_start_verification_without_registration(self, session, notifier):
        session.set_identifiers_text("typed earlier")
        session.set_credential("typed credential")

        session.start_verification()

        assert session.identifiers_text == ""
        assert session.credential is None
        assert session.focus == IDENTIFIERS_FIELD
        notifier.notify.assert_not_called()


class TestSubmitRegistration:
    """Tests for submit_registration."""

    @pytest.mark.asyncio
    async def test_success(self, session, engine, notifier):
        outcome = await register(session)

        assert outcome.credential == "cred-abc123"
        assert session.registration_stage is Stage.IDLE
        assert session.credential == "cred-abc123"
        assert "cred-abc123" in session.registration_result
        assert session.error is None
        assert session.prefill.just_registered
        assert session.snapshot().registration_metadata.model_version == "test-1"
        notifier.notify.assert_called_once_with(REGISTERED_MESSAGE, expires_in=5.0)
        engine.register.assert_awaited_once()
        assert engine.register.await_args.args[0] == ["alice", "alice@example.com"]

    @pytest.mark.asyncio
    async def test_insufficient_identifiers(self, session, engine):
        session.start_registration()
        session.set_identifiers_text(" only-one , ")

        with pytest.raises(ValidationError):
            await session.submit_registration()

        assert session.registration_stage is Stage.INPUT
        assert "at least 2" in session.error
        engine.register.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_face_returns_to_input(self, session, engine):
        engine.register.side_effect = EngineRejection("No face detected")

        outcome = await register(session, "a, b")

        assert outcome is None
        assert session.registration_stage is Stage.INPUT
        assert session.identifiers_text == "a, b"
        assert session.error == NO_FACE_REMEDIATION
        assert not session.prefill.just_registered

    @pytest.mark.asyncio
    async def test_other_failure_returns_to_idle(self, session, engine):
        engine.register.side_effect = EngineRejection("Service unavailable")

        outcome = await register(session, "a, b")

        assert outcome is None
        assert session.registration_stage is Stage.IDLE
        assert session.error == "Service unavailable"
        assert session.credential is None
        assert session.registration_result is None

    @pytest.mark.asyncio
    async def test_not_in_input(self, session, engine):
        with pytest.raises(InvalidTransition):
            await session.submit_registration()
        engine.register.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_camera_gone(self, session, engine):
        session.detach()
        with pytest.raises(ValidationError):
            await register(session, "a, b")
        assert session.registration_stage is Stage.INPUT
        engine.register.assert_not_awaited()


class TestPrefill:
    """Tests for the one-shot verification pre-fill."""

    @pytest.mark.asyncio
    async def test_prefill_once(self, session, notifier):
        await register(session, " alice , , bob ")
        notifier.reset_mock()

        session.start_verification()
        assert session.identifiers_text == "alice, bob"
        assert session.credential == "cred-abc123"
        assert not session.prefill.just_registered
        assert session.registration_result is None
        assert session.snapshot().registration_metadata is None
        notifier.notify.assert_called_once_with(PREFILL_MESSAGE, expires_in=5.0)

        notifier.reset_mock()
        session.start_verification()
        assert session.identifiers_text == ""
        assert session.credential is None
        notifier.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_flag_survives_registration_restart(self, session):
        await register(session, "a, b")
        session.start_registration()
        # Still armed: only start_verification consumes it
        assert session.prefill.just_registered

        session.start_verification()
        assert session.credential == "cred-abc123"

    @pytest.mark.asyncio
    async def test_failed_registration_does_not_prefill(self, session, engine):
        engine.register.side_effect = EngineRejection("Quota exceeded")
        await register(session, "a, b")

        session.start_verification()
        assert session.credential is None


class TestSubmitVerification:
    """Tests for submit_verification."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("matched, message", [
        (True, VERIFIED_MESSAGE),
        (False, NOT_MATCHED_MESSAGE),
    ])
    async def test_result(self, session, engine, notifier, matched, message):
        engine.verify.return_value = matched
        await register(session, "a, b")
        session.start_verification()

        result = await session.submit_verification()

        assert result is matched
        assert session.verification_result == message
        assert session.verification_matched is matched
        assert session.verification_stage is Stage.IDLE
        engine.verify.assert_awaited_once()
        assert engine.verify.await_args.args[:2] == ("cred-abc123", ["a", "b"])
        notifier.notify.assert_called_with(message, expires_in=5.0)

    @pytest.mark.asyncio
    async def test_missing_credential(self, session, engine):
        session.start_verification()
        session.set_identifiers_text("a")

        with pytest.raises(ValidationError):
            await session.submit_verification()

        assert session.verification_stage is Stage.INPUT
        assert session.error is not None
        engine.verify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_identifiers(self, session, engine):
        session.start_verification()
        session.set_credential("pasted")

        with pytest.raises(ValidationError):
            await session.submit_verification()

        assert session.verification_stage is Stage.INPUT
        engine.verify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pasted_credential_is_trimmed(self, session, engine):
        session.start_verification()
        session.set_identifiers_text("a")
        session.set_credential("  pasted-cred \n")

        await session.submit_verification()

        assert engine.verify.await_args.args[0] == "pasted-cred"

    @pytest.mark.asyncio
    async def test_no_face_preserves_input(self, session, engine):
        engine.verify.side_effect = EngineRejection("No face detected")
        session.start_verification()
        session.set_identifiers_text("a, b")
        session.set_credential("cred")

        result = await session.submit_verification()

        assert result is None
        assert session.verification_stage is Stage.INPUT
        assert session.identifiers_text == "a, b"
        assert session.credential == "cred"
        assert session.error == NO_FACE_REMEDIATION

    @pytest.mark.asyncio
    async def test_failure_returns_to_idle(self, session, engine):
        engine.verify.side_effect = EngineRejection("Invalid encrypted face data")
        session.start_verification()
        session.set_identifiers_text("a")
        session.set_credential("garbage")

        result = await session.submit_verification()

        assert result is None
        assert session.verification_stage is Stage.IDLE
        assert session.error == "Invalid encrypted face data"
        assert session.verification_result is None


class TestProcessingGate:
    """While a request is in flight every trigger is disabled."""

    @pytest.mark.asyncio
    async def test_triggers_disabled_while_processing(self, session, engine):
        release = asyncio.Event()

        async def slow_register(identifiers, frame_source):
            await release.wait()
            return {"encryptedFace": "slow-cred"}

        engine.register.side_effect = slow_register
        session.start_registration()
        session.set_identifiers_text("a, b")

        task = asyncio.ensure_future(session.submit_registration())
        await asyncio.sleep(0)

        assert session.registration_stage is Stage.PROCESSING
        assert session.processing
        assert not session.actions_enabled
        with pytest.raises(InvalidTransition):
            session.start_verification()
        with pytest.raises(InvalidTransition):
            session.start_registration()
        with pytest.raises(InvalidTransition):
            await session.submit_registration()
        with pytest.raises(InvalidTransition):
            await session.submit_verification()

        release.set()
        outcome = await task

        assert outcome.credential == "slow-cred"
        assert session.registration_stage is Stage.IDLE
        assert session.actions_enabled
        engine.register.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancelled_submit_returns_to_idle(self, session, engine):
        async def never_returns(identifiers, frame_source):
            await asyncio.Event().wait()

        engine.register.side_effect = never_returns
        session.start_registration()
        session.set_identifiers_text("a, b")

        task = asyncio.ensure_future(session.submit_registration())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.registration_stage is Stage.IDLE
        assert session.actions_enabled


class TestFatalError:
    """Tests for initialization failures."""

    def test_fatal_error_disables_actions(self, session):
        session.start_registration()
        session.fail_initialization(RuntimeError("Camera 0 busy"))

        assert session.fatal_error == "Camera 0 busy"
        assert session.registration_stage is Stage.IDLE
        assert not session.actions_enabled
        with pytest.raises(InvalidTransition):
            session.start_registration()

        session.clear_fatal_error()
        session.start_registration()
        assert session.registration_stage is Stage.INPUT

    def test_snapshot_reflects_state(self, session, notifier):
        notifier.message = "hello"
        session.start_registration()
        view = session.snapshot()

        assert view.registration_stage is Stage.INPUT
        assert view.notification == "hello"
        assert view.actions_enabled
        assert view.fatal_error is None
