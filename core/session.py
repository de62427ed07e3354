"""
Session State Machine

Coordinates the registration and verification flows. Each flow is in one of
idle / input / processing, and at most one flow is active (input or
processing) at a time: activating one forces the other back to idle.

This is the only component that writes session-visible state: stages,
credential, results, the latest error and notifications.

Transitions:
    start_registration()    any -> registration=input, verification=idle
    start_verification()    any -> verification=input, registration=idle
                            (pre-fills once after a successful registration)
    submit_registration()   registration input -> processing -> idle | input
    submit_verification()   verification input -> processing -> idle | input

While either flow is processing every trigger is disabled.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from core.errors import (
    FaceAuthError,
    InvalidTransition,
    NoFaceDetected,
    ValidationError,
)
from core.notifications import Notifier
from core.overlay import OverlaySurface
from core.pipeline import (
    RegistrationMetadata,
    RegistrationOutcome,
    RequestPipeline,
    parse_identifiers,
)
from core.prefill import PrefillCache

logger = logging.getLogger(__name__)

VERIFIED_MESSAGE = "Face verified!"
NOT_MATCHED_MESSAGE = "Face not matched."
REGISTERED_MESSAGE = "Face registered successfully!"
PREFILL_MESSAGE = "Pre-filled from recent registration"
IDENTIFIERS_FIELD = "identifiers"


class Flow(str, Enum):
    REGISTRATION = "registration"
    VERIFICATION = "verification"


class Stage(str, Enum):
    IDLE = "idle"
    INPUT = "input"
    PROCESSING = "processing"


@dataclass(frozen=True)
class SessionView:
    """Immutable snapshot of session state for rendering."""
    registration_stage: Stage
    verification_stage: Stage
    identifiers_text: str
    credential: Optional[str]
    registration_result: Optional[str]
    registration_metadata: Optional[RegistrationMetadata]
    verification_result: Optional[str]
    verification_matched: Optional[bool]
    error: Optional[str]
    fatal_error: Optional[str]
    notification: Optional[str]
    focus: Optional[str]
    actions_enabled: bool
    just_registered: bool


class SessionStateMachine:
    """
    Registration/verification state machine.

    Args:
        pipeline: RequestPipeline used for engine calls.
        prefill: Cache handing the last registration to verification.
        notifier: Transient notification owner.
        surface: Overlay surface, cleared when registration starts.
        notification_expiry_sec: Expiry for the pre-fill notification.
        identifiers_text: Initial identifier field contents.
    """

    def __init__(
        self,
        pipeline: RequestPipeline,
        prefill: Optional[PrefillCache] = None,
        notifier: Optional[Notifier] = None,
        surface: Optional[OverlaySurface] = None,
        notification_expiry_sec: float = 5.0,
        identifiers_text: str = "",
    ):
        self.pipeline = pipeline
        self.prefill = prefill or PrefillCache()
        self.notifier = notifier or Notifier(notification_expiry_sec)
        self.surface = surface
        self.notification_expiry_sec = notification_expiry_sec

        self._stages: Dict[Flow, Stage] = {
            Flow.REGISTRATION: Stage.IDLE,
            Flow.VERIFICATION: Stage.IDLE,
        }
        self._frame_source = None

        self.identifiers_text = identifiers_text
        self.credential: Optional[str] = None
        self.registration: Optional[RegistrationOutcome] = None
        self.registration_result: Optional[str] = None
        self.verification_result: Optional[str] = None
        self.verification_matched: Optional[bool] = None
        self.error: Optional[str] = None
        self.last_error: Optional[FaceAuthError] = None
        self.fatal_error: Optional[str] = None
        self.focus: Optional[str] = None

    # ==================== Stage bookkeeping ====================

    def stage(self, flow: Flow) -> Stage:
        return self._stages[flow]

    @property
    def registration_stage(self) -> Stage:
        return self._stages[Flow.REGISTRATION]

    @property
    def verification_stage(self) -> Stage:
        return self._stages[Flow.VERIFICATION]

    @property
    def processing(self) -> bool:
        return Stage.PROCESSING in self._stages.values()

    @property
    def actions_enabled(self) -> bool:
        return not self.processing and self.fatal_error is None

    def _activate(self, flow: Flow, stage: Stage) -> None:
        """Set a flow's stage; an active flow forces the other one to idle."""
        self._stages[flow] = stage
        if stage is not Stage.IDLE:
            other = Flow.VERIFICATION if flow is Flow.REGISTRATION else Flow.REGISTRATION
            self._stages[other] = Stage.IDLE
        logger.debug(f"{flow.value} -> {stage.value}")

    def _require_enabled(self, action: str) -> None:
        if self.fatal_error is not None:
            raise InvalidTransition(f"Cannot {action}: {self.fatal_error}")
        if self.processing:
            raise InvalidTransition(f"Cannot {action} while a request is processing")

    def _record_error(self, error: FaceAuthError) -> None:
        self.last_error = error
        self.error = str(error)

    def _clear_error(self) -> None:
        self.last_error = None
        self.error = None

    # ==================== Resources ====================

    def attach(self, frame_source) -> None:
        """Use this frame source for submits."""
        self._frame_source = frame_source

    def detach(self) -> None:
        self._frame_source = None

    def fail_initialization(self, error: Exception) -> None:
        """Record a fatal start-up error; all actions stay disabled until cleared."""
        self.fatal_error = str(error) or type(error).__name__
        self._stages = {Flow.REGISTRATION: Stage.IDLE, Flow.VERIFICATION: Stage.IDLE}
        logger.error(f"Session unavailable: {self.fatal_error}")

    def clear_fatal_error(self) -> None:
        self.fatal_error = None

    # ==================== Field echo ====================

    def set_identifiers_text(self, text: Optional[str]) -> None:
        self.identifiers_text = text or ""

    def set_credential(self, credential: Optional[str]) -> None:
        self.credential = credential.strip() if credential and credential.strip() else None

    # ==================== Transitions ====================

    def start_registration(self) -> None:
        """Enter registration input, discarding previous results."""
        self._require_enabled("start registration")

        self.registration = None
        self.registration_result = None
        self.verification_result = None
        self.verification_matched = None
        self.credential = None
        self._clear_error()
        if self.surface is not None:
            self.surface.clear()

        self._activate(Flow.REGISTRATION, Stage.INPUT)
        self.focus = IDENTIFIERS_FIELD

    def start_verification(self) -> None:
        """
        Enter verification input.

        Right after a successful registration the identifiers and credential
        are pre-filled from it, once. The "just registered" flag is cleared
        either way.
        """
        self._require_enabled("start verification")

        self._activate(Flow.VERIFICATION, Stage.INPUT)
        self.registration = None
        self.registration_result = None
        self._clear_error()

        entry = self.prefill.consume()
        if entry is not None:
            self.identifiers_text = ", ".join(entry.identifiers)
            self.credential = entry.credential
            self.notifier.notify(PREFILL_MESSAGE, expires_in=self.notification_expiry_sec)
        else:
            self.identifiers_text = ""
            self.credential = None
            self.verification_result = None
            self.verification_matched = None

        self.focus = IDENTIFIERS_FIELD

    async def submit_registration(self) -> Optional[RegistrationOutcome]:
        """
        Register the face in view with the entered identifiers.

        Returns:
            The outcome on success, None if the engine attempt failed (the
            error is recorded on the session).

        Raises:
            InvalidTransition: If registration is not in input.
            ValidationError: If the input is insufficient (stage stays input,
                             the engine is not called).
        """
        self._require_enabled("submit registration")
        if self.registration_stage is not Stage.INPUT:
            raise InvalidTransition("Registration is not awaiting input")

        identifiers = parse_identifiers(self.identifiers_text)
        if len(identifiers) < self.pipeline.min_register_identifiers:
            error = ValidationError(
                f"Enter at least {self.pipeline.min_register_identifiers} "
                f"comma-separated identifiers (got {len(identifiers)})."
            )
            self._record_error(error)
            raise error

        self._activate(Flow.REGISTRATION, Stage.PROCESSING)
        self._clear_error()
        self.registration = None
        self.registration_result = None
        self.verification_result = None
        self.verification_matched = None

        try:
            outcome = await self.pipeline.register(identifiers, self._frame_source)
        except ValidationError as e:
            self._record_error(e)
            self._activate(Flow.REGISTRATION, Stage.INPUT)
            raise
        except NoFaceDetected as e:
            self._record_error(e)
            self._activate(Flow.REGISTRATION, Stage.INPUT)
            return None
        except FaceAuthError as e:
            self._record_error(e)
            self._activate(Flow.REGISTRATION, Stage.IDLE)
            return None
        finally:
            if self.registration_stage is Stage.PROCESSING:
                # Cancelled mid-request
                self._activate(Flow.REGISTRATION, Stage.IDLE)

        self.registration = outcome
        self.registration_result = outcome.display()
        self.credential = outcome.credential
        self.prefill.record(identifiers, outcome.credential)
        self.notifier.notify(REGISTERED_MESSAGE, expires_in=self.notification_expiry_sec)
        self._activate(Flow.REGISTRATION, Stage.IDLE)
        logger.info("Registration complete")
        return outcome

    async def submit_verification(self) -> Optional[bool]:
        """
        Verify the face in view against the entered credential.

        Returns:
            True/False for matched/not matched, None if the engine attempt
            failed (the error is recorded on the session).

        Raises:
            InvalidTransition: If verification is not in input.
            ValidationError: If the credential or identifiers are missing
                             (stage unchanged, the engine is not called).
        """
        self._require_enabled("submit verification")
        if self.verification_stage is not Stage.INPUT:
            raise InvalidTransition("Verification is not awaiting input")

        identifiers = parse_identifiers(self.identifiers_text)
        if not self.credential:
            error = ValidationError("No encrypted face data. Register first or paste a credential.")
            self._record_error(error)
            raise error
        if len(identifiers) < self.pipeline.min_verify_identifiers:
            error = ValidationError("Enter at least one identifier.")
            self._record_error(error)
            raise error

        self._activate(Flow.VERIFICATION, Stage.PROCESSING)
        self._clear_error()
        self.verification_result = None
        self.verification_matched = None

        try:
            matched = await self.pipeline.verify(self.credential, identifiers, self._frame_source)
        except ValidationError as e:
            self._record_error(e)
            self._activate(Flow.VERIFICATION, Stage.INPUT)
            raise
        except NoFaceDetected as e:
            self._record_error(e)
            self._activate(Flow.VERIFICATION, Stage.INPUT)
            return None
        except FaceAuthError as e:
            self._record_error(e)
            self._activate(Flow.VERIFICATION, Stage.IDLE)
            return None
        finally:
            if self.verification_stage is Stage.PROCESSING:
                self._activate(Flow.VERIFICATION, Stage.IDLE)

        self.verification_matched = matched
        self.verification_result = VERIFIED_MESSAGE if matched else NOT_MATCHED_MESSAGE
        self.notifier.notify(self.verification_result, expires_in=self.notification_expiry_sec)
        self._activate(Flow.VERIFICATION, Stage.IDLE)
        logger.info(f"Verification complete: {self.verification_result}")
        return matched

    # ==================== Rendering ====================

    def snapshot(self) -> SessionView:
        return SessionView(
            registration_stage=self.registration_stage,
            verification_stage=self.verification_stage,
            identifiers_text=self.identifiers_text,
            credential=self.credential,
            registration_result=self.registration_result,
            registration_metadata=self.registration.metadata if self.registration else None,
            verification_result=self.verification_result,
            verification_matched=self.verification_matched,
            error=self.error,
            fatal_error=self.fatal_error,
            notification=self.notifier.message,
            focus=self.focus,
            actions_enabled=self.actions_enabled,
            just_registered=self.prefill.just_registered,
        )
