"""
Request Pipeline

Validates user input, invokes the engine for registration or verification,
and classifies the outcome:

- ValidationError   raised before any engine call
- NoFaceDetected    engine rejection whose message says no face was seen
- OperationFailure  any other engine failure

Each call is a single attempt with no retries. Nothing is stored on failure.

Usage:
    pipeline = RequestPipeline(engine)
    outcome = await pipeline.register(parse_identifiers(text), frame_source)
    matched = await pipeline.verify(outcome.credential, identifiers, frame_source)
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.errors import (
    FaceAuthError,
    NoFaceDetected,
    OperationFailure,
    ValidationError,
)

logger = logging.getLogger(__name__)

NO_FACE_MARKER = "no face detected"
NO_FACE_REMEDIATION = (
    "No face detected. Center your face in the camera with good lighting and try again."
)


def parse_identifiers(text: Optional[str]) -> List[str]:
    """
    Split a comma-separated field into an ordered identifier set.

    Entries are trimmed and empties dropped; order and duplicates are kept.

    Example:
        parse_identifiers(" a, , b ,a") -> ["a", "b", "a"]
    """
    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


@dataclass(frozen=True)
class RegistrationMetadata:
    """Optional display fields decoded from a registration result."""
    created_at: Optional[str] = None
    model_version: Optional[str] = None

    @classmethod
    def decode(cls, raw: Any) -> Optional["RegistrationMetadata"]:
        """
        Best-effort decode of result["metadata"].

        Accepts camelCase or snake_case keys. Returns None when the metadata
        is absent or unusable; never raises.
        """
        try:
            meta = raw.get("metadata") if isinstance(raw, dict) else None
            if not isinstance(meta, dict):
                return None

            created_at = meta.get("createdAt", meta.get("created_at"))
            model_version = meta.get("modelVersion", meta.get("model_version"))
            if created_at is None and model_version is None:
                return None

            return cls(
                created_at=None if created_at is None else str(created_at),
                model_version=None if model_version is None else str(model_version),
            )
        except Exception as e:
            logger.debug(f"Ignoring undecodable registration metadata: {e}")
            return None


@dataclass(frozen=True)
class RegistrationOutcome:
    """Successful registration: the credential plus display data."""
    credential: str
    metadata: Optional[RegistrationMetadata]
    raw: Dict[str, Any]

    def display(self) -> str:
        """Pretty-printed raw result for the result pane."""
        try:
            return json.dumps(self.raw, indent=2, default=str)
        except (TypeError, ValueError):
            return str(self.raw)


class RequestPipeline:
    """
    Performs single-attempt registration and verification calls.

    Args:
        engine: Engine handle, or None until the controller binds one.
        min_register_identifiers: Minimum identifiers for registration.
        min_verify_identifiers: Minimum identifiers for verification.
    """

    def __init__(
        self,
        engine=None,
        min_register_identifiers: int = 2,
        min_verify_identifiers: int = 1,
    ):
        self.engine = engine
        self.min_register_identifiers = min_register_identifiers
        self.min_verify_identifiers = min_verify_identifiers

    def bind(self, engine) -> None:
        self.engine = engine

    def unbind(self) -> None:
        self.engine = None

    @property
    def ready(self) -> bool:
        return self.engine is not None

    def _check_ready(self, frame_source) -> None:
        if self.engine is None:
            raise ValidationError("Face engine not loaded.")
        if frame_source is None or getattr(frame_source, "stopped", False):
            raise ValidationError("Camera stream not available.")

    def _check_identifiers(self, identifiers: List[str], minimum: int) -> None:
        if len(identifiers) < minimum:
            noun = "identifier" if minimum == 1 else "identifiers"
            raise ValidationError(
                f"Enter at least {minimum} comma-separated {noun} "
                f"(got {len(identifiers)})."
            )

    @staticmethod
    def classify(error: Exception, fallback: str) -> FaceAuthError:
        """Map an engine failure to NoFaceDetected or OperationFailure."""
        message = str(error) or fallback
        if NO_FACE_MARKER in message.lower():
            return NoFaceDetected(NO_FACE_REMEDIATION)
        return OperationFailure(message)

    async def register(self, identifiers: List[str], frame_source) -> RegistrationOutcome:
        """
        Register the face in view under the given identifiers.

        Raises:
            ValidationError, NoFaceDetected, OperationFailure
        """
        self._check_ready(frame_source)
        self._check_identifiers(identifiers, self.min_register_identifiers)

        logger.info(f"Registering face for {len(identifiers)} identifiers")
        try:
            raw = await self.engine.register_face(list(identifiers), frame_source)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = self.classify(e, "Registration failed")
            logger.warning(f"Registration failed: {failure}")
            raise failure from e

        credential = raw.get("encryptedFace") if isinstance(raw, dict) else None
        if not isinstance(credential, str) or not credential:
            raise OperationFailure("Registration returned no encrypted face data")

        return RegistrationOutcome(
            credential=credential,
            metadata=RegistrationMetadata.decode(raw),
            raw=raw,
        )

    async def verify(self, credential: Optional[str], identifiers: List[str], frame_source) -> bool:
        """
        Verify the face in view against a credential.

        Returns:
            True if the engine reports a match.

        Raises:
            ValidationError, NoFaceDetected, OperationFailure
        """
        self._check_ready(frame_source)
        if not credential:
            raise ValidationError("No encrypted face data. Register first or paste a credential.")
        self._check_identifiers(identifiers, self.min_verify_identifiers)

        logger.info(f"Verifying face for {len(identifiers)} identifiers")
        try:
            matched = await self.engine.verify_face(credential, list(identifiers), frame_source)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = self.classify(e, "Verification failed")
            logger.warning(f"Verification failed: {failure}")
            raise failure from e

        return bool(matched)
