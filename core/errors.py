"""
Error taxonomy for the face session controller.

Fatal to session start:
    EngineLoadError, CameraAccessError

Local to a single submit:
    ValidationError     - insufficient identifiers or missing credential
    NoFaceDetected      - recoverable, flow returns to input
    OperationFailure    - any other engine rejection, flow returns to idle

Raised by engine implementations:
    EngineRejection     - the engine refused an operation
"""


class FaceAuthError(Exception):
    """Base class for all controller errors."""


class EngineLoadError(FaceAuthError):
    """The engine module could not be imported, built, or its models loaded."""


class CameraAccessError(FaceAuthError):
    """The camera could not be opened or never produced a frame."""


class ValidationError(FaceAuthError):
    """Inputs failed local validation; the engine was not called."""


class NoFaceDetected(FaceAuthError):
    """The engine saw no face in the current frame."""


class OperationFailure(FaceAuthError):
    """The engine rejected a registration or verification attempt."""


class InvalidTransition(FaceAuthError):
    """A session action was triggered from a stage that does not allow it."""


class EngineRejection(Exception):
    """
    Raised by engine implementations when an operation is refused.

    The message is the engine's own text (e.g. "No face detected").
    """


class SessionClosed(FaceAuthError):
    """The session was torn down while an operation was in flight."""
