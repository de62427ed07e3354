"""
Pydantic Schemas for the Remote Face Service

This module defines the request/response models exchanged with an HTTP
face-processing service (see core.remote_engine).

These schemas provide:
- Type validation of service responses
- Clear interface contracts for service implementers
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


# ============================================================
# Registration Schemas
# ============================================================

class RegisterRequest(BaseModel):
    """Request to register the face in a frame."""
    identifiers: List[str] = Field(..., min_length=1, description="Ordered identifier set")
    frame: str = Field(..., description="Base64-encoded JPEG image data")


class RegisterResponse(BaseModel):
    """Registration result. The credential is opaque to the client."""
    model_config = ConfigDict(populate_by_name=True)

    encrypted_face: str = Field(..., alias="encryptedFace", description="Opaque credential")
    metadata: Optional[Dict[str, Any]] = Field(None, description="createdAt, modelVersion, ...")


# ============================================================
# Verification Schemas
# ============================================================

class VerifyRequest(BaseModel):
    """Request to verify the face in a frame against a credential."""
    model_config = ConfigDict(populate_by_name=True)

    encrypted_face: str = Field(..., alias="encryptedFace", description="Credential from registration")
    identifiers: List[str] = Field(..., min_length=1, description="Ordered identifier set")
    frame: str = Field(..., description="Base64-encoded JPEG image data")


class VerifyResponse(BaseModel):
    """Verification result."""
    match: bool = Field(..., description="True if the face matches the credential")


# ============================================================
# Error Schema
# ============================================================

class ErrorResponse(BaseModel):
    """Error body returned with non-2xx status codes."""
    detail: str = Field(..., description="Human-readable error, e.g. 'No face detected'")
