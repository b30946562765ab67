# leap_api/auth/schemas.py
import uuid
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True) # Immutable caller identity
class AuthenticatedUser:
    id: uuid.UUID
    email: Optional[str] = None


class ErrorDetail(BaseModel):
    """Standard error response detail."""
    code: str = Field(..., description="Application-specific error code.")
    message: str = Field(..., description="User-friendly error message.")
    fields: Optional[dict] = Field(None, description="Per-field validation messages, when applicable.")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    detail: ErrorDetail
