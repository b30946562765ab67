from typing import Dict, Optional

from fastapi import HTTPException

from leap_api.auth.schemas import ErrorDetail
from leap_api.errors import LeapError


def http_error(
    status_code: int,
    exc: LeapError,
    fields: Optional[dict] = None,
    headers: Optional[Dict[str, str]] = None,
) -> HTTPException:
    """
    Wraps a service error so the response body matches `ErrorResponse`:
    {"detail": {"code": ..., "message": ..., "fields": ...}}.
    """
    return HTTPException(
        status_code=status_code,
        detail=ErrorDetail(code=exc.code, message=exc.message, fields=fields).model_dump(exclude_none=True),
        headers=headers,
    )
