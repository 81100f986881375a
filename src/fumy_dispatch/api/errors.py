"""Translation of engine errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from ..errors import Conflict, DispatchError, InvalidFieldValue, InvalidTransition, MissingRequiredField, NotFound


def to_http_exception(exc: DispatchError) -> HTTPException:
    if isinstance(exc, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (Conflict, InvalidTransition)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (MissingRequiredField, InvalidFieldValue)):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))
