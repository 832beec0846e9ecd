"""Response envelope shared by every endpoint: ``{success, message?, data?}``."""

import logging
from typing import Any, Generic, Optional, TypeVar

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

DataT = TypeVar('DataT')


class ApiResponse(BaseModel, Generic[DataT]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[DataT] = None


def ok(data: Any = None, message: str | None = None) -> dict:
    return {'success': True, 'message': message, 'data': data}


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error.get('loc', ()) if part != 'body')
        message = str(error.get('msg', 'Invalid value')).removeprefix('Value error, ')
        messages.append(f'{location}: {message}' if location else message)
    return '; '.join(messages) or 'Invalid request.'


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={'success': False, 'message': detail, 'data': None},
        headers=getattr(exc, 'headers', None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _format_validation_errors(exc)
    logger.info('Rejected %s %s: %s', request.method, request.url.path, message)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={'success': False, 'message': message, 'data': None},
    )
