"""Exception handlers mapping RTBError to JSON responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ...core.exceptions import RTBError

logger = logging.getLogger(__name__)


async def rtb_error_handler(request: Request, exc: RTBError) -> JSONResponse:
    """Render an RTBError with its status code.

    Server-side errors keep their code but never expose the original
    message, which may carry connection details.
    """
    body = exc.to_dict()
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}", exc_info=exc)
        body["message"] = "Internal server error"
        body["details"] = {}
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": body["error_type"],
            "code": body["code"],
            "message": body["message"],
            "details": body["details"],
            "recoverable": body["recoverable"],
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RTBError, rtb_error_handler)
