"""Dependency helpers for router modules."""

import logging

from fastapi import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from roundmint.errors import MiningError, http_status

logger = logging.getLogger("api")


def get_server(request: Request):
    return request.app.state.server


def as_http_error(exc: MiningError) -> HTTPException:
    return HTTPException(status_code=http_status(exc), detail=exc.to_dict())


async def internal_error(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: anything not translated by a router is a 500 ``internal``."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": MiningError().to_dict()})


async def require_user(srv, x_api_key: str) -> dict:
    return await srv.auth.require_user(x_api_key)
