"""HTTP middleware stack: CORS, gzip compression and a per-request access log."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ambiente.core.settings import Settings, settings

logger = logging.getLogger("ambiente.access")


async def log_request(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s -> %d (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


def register_middleware(app: FastAPI, config: Settings = settings) -> None:
    # Added last runs first: the access log wraps compression, which wraps CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=config.gzip_minimum_size)
    app.middleware("http")(log_request)


__all__ = ["log_request", "register_middleware"]
