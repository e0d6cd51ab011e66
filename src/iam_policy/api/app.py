# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
FastAPI application factory.

The engine is created once and stored on ``app.state``; route handlers
receive it through the :func:`~iam_policy.api.routes.get_engine`
dependency. Domain errors are translated to HTTP responses here so the
routes stay free of status-code bookkeeping.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from iam_policy.api.routes import router
from iam_policy.config import EngineConfig
from iam_policy.engine import PolicyEngine
from iam_policy.errors import (
    CapabilityDisabledError,
    ConcurrencyConflictError,
    ConfigurationError,
    CurrencyConversionError,
    EntityNotFoundError,
    IAMPolicyError,
    InactiveEntityError,
    ObservationTimeoutError,
    PolicyValidationError,
    TerminalStateError,
)
from iam_policy.storage.bundle import Storage

logger = logging.getLogger("iam_policy.api")

# First matching class wins; subclasses must precede their bases.
ERROR_STATUS: list[tuple[type[IAMPolicyError], int]] = [
    (EntityNotFoundError, status.HTTP_404_NOT_FOUND),
    (PolicyValidationError, status.HTTP_400_BAD_REQUEST),
    (TerminalStateError, status.HTTP_409_CONFLICT),
    (InactiveEntityError, status.HTTP_409_CONFLICT),
    (CapabilityDisabledError, status.HTTP_403_FORBIDDEN),
    (CurrencyConversionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConcurrencyConflictError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ObservationTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: IAMPolicyError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _validation_details(errors: Any) -> list[dict[str, Any]]:
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in errors
    ]


async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, IAMPolicyError)  # noqa: S101
    status_code = status_for(exc)
    error: Any = exc.message
    if isinstance(exc, PolicyValidationError):
        error = _validation_details(exc.details)
    headers = None
    if isinstance(exc, ConcurrencyConflictError):
        headers = {"Retry-After": "1"}
    if status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "code": exc.code},
        headers=headers,
    )


async def _request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, (RequestValidationError, ValidationError))  # noqa: S101
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": _validation_details(exc.errors()), "code": "VALIDATION_ERROR"},
    )


def create_app(
    engine: PolicyEngine | None = None,
    *,
    data_dir: str | Path | None = None,
    config: EngineConfig | None = None,
) -> FastAPI:
    """
    Build the HTTP application.

    Args:
        engine: A ready engine. When omitted, one is created at startup.
        data_dir: Directory for durable NDJSON storage. Only used when
            ``engine`` is omitted; in-memory storage is used otherwise.
        config: Engine configuration. Only used when ``engine`` is omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: PolicyEngine | None = None
        if getattr(app.state, "engine", None) is None:
            storage = (
                await Storage.open_directory(data_dir) if data_dir is not None else Storage.memory()
            )
            owned = PolicyEngine(storage, config=config)
            app.state.engine = owned
            logger.info("Engine started", extra={"data_dir": str(data_dir) if data_dir else None})
        try:
            yield
        finally:
            if owned is not None:
                await owned.close()
                app.state.engine = None

    app = FastAPI(
        title="iam-policy",
        description="Policy enforcement for policy-bound keys and autonomous agents",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.include_router(router, prefix="/api")
    app.add_exception_handler(IAMPolicyError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(ValidationError, _request_validation_handler)
    return app
