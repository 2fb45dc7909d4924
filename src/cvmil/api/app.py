from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import anyio.to_thread
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.params import Depends as DependsParamType
from fastapi.responses import JSONResponse, Response

from ..config import Settings
from ..errors import ErrorCode, new_error
from ..logging import get_logger, init_logging, log_event, request_id_var
from ..middleware import RequestIdMiddleware, api_key_dependency
from ..remote.connection import ConnectionManager
from ..remote.service import PredictionService
from ..remote.types import MODEL_CHOICES, Connector
from ..version import get_version
from .handler import PredictFailure, PredictHandler
from .schemas import ErrorBody, PredictResponse


async def _handle_unexpected(_: Request, exc: Exception) -> JSONResponse:
    get_logger().error("unhandled_exception error=%s", type(exc).__name__)
    body = new_error(ErrorCode.internal_error, request_id_var.get())
    return JSONResponse(status_code=500, content=body.to_dict())


async def _handle_http(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, HTTPException)
    # Error bodies raised as the detail are returned flat
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return await http_exception_handler(request, exc)


def _failure_response(result: PredictFailure) -> JSONResponse:
    body = new_error(result.code, request_id_var.get(), result.message, result.details)
    return JSONResponse(status_code=result.http_status, content=body.to_dict())


async def _warm_connection(connections: ConnectionManager) -> None:
    try:
        await anyio.to_thread.run_sync(connections.get_connection)
    except Exception as exc:
        # Not fatal: the first prediction retries establishment.
        log_event(
            "connection_warmup_failed",
            fields={"space_id": connections.space_id, "error": type(exc).__name__},
        )


def _register_basic(app: FastAPI, service: PredictionService) -> None:
    async def _healthz() -> dict[str, str]:
        return {"status": "ok"}

    async def _readyz() -> dict[str, object]:
        conns = service.connections
        if conns.connected:
            return {"status": "ready"}
        return {
            "status": "not_ready",
            "connected": False,
            "space_id": conns.space_id,
            "build": get_version().build,
        }

    async def _version() -> dict[str, object]:
        v = get_version()
        return {"service": v.service, "version": v.version, "build": v.build, "commit": v.commit}

    app.add_api_route("/healthz", _healthz, methods=["GET"])
    app.add_api_route("/readyz", _readyz, methods=["GET"])
    app.add_api_route("/version", _version, methods=["GET"])


def _register_models(app: FastAPI, settings: Settings) -> None:
    async def _models() -> dict[str, object]:
        return {
            "models": list(MODEL_CHOICES),
            "space_id": settings.remote.space_id,
            "api_name": settings.remote.api_name,
        }

    app.add_api_route("/v1/models", _models, methods=["GET"])


def _register_predict(app: FastAPI, handler: PredictHandler, api_dep: DependsParamType) -> None:
    async def _predict(request: Request) -> object:
        async with request.form() as form:
            result = await handler.handle(form)
        if isinstance(result, PredictFailure):
            return _failure_response(result)
        return result.to_dict()

    responses: dict[int | str, dict[str, object]] = {
        400: {"model": ErrorBody},
        413: {"model": ErrorBody},
        500: {"model": ErrorBody},
    }
    for path in ("/predict", "/v1/predict"):
        app.add_api_route(
            path,
            _predict,
            methods=["POST"],
            response_model=PredictResponse,
            responses=responses,
            dependencies=[api_dep],
        )


def create_app(
    settings: Settings | None = None,
    connector: Connector | None = None,
    *,
    service_provider: Callable[[], PredictionService] | None = None,
) -> FastAPI:
    """Application factory.

    Parameters:
    - `settings`: Optional pre-loaded settings; when omitted, loads from env and TOML.
    - `connector`: Optional replacement for the Gradio connector (primarily for tests).
    - `service_provider`: Optional provider for a fully custom `PredictionService`.
    """
    s = settings or Settings.load()
    init_logging()

    # One service (and so one connection slot) shared by every request of this app
    service: PredictionService = (
        service_provider()
        if service_provider is not None
        else PredictionService(s, ConnectionManager.from_config(s.remote, connector))
    )
    handler = PredictHandler(service, s)

    @asynccontextmanager
    async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
        if s.remote.warm_on_startup:
            await _warm_connection(service.connections)
        try:
            yield
        finally:
            service.shutdown()

    app = FastAPI(title="cvmil", version=get_version().version, lifespan=_lifespan)
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(HTTPException, _handle_http)
    app.add_exception_handler(Exception, _handle_unexpected)

    app.state.service = service
    app.state.handler = handler

    _register_basic(app, service)
    _register_models(app, s)
    _register_predict(app, handler, Depends(api_key_dependency(s)))
    return app


# Default ASGI app for uvicorn
app = create_app()
