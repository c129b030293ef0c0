"""HTTP API server exposing shade state and commands."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from .accessories import ShadeAccessory, accessory_information
from .config import Config
from .errors import ShadeBridgeError, UnknownShadeError, ValidationError
from .logging import get_logger, redact_mapping
from .metrics import METRICS_CONTENT_TYPE, latest_metrics, observe_request
from .models import BlindRecord
from .scheduler import RefreshScheduler


def _build_auth_dependency(config: Config) -> Callable[[Request], Any]:
    async def _auth_guard(request: Request) -> None:
        if not config.api_key and not config.api_bearer_token:
            return
        api_key_header = request.headers.get("X-API-Key")
        auth_header = request.headers.get("Authorization")
        if config.api_key and api_key_header == config.api_key:
            return
        if config.api_key and auth_header and auth_header.lower().startswith("apikey "):
            if auth_header.split(" ", 1)[1] == config.api_key:
                return
        if config.api_bearer_token and auth_header and auth_header.startswith("Bearer "):
            if auth_header.split(" ", 1)[1] == config.api_bearer_token:
                return
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _auth_guard


class ShadeOut(BaseModel):
    """Shade response model."""

    id: str
    room_id: str
    name: str
    display_name: str
    current_position: int
    target_position: int
    fault_status: bool


class TargetPosition(BaseModel):
    """Payload for commanding a shade position in percent."""

    position: int


def _shade_out(record: BlindRecord) -> ShadeOut:
    return ShadeOut(**record.as_dict())


def create_app(config: Config, scheduler: RefreshScheduler) -> FastAPI:
    """Create and configure a FastAPI application."""

    logger = get_logger("shades.api")
    request_logger = get_logger("shades.api.middleware")
    auth_dependency = _build_auth_dependency(config)
    app = FastAPI(
        title="Platinum Shade Bridge API",
        docs_url="/docs" if config.api_docs else None,
        redoc_url="/redoc" if config.api_docs else None,
        openapi_url="/openapi.json" if config.api_docs else None,
    )

    @app.middleware("http")
    async def _logging_middleware(request: Request, call_next: Callable[..., Any]) -> Response:
        start = time.perf_counter()
        redacted_headers = redact_mapping(dict(request.headers))
        try:
            response = await call_next(request)
        except Exception as exc:  # pragma: no cover
            logger.exception("Unhandled API error")
            raise HTTPException(status_code=500, detail="Internal server error") from exc
        path_template = getattr(request.scope.get("route"), "path", request.url.path)
        duration_seconds = time.perf_counter() - start
        observe_request(request.method, path_template, response.status_code, duration_seconds)
        request_logger.info(
            "Handled request",
            extra={
                "method": request.method,
                "path": path_template,
                "status": response.status_code,
                "duration_ms": round(duration_seconds * 1000, 2),
                "client": request.client.host if request.client else None,
                "headers": redacted_headers,
            },
        )
        return response

    @app.exception_handler(HTTPException)
    async def _http_exc_handler(request: Request, exc: HTTPException) -> JSONResponse:
        request_logger.warning(
            "API error",
            extra={"path": request.url.path, "status": exc.status_code, "detail": exc.detail},
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        request_logger.warning(
            "Validation error",
            extra={"path": request.url.path, "errors": exc.errors()},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": _jsonable_errors(exc)},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status", dependencies=[Depends(auth_dependency)])
    async def refresh_status() -> dict[str, Any]:
        info = accessory_information(scheduler)
        return {
            "refresh": scheduler.health.as_dict(),
            "state": scheduler.state.value,
            "retry_attempt": scheduler.retry_attempt,
            "in_flight": scheduler.in_flight,
            "interval_seconds": scheduler.base_interval_seconds,
            "shades": len(scheduler.store),
            "faulted_shades": scheduler.store.faulted_count(),
            "controller": {
                "name": scheduler.controller.controller_name,
                "manufacturer": info.manufacturer,
                "model": info.model,
                "serial_number": info.serial_number,
            },
        }

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=latest_metrics(), media_type=METRICS_CONTENT_TYPE)

    @app.get("/shades", dependencies=[Depends(auth_dependency)], response_model=list[ShadeOut])
    async def list_shades() -> list[ShadeOut]:
        return [_shade_out(record) for record in scheduler.store.records()]

    @app.get("/shades/{shade_id}", dependencies=[Depends(auth_dependency)], response_model=ShadeOut)
    async def get_shade(shade_id: str) -> ShadeOut:
        if shade_id not in scheduler.store:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shade not found")
        accessory = ShadeAccessory(scheduler, shade_id)
        try:
            await accessory.current_position()
        except ShadeBridgeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Refresh failed: {exc}",
            ) from exc
        return _shade_out(accessory.record)

    @app.put("/shades/{shade_id}/target", dependencies=[Depends(auth_dependency)], response_model=ShadeOut)
    async def set_target(shade_id: str, payload: TargetPosition) -> ShadeOut:
        try:
            record = await scheduler.store.set_target(shade_id, payload.position)
        except UnknownShadeError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shade not found") from exc
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        except ShadeBridgeError as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Controller command failed: {exc}",
            ) from exc
        return _shade_out(record)

    @app.post("/refresh", dependencies=[Depends(auth_dependency)])
    async def refresh() -> dict[str, Any]:
        try:
            await scheduler.refresh()
        except ShadeBridgeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Refresh failed: {exc}",
            ) from exc
        return {"status": "refreshed", "shades": len(scheduler.store)}

    return app


def _jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


class ApiService:
    """Lifecycle wrapper for the FastAPI/uvicorn server."""

    def __init__(self, config: Config, scheduler: RefreshScheduler) -> None:
        self.config = config
        self.scheduler = scheduler
        self.logger = get_logger("shades.api")
        self._server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task[None]] = None

    async def start(self) -> None:
        if self._server:
            return
        app = create_app(self.config, self.scheduler)
        uvicorn_config = uvicorn.Config(
            app,
            host=self.config.api_host,
            port=self.config.api_port,
            log_config=None,
            loop="asyncio",
        )
        self._server = uvicorn.Server(config=uvicorn_config)
        self._server_task = asyncio.create_task(self._server.serve())
        self.logger.info("API server starting", extra={"host": self.config.api_host, "port": self.config.api_port})

    async def stop(self) -> None:
        if not self._server:
            return
        self.logger.info("Stopping API server")
        self._server.should_exit = True
        if self._server_task:
            await self._server_task
        self._server = None
        self._server_task = None
