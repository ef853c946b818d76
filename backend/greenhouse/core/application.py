"""
Application shell

Owns the FastAPI app, the message channel, the endpoint registry, the task
pool and the database handle. Modules are registered first, then ``setup()``
binds their HTTP endpoints to the router; channel frames are dispatched
through the registry at runtime.
"""
import functools
import inspect
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Type
from uuid import uuid4

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy import text
from starlette.exceptions import HTTPException

from greenhouse import __version__
from greenhouse.config import Settings, get_settings
from greenhouse.core.channel import Channel
from greenhouse.core.endpoint import EndpointKind, EndpointList, HTTPEndpoint
from greenhouse.core.module import Joinable, Module
from greenhouse.core.task import TaskPool
from greenhouse.database import Database
from greenhouse.errors import ApiError, InvalidArguments, MissingArguments, UnexpectedError
from greenhouse.services.farmbot import FarmbotClient
from greenhouse.services.myfood import MyFoodClient

logger = logging.getLogger(__name__)

CHANNEL_PATH = "/channel"
DEFAULT_CHANNEL_PATH = "/"


def _json(data: Dict[str, Any]) -> str:
    return json.dumps(data, default=str)


def guard(handler: Callable[..., Any]) -> Callable[..., Any]:
    """Turn exceptions escaping an HTTP handler into an UnexpectedError response.

    ApiError and Starlette HTTP exceptions, slowapi's RateLimitExceeded
    included, go through to their registered handlers.
    """
    if inspect.iscoroutinefunction(handler):
        @functools.wraps(handler)
        async def async_wrapper(*args, **kwargs):
            try:
                return await handler(*args, **kwargs)
            except (ApiError, HTTPException):
                raise
            except Exception as exc:
                logger.exception(f"Handler {handler.__name__} failed")
                raise UnexpectedError(details=str(exc)) from exc
        return async_wrapper

    @functools.wraps(handler)
    def sync_wrapper(*args, **kwargs):
        try:
            return handler(*args, **kwargs)
        except (ApiError, HTTPException):
            raise
        except Exception as exc:
            logger.exception(f"Handler {handler.__name__} failed")
            raise UnexpectedError(details=str(exc)) from exc
    return sync_wrapper


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    missing = [str(error["loc"][-1]) for error in errors if error["type"] == "missing" and error["loc"]]
    if missing:
        api_error = MissingArguments(missing)
    else:
        api_error = InvalidArguments(
            "Invalid value for one or many parameters: "
            + ",".join(str(error["loc"][-1]) for error in errors if error["loc"]),
            details=errors,
        )
    return await api_error_handler(request, api_error)


class Application:
    """Registers modules and serves their endpoints over HTTP and the message channel."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
        myfood: Optional[MyFoodClient] = None,
        farmbot: Optional[FarmbotClient] = None,
        tasks: Optional[TaskPool] = None,
    ):
        self.settings = settings or get_settings()
        self.database = database or Database(self.settings.sqlalchemy_url)
        self.myfood = myfood or MyFoodClient(self.settings.myfood_api_url, timeout=self.settings.http_timeout)
        self.farmbot = farmbot or FarmbotClient(
            self.settings.farmbot_api_url,
            token=self.settings.farmbot_token,
            timeout=self.settings.http_timeout,
        )
        self.tasks = tasks or TaskPool()
        self.endpoints = EndpointList()
        self.modules: List[Module] = []
        self.channels: Dict[str, Channel] = {}
        self.limiter = Limiter(key_func=get_remote_address, enabled=self.settings.rate_limit_enabled)
        self._is_setup = False

        public = self.settings.public_path
        self.public_path = os.path.abspath(public) if public else None
        logger.info(f"Public path set on {self.public_path}" if self.public_path else "No public path")

        self.api = FastAPI(
            title="Greenhouse API",
            description="Greenhouse monitoring: sensor measures, FarmBot reports and occupancy rates",
            version=__version__,
            lifespan=self.lifespan,
        )
        self.api.state.application = self
        self.api.state.database = self.database
        self.api.state.limiter = self.limiter

        self.api.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
        self.api.add_exception_handler(ApiError, api_error_handler)
        self.api.add_exception_handler(RequestValidationError, validation_error_handler)

        self.api.add_middleware(
            CORSMiddleware,
            allow_origins=self.settings.cors_origins,
            allow_credentials=False,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )
        self.api.middleware("http")(self.structured_logging_middleware)

    # ---- Modules ----------------------------------------------------------

    def register_module(self, module_class: Type[Module]) -> Module:
        if self._is_setup:
            raise RuntimeError("Modules must be registered before setup()")

        module = module_class(self)
        self.modules.append(module)
        self.endpoints.register_many(module.endpoints)
        logger.info(f"Module '{module.name}' registered, {len(module.endpoints)} endpoint(s) added")
        return module

    def get_module(self, name: str) -> Optional[Module]:
        return next((module for module in self.modules if module.name == name), None)

    def rate_limited(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        return self.limiter.limit(self.settings.auth_rate_limit)(handler)

    # ---- Setup ------------------------------------------------------------

    def setup(self) -> FastAPI:
        """Bind the registered endpoints and auxiliary routes; returns the ASGI app."""
        if self._is_setup:
            return self.api

        effective: Dict[tuple, HTTPEndpoint] = {}
        for endpoint in self.endpoints:
            if endpoint.kind == EndpointKind.HTTP:
                effective[(endpoint.method, endpoint.path.lower())] = endpoint

        for endpoint in effective.values():
            self.api.add_api_route(
                endpoint.path,
                guard(endpoint.handler),
                methods=[endpoint.method],
                name=getattr(endpoint.handler, "__name__", None),
            )
        logger.info(f"{len(effective)} HTTP endpoint(s) bound")

        self.api.add_api_route("/health", self.health, methods=["GET"], include_in_schema=False)
        self.api.add_api_websocket_route(CHANNEL_PATH, self.channel_route)

        if self.settings.metrics_enabled:
            Instrumentator(registry=CollectorRegistry()).instrument(self.api).expose(
                self.api, include_in_schema=False, should_gzip=True
            )

        if self.public_path and os.path.isdir(self.public_path):
            self.api.mount("/", StaticFiles(directory=self.public_path, html=True), name="public")

        self._is_setup = True
        return self.api

    @asynccontextmanager
    async def lifespan(self, api: FastAPI):
        """Startup/shutdown: tables, module init hooks, scheduler."""
        self.database.create_all()
        for module in self.modules:
            try:
                await module.init()
            except Exception:
                logger.exception(f"Initialization of module '{module.name}' failed")

        if self.settings.scheduler_enabled:
            self.tasks.start()
        logger.info(f"Server started on port {self.settings.port}")

        yield

        self.tasks.shutdown()
        await self.myfood.aclose()
        await self.farmbot.aclose()

    async def structured_logging_middleware(self, request: Request, call_next):
        start = time.perf_counter()
        req_id = request.headers.get("X-Request-ID", str(uuid4()))

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.info(_json({
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status": status_code,
                "duration_ms": duration_ms,
            }))

    def health(self):
        """Health check endpoint for Docker."""
        db_ok = "ok"
        try:
            with self.database.session() as db:
                db.execute(text("SELECT 1"))
        except Exception:
            db_ok = "error"

        content = {
            "status": "healthy" if db_ok == "ok" else "degraded",
            "db": db_ok,
            "modules": [module.name for module in self.modules],
            "tasks": self.tasks.count,
            "runningTasks": len(self.tasks.running),
            "channels": len(self.channels),
        }
        return JSONResponse(status_code=200 if db_ok == "ok" else 503, content=content)

    # ---- Channels ---------------------------------------------------------

    async def channel_route(self, websocket: WebSocket):
        await websocket.accept()
        channel = Channel(websocket)
        try:
            await self.on_channel_join(channel)
            while True:
                try:
                    data = await websocket.receive_json()
                except (ValueError, KeyError):
                    await channel.send_error("Invalid frame", "Frames must be JSON objects")
                    continue
                await self.handle_channel_request(channel, data)
        except WebSocketDisconnect:
            pass
        finally:
            await self.on_channel_leave(channel)

    async def on_channel_join(self, channel: Channel) -> None:
        self.channels[channel.id] = channel
        logger.info(f"Channel {channel.id} connected")
        for module in self.modules:
            if isinstance(module, Joinable):
                try:
                    await module.on_join(channel)
                except Exception:
                    logger.exception(f"{module.name} failed on join of channel {channel.id}")

    async def on_channel_leave(self, channel: Channel) -> None:
        self.channels.pop(channel.id, None)
        for module in self.modules:
            if isinstance(module, Joinable):
                try:
                    await module.on_leave(channel)
                except Exception:
                    logger.exception(f"{module.name} failed on leave of channel {channel.id}")
        logger.info(f"Channel disconnected: {channel.id}")

    async def handle_channel_request(self, channel: Channel, data: Any) -> Any:
        """Dispatch a frame ``{path, ...data}`` to the matching channel endpoint."""
        if not isinstance(data, dict):
            await channel.send_error("Invalid frame", "Frames must be JSON objects")
            return None

        path = data.get("path")
        if not path:
            logger.info(f"Request from {channel.id} without path, redirecting to default path '{DEFAULT_CHANNEL_PATH}'")
            path = DEFAULT_CHANNEL_PATH

        endpoint = self.endpoints.last(path, EndpointKind.CHANNEL)
        if endpoint is None:
            logger.info(f"Request from {channel.id} with path '{path}', no matching endpoint")
            await channel.send_error("No endpoint", f"No endpoint matching path '{path}'", path=path)
            return None

        logger.info(f"Request from {channel.id} with path '{path}', redirected to endpoint")
        try:
            return await endpoint.handler(path, data, channel)
        except ApiError as error:
            await channel.send("error", {**error.to_dict(), "path": path})
        except Exception as exc:
            logger.exception(f"Channel endpoint '{path}' failed")
            await channel.send("error", {**UnexpectedError(details=str(exc)).to_dict(), "path": path})
        return None

    async def broadcast(self, event: str, payload: Optional[dict] = None) -> int:
        """Send an event to every connected channel; returns the number of channels reached."""
        sent = 0
        for channel in list(self.channels.values()):
            try:
                await channel.send(event, payload)
                sent += 1
            except Exception as exc:
                logger.warning(f"Unable to send '{event}' to channel {channel.id}: {exc}")
        return sent
