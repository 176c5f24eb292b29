from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictStr, ValidationError

from .blocking import to_thread
from .config import reload_settings, settings
from .delivery import Broadcaster, make_client
from .errors import (
    AlreadyRegisteredError,
    BodyReadError,
    DecodeError,
    DeliveryError,
    InvalidURLError,
    NotRegisteredError,
    RelayError,
)
from .logging_setup import RequestLogMiddleware, init_logging
from .metrics import LAT, REQS, SUBSCRIBERS, router as metrics_router
from .registry import AddResult, RemoveResult, SubscriberRegistry

log = logging.getLogger(__name__)


class Health(BaseModel):
    status: str
    time: str
    subscribers: int


class SubscriptionBody(BaseModel):
    url: StrictStr


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    registry = SubscriberRegistry(settings.allowed_schemes())
    client = make_client(settings.DELIVERY_TIMEOUT_SECONDS)
    app.state.registry = registry
    app.state.broadcaster = Broadcaster(
        registry,
        client,
        parallel=settings.PARALLEL_DELIVERY,
        concurrency=settings.DELIVERY_CONCURRENCY,
        fail_on_http_error_status=settings.FAIL_ON_HTTP_ERROR_STATUS,
    )
    SUBSCRIBERS.set(0)
    try:
        yield
    finally:
        await client.aclose()


init_logging(settings.LOG_LEVEL)

app = FastAPI(
    title="PubRelay", version="0.1.0", lifespan=lifespan, redirect_slashes=False
)
app.add_middleware(RequestLogMiddleware)
app.include_router(metrics_router())


@app.middleware("http")
async def _metrics(request: Request, call_next):
    method = request.method
    path = request.url.path
    start = time.time()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.time() - start
        REQS.labels(method, path, str(status_code)).inc()
        LAT.labels(method, path).observe(duration)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    log.log(level, "%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _registry(request: Request) -> SubscriberRegistry:
    return request.app.state.registry


async def _read_body(request: Request) -> bytes:
    try:
        return await request.body()
    except Exception as exc:  # noqa: BLE001
        raise BodyReadError(str(exc) or exc.__class__.__name__) from exc


def _parse_subscription(body: bytes) -> str:
    try:
        return SubscriptionBody.model_validate_json(body).url
    except ValidationError as exc:
        kinds = {error.get("type") for error in exc.errors()}
        if "json_invalid" in kinds:
            raise DecodeError("Request body is not valid JSON") from exc
        raise DecodeError("Field 'url' must be a string") from exc


@app.get("/health", response_model=Health)
async def health(request: Request):
    count = await to_thread(len, _registry(request))
    return Health(status="ok", time=datetime.utcnow().isoformat(), subscribers=count)


@app.post("/subscribe")
async def subscribe(request: Request):
    url = _parse_subscription(await _read_body(request))
    registry = _registry(request)
    result = await to_thread(registry.add, url)
    if result is AddResult.INVALID:
        raise InvalidURLError()
    if result is AddResult.ALREADY_PRESENT:
        raise AlreadyRegisteredError()
    SUBSCRIBERS.set(await to_thread(len, registry))
    log.info("registered %s", url)
    return Response(status_code=200)


@app.post("/unsubscribe")
async def unsubscribe(request: Request):
    url = _parse_subscription(await _read_body(request))
    registry = _registry(request)
    result = await to_thread(registry.remove, url)
    if result is RemoveResult.NOT_FOUND:
        raise NotRegisteredError()
    SUBSCRIBERS.set(await to_thread(len, registry))
    log.info("deregistered %s", url)
    return Response(status_code=200)


@app.post("/publish")
async def publish(request: Request):
    payload = await _read_body(request)
    broadcaster: Broadcaster = request.app.state.broadcaster
    failed = await broadcaster.publish_detached(payload)
    if failed:
        raise DeliveryError(failed)
    return Response(status_code=200)


@app.get("/subscriber", response_model=list[str])
async def list_subscribers(request: Request):
    return await to_thread(_registry(request).list)
