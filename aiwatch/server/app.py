import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from aiwatch.config import Settings, settings as default_settings
from aiwatch.errors import AIWatchError, InvalidRequest, MethodNotAllowed
from aiwatch.metrics.readers import gauge_value
from aiwatch.metrics.registry import MetricRegistry
from aiwatch.metrics.series import AIWatchMetrics
from aiwatch.metrics.summary import LLAMACPP_MODEL_TYPE, build_summary
from aiwatch.models.catalog import ModelCatalog
from aiwatch.relay.policies import is_llamacpp
from aiwatch.relay.relay import ChatRelay, RelayStream
from aiwatch.relay.upstream import InferenceClient
from aiwatch.schemas import ChatRequest, ErrorLog, LlamaCppMetrics, MetricLog, parse_body
from aiwatch.server.middleware import RequestMetricsMiddleware

logger = structlog.get_logger()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

DEFAULT_CONTEXT_WINDOW = 4096
CONTEXT_WINDOWS = (("1B", 2048), ("7B", 4096), ("13B", 4096), ("70B", 8192))


def estimate_context_window(model: str) -> int:
    for size, window in CONTEXT_WINDOWS:
        if size in model:
            return window
    return DEFAULT_CONTEXT_WINDOW


async def read_body(request: Request, timeout: float | None) -> bytes:
    try:
        return await asyncio.wait_for(request.body(), timeout)
    except asyncio.TimeoutError:
        raise InvalidRequest("timed out reading request body") from None


class RelayResponse(StreamingResponse):
    """Streams a RelayStream and finalizes it even if the body never started."""

    def __init__(self, stream: RelayStream):
        super().__init__(stream, media_type="text/event-stream", headers=STREAM_HEADERS)
        self.stream = stream

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.stream.close()


def create_app(
    settings: Settings | None = None,
    metrics: AIWatchMetrics | None = None,
    relay: ChatRelay | None = None,
    catalog: ModelCatalog | None = None,
) -> FastAPI:
    settings = settings or default_settings
    metrics = metrics or AIWatchMetrics(MetricRegistry())
    client = None
    if relay is None:
        client = InferenceClient(settings.base_url, settings.api_key, timeout=settings.write_timeout)
        relay = ChatRelay(
            metrics,
            client,
            settings.model,
            base_url=settings.base_url,
            write_timeout=settings.write_timeout,
        )
    catalog = catalog or ModelCatalog(settings.docker_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if client is not None:
            await client.aclose()

    app = FastAPI(title="AIWatch", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.relay = relay
    app.state.catalog = catalog

    app.add_middleware(RequestMetricsMiddleware, metrics=metrics)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(AIWatchError)
    async def handle_aiwatch_error(request: Request, exc: AIWatchError):
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            status=exc.status_code,
            error=str(exc),
        )
        return PlainTextResponse(exc.detail, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            return await handle_aiwatch_error(request, MethodNotAllowed())
        return await http_exception_handler(request, exc)

    @app.options("/{path:path}")
    async def preflight(path: str):
        return Response(status_code=200)

    @app.post("/chat")
    async def chat(request: Request):
        body = await read_body(request, settings.read_timeout)
        chat_request = parse_body(body, ChatRequest)
        stream = await relay.open(chat_request)
        return RelayResponse(stream)

    @app.get("/metrics")
    async def scrape():
        return Response(metrics.registry.exposition(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/metrics/summary")
    async def summary():
        return JSONResponse(build_summary(metrics, settings).model_dump(by_alias=True))

    @app.post("/metrics/log")
    async def log_metrics(request: Request):
        metric_log = parse_body(await read_body(request, settings.read_timeout), MetricLog)
        logger.debug("Client metrics reported", **metric_log.model_dump())
        # token counts and response time are already tracked server side
        if metric_log.time_to_first_token_ms > 0:
            metrics.registry.observe(
                metrics.first_token_latency,
                (settings.model,),
                metric_log.time_to_first_token_ms / 1000.0,
            )
        return Response(status_code=200)

    @app.post("/metrics/error")
    async def log_error(request: Request):
        error_log = parse_body(await read_body(request, settings.read_timeout), ErrorLog)
        logger.info(
            "Client error reported",
            error_type=error_log.error_type,
            status_code=error_log.status_code,
            input_length=error_log.input_length,
        )
        metrics.registry.increment(metrics.errors, (error_log.error_type,))
        return Response(status_code=200)

    @app.post("/metrics/llamacpp")
    async def log_llamacpp(request: Request):
        snapshot = parse_body(await read_body(request, settings.read_timeout), LlamaCppMetrics)
        metrics.record_llamacpp_snapshot(
            settings.model,
            context_size=snapshot.context_size,
            prompt_eval_time_ms=snapshot.prompt_eval_time_ms,
            tokens_per_second=snapshot.tokens_per_second,
            memory_per_token_bytes=snapshot.memory_per_token_bytes,
            threads_used=snapshot.threads_used,
            batch_size=snapshot.batch_size,
        )
        return Response(status_code=200)

    @app.get("/health")
    async def health():
        model_info: dict = {"model": settings.model}
        if is_llamacpp(settings.model, settings.base_url):
            model_info["modelType"] = LLAMACPP_MODEL_TYPE
            context_size = int(
                gauge_value(metrics.registry, metrics.llamacpp_context_size, settings.model)
            )
            model_info["contextWindow"] = context_size or estimate_context_window(settings.model)
        return {"status": "ok", "model_info": model_info}

    @app.get("/models")
    def list_models():
        return [model.model_dump(by_alias=True) for model in catalog.list_models()]

    return app
