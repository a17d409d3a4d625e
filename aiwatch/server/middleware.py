import time
from typing import Callable

import structlog
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from aiwatch.metrics.series import AIWatchMetrics

logger = structlog.get_logger()

# Reading the registry must not move it. Dashboard polling of these paths
# is therefore left out of totalRequests, which only counts real traffic.
UNTRACKED_PATHS = frozenset({"/metrics", "/metrics/summary", "/health"})


class RequestMetricsMiddleware:
    """Counts every tracked HTTP request once, after its body has been sent.

    Implemented as plain ASGI so streamed responses are measured until the
    last chunk (or the client disconnect), not just until the headers.
    """

    def __init__(
        self,
        app: ASGIApp,
        metrics: AIWatchMetrics,
        untracked_paths: frozenset[str] = UNTRACKED_PATHS,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.app = app
        self.metrics = metrics
        self.untracked_paths = untracked_paths
        self._clock = clock

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope["method"] == "OPTIONS"
            or scope["path"] in self.untracked_paths
        ):
            await self.app(scope, receive, send)
            return

        registry = self.metrics.registry
        method = scope["method"]
        path = scope["path"]
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        start = self._clock()
        registry.increment(self.metrics.active_requests, (), 1)
        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = self._clock() - start
            registry.increment(self.metrics.active_requests, (), -1)
            registry.increment(self.metrics.http_requests, (method, path, str(status_code)))
            registry.observe(self.metrics.http_request_duration, (method, path), duration)
            logger.info(
                "HTTP request",
                method=method,
                path=path,
                status=status_code,
                duration_seconds=round(duration, 6),
            )
