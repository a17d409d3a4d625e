import sys

import structlog
import uvicorn
from prometheus_client import start_http_server

from aiwatch.config import Settings
from aiwatch.logger import configure_logging
from aiwatch.metrics.registry import MetricRegistry
from aiwatch.metrics.series import AIWatchMetrics
from aiwatch.server.app import create_app
from aiwatch.tracing import init_tracing

logger = structlog.get_logger()


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level, settings.log_pretty)
    logger.info(
        "Starting AIWatch with observability", model=settings.model, base_url=settings.base_url
    )

    metrics = AIWatchMetrics(MetricRegistry())
    app = create_app(settings, metrics=metrics)
    shutdown_tracing = init_tracing(app, settings)

    try:
        start_http_server(
            settings.metrics_port, addr=settings.host, registry=metrics.registry.registry
        )
    except OSError as e:
        logger.error("Failed to start metrics server", port=settings.metrics_port, error=str(e))
        sys.exit(1)
    logger.info("Metrics server started", port=settings.metrics_port)

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            log_config=None,
            timeout_graceful_shutdown=settings.shutdown_timeout,
        )
    )
    logger.info("Starting server", port=settings.port)
    try:
        server.run()
    finally:
        shutdown_tracing()
    logger.info("Server exiting")


if __name__ == "__main__":
    main()
