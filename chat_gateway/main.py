"""
Chat Gateway main application.

Real-time fan-out chat over WebSocket: unique display names, validated and
rate-limited messages, ordered broadcast delivery and dead-connection
eviction.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from chat_gateway.components.connection.rate_limiter import SlidingWindowRateLimiter
from chat_gateway.components.metrics.collector import MetricsCollector
from chat_gateway.core.connection.liveness import LivenessMonitor
from chat_gateway.core.connection.registry import ConnectionRegistry
from chat_gateway.core.endpoint import ChatEndpoint
from chat_gateway.core.router.message_router import MessageRouter
from shared.config.logging import chat_gateway_logger as logger
from shared.config.logging import setup_logging, shutdown_logging
from shared.config.settings import Settings, settings

__version__ = "1.0.0"


def _allowed_origins(config: Settings) -> list[str]:
    return [o.strip() for o in config.allowed_origins.split(",") if o.strip()] or ["*"]


def create_app(config: Settings | None = None) -> FastAPI:
    """
    Build the application with its own service objects.

    Each call creates an isolated registry, rate limiter, router and
    liveness monitor, so tests can run several apps side by side.

    Args:
        config: Settings to use. Defaults to the environment-loaded settings.
    """
    config = config or settings

    metrics = MetricsCollector()
    registry = ConnectionRegistry(
        metrics=metrics,
        batch_size=config.broadcast_batch_size,
    )
    rate_limiter = SlidingWindowRateLimiter(
        max_messages=config.rate_limit_max_messages,
        window_seconds=config.rate_limit_window_seconds,
    )
    router = MessageRouter(
        registry,
        rate_limiter,
        metrics=metrics,
        message_delay=config.message_delay_seconds,
        min_username_length=config.min_username_length,
        max_username_length=config.max_username_length,
        min_message_length=config.min_message_length,
        max_message_length=config.max_message_length,
    )
    monitor = LivenessMonitor(
        registry,
        rate_limiter=rate_limiter,
        metrics=metrics,
        ping_interval=config.ping_interval_seconds,
        sweep_interval=config.sweep_interval_seconds,
        inactivity_timeout=config.inactivity_timeout_seconds,
        shutdown_grace=config.shutdown_grace_seconds,
        on_departure=router.announce_departure,
    )

    # =========================================================================
    # Lifespan
    # =========================================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Starts the delivery worker and the liveness timers; on shutdown closes
        every connection and drains the delivery queue.
        """
        setup_logging(config)
        logger.info(
            "Starting Chat Gateway",
            port=config.port,
            ws_path=config.ws_path,
            env=config.environment,
        )
        for error in config.validate_runtime():
            logger.warning("Configuration problem", detail=error)

        router.start()
        monitor.start()

        yield

        logger.info("Shutting down Chat Gateway")
        await monitor.shutdown()
        await router.stop()
        logger.info("Chat Gateway stopped", **router.get_stats()["metrics"])
        shutdown_logging()

    app = FastAPI(
        title="Chat Gateway",
        description="Real-time fan-out chat over WebSocket",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.rate_limiter = rate_limiter
    app.state.router = router
    app.state.monitor = monitor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(config),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health")
    def health_check():
        """Basic health check endpoint with gateway statistics."""
        try:
            stats = router.get_stats()
        except Exception as e:
            logger.warning("Failed to get stats in health check", error=str(e))
            stats = {"error": "stats_unavailable"}
        return {
            "status": "shutting_down" if monitor.is_shutting_down else "healthy",
            "service": "chat-gateway",
            "version": app.version,
            "environment": config.environment,
            **stats,
        }

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket(config.ws_path)
    async def chat_websocket(websocket: WebSocket):
        endpoint = ChatEndpoint(
            websocket,
            registry,
            router,
            monitor=monitor,
            max_frame_size=config.max_frame_size,
        )
        await endpoint.run()

    return app


app = create_app()


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chat_gateway.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        ws_ping_interval=settings.ping_interval_seconds,
        ws_ping_timeout=settings.ping_timeout_seconds,
    )
