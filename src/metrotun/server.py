"""
Starlette-based control server for the Metro tunnel.

This server provides a REST API with the following endpoints:
- /start:  Start the Metro bundler with an Expo tunnel
- /stop:   Stop it
- /status: Current session (active flag, exp:// URL, platform)
- /logs:   Sanitized output captured from the bundler
- /health: Liveness check

The supervisor is created once per app and stored on ``app.state``.
"""

import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route

from metrotun.config import TunnelConfig
from metrotun.logger import get_logger, setup_logging
from metrotun.routes.health_routes import health_check
from metrotun.routes.tunnel_routes import (
    start_tunnel,
    stop_tunnel,
    tunnel_logs,
    tunnel_status,
)
from metrotun.tunnel.supervisor import TunnelSupervisor

logger = get_logger(__name__)


def create_app(
    config: Optional[TunnelConfig] = None,
    supervisor: Optional[TunnelSupervisor] = None,
) -> Starlette:
    """Build the control API around a single tunnel supervisor."""
    config = config or TunnelConfig.from_env()
    supervisor = supervisor or TunnelSupervisor(config)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info(f"Preview API Server listening on port {config.port}")
        logger.info(f"Project directory: {config.project_dir}")
        logger.info("Waiting for frontend to trigger /start...")
        yield
        logger.info("Application shutdown - stopping tunnel")
        await supervisor.shutdown()

    app = Starlette(
        routes=[
            Route("/start", start_tunnel, methods=["POST"]),
            Route("/stop", stop_tunnel, methods=["POST"]),
            Route("/status", tunnel_status, methods=["GET"]),
            Route("/logs", tunnel_logs, methods=["GET"]),
            Route("/health", health_check, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
            )
        ],
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.supervisor = supervisor
    return app


def run(config: TunnelConfig, log_level: str = "INFO") -> None:
    """Serve the control API with uvicorn until interrupted."""
    import uvicorn

    app = create_app(config)
    logger.info(f"Starting metrotun server on http://{config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_level=log_level.lower())


if __name__ == "__main__":
    if "--debug" in sys.argv:
        os.environ["LOG_LEVEL"] = "DEBUG"

    config = TunnelConfig.from_env()
    log_level = os.getenv("LOG_LEVEL", "INFO")
    setup_logging(level=log_level, log_file=os.getenv("LOG_FILE"))
    run(config, log_level=log_level)
