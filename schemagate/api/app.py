"""Gateway HTTP API: FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Lifespan handler that builds and connects the Gateway, unless one is injected
- Error handlers producing the structured error envelope
- The gateway router at the root and under ``/api/v1``
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from schemagate import __version__
from schemagate.api.middleware import register_error_handlers
from schemagate.api.routes import router
from schemagate.config import AppConfig, get_config
from schemagate.gateway import Gateway

logger = logging.getLogger(__name__)

API_V1_PREFIX = "/api/v1"


def create_app(gateway: Optional[Gateway] = None, config: Optional[AppConfig] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        gateway: Ready-made Gateway (tests inject one backed by the memory
                 driver). When omitted, the lifespan builds one from config
                 and owns its connection.
        config: Application configuration. Defaults to the gateway's, then
                to get_config().
    """
    if config is None:
        config = gateway.config if gateway is not None else get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.gateway is None
        if owned:
            app.state.gateway = Gateway(config)
            app.state.gateway.connect()
            logger.info("Gateway connected to %s store", app.state.gateway.driver.name)
        try:
            yield
        finally:
            if owned:
                app.state.gateway.close()
                app.state.gateway = None

    app = FastAPI(title="SchemaGate", version=__version__, lifespan=lifespan)
    app.state.gateway = gateway
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
        expose_headers=["X-Next-Offset", "X-Sample-Size", "X-Sample-Empty"],
    )
    register_error_handlers(app)

    app.include_router(router)
    app.include_router(router, prefix=API_V1_PREFIX)
    return app
