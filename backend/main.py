"""
CareNav - Embedded assistant for the hospital operations portal
FastAPI backend serving the assistant WebSocket
"""

from contextlib import asynccontextmanager
from typing import Any, Callable, Optional, Tuple
import logging
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import RuntimeConfig, runtime_config
from logging_config import setup_logging
from routers import chat
from services.llm_client import LLMClient
from services.portal import InMemoryAuthService, InMemoryRouter, InMemoryThemeService, User

logger = logging.getLogger(__name__)

# Instance ID - changes on every startup, used by the widget to detect restarts
INSTANCE_ID = str(uuid.uuid4())

PortalFactory = Callable[[], Tuple[Any, Any, Any]]


def default_portal() -> Tuple[InMemoryAuthService, InMemoryThemeService, InMemoryRouter]:
    """Standalone collaborators: a guest user on the default route tree."""
    auth = InMemoryAuthService(User(full_name="", roles=["guest"]))
    return auth, InMemoryThemeService(), InMemoryRouter()


def create_app(
    config: Optional[RuntimeConfig] = None,
    portal_factory: Optional[PortalFactory] = None,
    llm_client: Optional[LLMClient] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Runtime configuration (defaults to the module singleton)
        portal_factory: Returns (auth, theme, router) for each connection
        llm_client: Shared model client (created on startup when omitted)
    """
    config = config or runtime_config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config.log_level)
        owns_client = app.state.llm_client is None
        if owns_client:
            app.state.llm_client = LLMClient(config)
        logger.info(f"CareNav starting (instance {INSTANCE_ID[:8]}, model {config.model_name})")
        try:
            yield
        finally:
            if owns_client:
                await app.state.llm_client.aclose()
                app.state.llm_client = None
            logger.info("CareNav signing off")

    app = FastAPI(
        title="CareNav",
        description="Embedded assistant for the hospital operations portal",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.portal_factory = portal_factory or default_portal
    app.state.llm_client = llm_client

    # CORS - portal dev server and private network hosts
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+|10\.\d+\.\d+\.\d+)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Assistant router is mounted WITHOUT /api prefix so the WebSocket is at /ws/assistant
    app.include_router(chat.router, tags=["assistant"])

    @app.get("/api/health")
    async def health():
        """Service status and the public parts of the configuration."""
        return {
            "status": "ok",
            "instance_id": INSTANCE_ID,
            "config": {"hotline": config.hotline, "model": config.model_name},
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, ws_max_size=1048576)  # 1MB WS frame limit
