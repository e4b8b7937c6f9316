"""FastAPI application entry point for the interactive session."""

import logging
from typing import Callable, Optional

from fastapi import FastAPI

import config
from routes.session import router as session_router
from services.launch import make_client
from services.run_store import RunStore
from services.sora_client import SoraClient

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("vgen")


def create_app(
    store: Optional[RunStore] = None,
    client_factory: Callable[..., SoraClient] = make_client,
) -> FastAPI:
    app = FastAPI(
        title="Video Generator",
        description="Generate videos with Sora and download them locally",
        version="1.0.0",
    )

    # -----------------------------------------------------------------------
    # Shared state exposed via app.state
    # -----------------------------------------------------------------------
    app.state.store = store or RunStore(config.DATABASE_PATH)
    app.state.client_factory = client_factory
    app.state.session = None
    app.state.run_id = None
    app.state.client = None

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    app.include_router(session_router, prefix="/api", tags=["session"])

    @app.on_event("startup")
    async def startup_event() -> None:
        app.state.store.init_db()
        logger.info("Session API ready.")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        session = app.state.session
        if session is not None and not session.done:
            session.cancel()
            logger.info("Active session cancelled on shutdown.")

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
