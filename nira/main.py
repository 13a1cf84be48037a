"""
Nira Lite - Main Entry Point

Local chat service: loads a model from the catalog into an on-device
Ollama runtime, reports download progress, and streams chat replies
over server-sent events.

Usage:
    python -m nira.main

Environment Variables:
    NIRA_HOST            - Server host (default: 127.0.0.1)
    NIRA_PORT            - Server port (default: 8000)
    OLLAMA_URL           - Ollama API URL (default: http://localhost:11434)
    NIRA_CATALOG         - Optional JSON model catalog
    NIRA_DEFAULT_MODEL   - Default model id
    NIRA_SYSTEM_PROMPT   - System prompt for new conversations
    NIRA_TEMPERATURE     - Sampling temperature (default: 0.7)
    NIRA_TOP_P           - Nucleus sampling (default: 0.95)
    NIRA_MAX_TOKENS      - Reply length limit (default: engine default)
    DEBUG                - Enable debug logging
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import router as api_router, session_error_handler
from .catalog import ModelCatalog
from .config import Config, config
from .engine import InferenceEngine
from .errors import NiraError
from .events import SessionEvents
from .ollama_engine import OllamaEngine
from .orchestrator import SessionOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    cfg: Config = app.state.config
    orchestrator: SessionOrchestrator = app.state.orchestrator

    # Startup
    logger.info("=" * 60)
    logger.info("Nira Lite Starting")
    logger.info("=" * 60)
    logger.info(f"Ollama URL: {cfg.ollama_url}")
    logger.info(f"Catalog: {len(orchestrator.catalog)} models, default {orchestrator.catalog.default.id}")
    logger.info(f"Sampling: {orchestrator.sampling.model_dump()}")
    logger.info("-" * 60)
    logger.info(f"Server ready at http://{cfg.host}:{cfg.port}")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await orchestrator.engine.close()
    logger.info("Shutdown complete")


def create_app(
    engine: Optional[InferenceEngine] = None,
    cfg: Optional[Config] = None,
    catalog: Optional[ModelCatalog] = None,
) -> FastAPI:
    """Build the FastAPI app around one session orchestrator."""
    cfg = cfg or config
    events = SessionEvents()
    orchestrator = SessionOrchestrator(
        engine=engine or OllamaEngine(
            base_url=cfg.ollama_url,
            timeout=cfg.request_timeout,
            keep_alive=cfg.keep_alive,
        ),
        catalog=catalog or ModelCatalog.from_config(cfg),
        system_prompt=cfg.system_prompt,
        sampling=cfg.sampling,
        listener=events,
    )

    app = FastAPI(
        title="Nira Lite",
        description=(
            "Local on-device chat. Models are downloaded and run by a local "
            "Ollama runtime; replies stream token by token."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.events = events
    app.state.orchestrator = orchestrator
    app.state.tasks = set()

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NiraError, session_error_handler)
    app.include_router(api_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        model = orchestrator.current_model
        return {
            "status": "healthy",
            "session": orchestrator.status.value,
            "model": model.id if model else None,
            "subscribers": events.subscriber_count,
            "ollama_url": cfg.ollama_url,
        }

    @app.get("/")
    async def root():
        """Root endpoint with basic info."""
        return {
            "name": "Nira Lite",
            "version": __version__,
            "endpoints": {
                "models": "/v1/models",
                "templates": "/v1/templates",
                "session": "/v1/session",
                "load": "/v1/session/load",
                "reset": "/v1/session/reset",
                "chat": "/v1/chat",
                "events": "/v1/events",
                "health": "/health",
            },
        }

    return app


def main():
    """Run the chat server."""
    uvicorn.run(
        "nira.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=False,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
