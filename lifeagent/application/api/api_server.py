from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from lifeagent import __version__
from lifeagent.application.api.route.agent import get_orchestrator, router as agent_router
from lifeagent.application.container import build_orchestrator
from lifeagent.domain.orchestration.core.main_agent import AgentOrchestrator
from lifeagent.domain.tool.types import ToolQueryFilter
from lifeagent.infrastructure.config import Settings, settings as default_settings
from lifeagent.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


def create_app(
    orchestrator: Optional[AgentOrchestrator] = None,
    settings: Optional[Settings] = None
) -> FastAPI:
    """Create the HTTP app; builds a default orchestrator on startup when none is given"""
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.SERVICE_NAME)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = build_orchestrator(settings)
        logger.info("Agent service started", tools=app.state.orchestrator.registry.get_stats()["total"])
        yield
        logger.info("Agent service stopped")

    app = FastAPI(title="LifeAgent API", version=__version__, lifespan=lifespan)
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/api/v1/tools")
    async def list_tools(request: Request):
        """Registered tools and catalog statistics"""
        registry = get_orchestrator(request).registry
        tools = [
            {
                "name": registered.name,
                "category": registered.metadata.category,
                "displayName": registered.metadata.display_name,
                "description": registered.metadata.description or registered.tool.description,
                "readonly": registered.metadata.readonly,
            }
            for registered in registry.query(ToolQueryFilter())
        ]
        return {"tools": tools, "stats": registry.get_stats()}

    app.include_router(agent_router)
    return app


def main() -> None:
    """Run the API with uvicorn"""
    uvicorn.run(create_app(), host=default_settings.HOST, port=default_settings.PORT)


if __name__ == "__main__":
    main()
