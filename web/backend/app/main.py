"""FastAPI application for the aiMate chat backend.

Provides REST API endpoints wrapping the aimate package for:
- Chat turns through the plugin pipeline
- Plugin metadata, UI descriptors and tool execution
- Crisis resources and the safety audit trail
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aimate import __version__
from aimate.chat.service import ChatService
from aimate.config import AimateConfig, load_config
from aimate.llm.client import CompletionBackend, LiteLLMClient
from aimate.logging_config import setup_logging
from aimate.plugins.builtin import default_plugin_factories
from aimate.plugins.manager import PluginManager
from aimate.safety.audit_log import SafetyAuditLog
from web.backend.app.routers import chat, plugins, safety
from web.backend.app.runtime import Runtime

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AimateConfig] = None,
    backend: Optional[CompletionBackend] = None,
    audit_log: Optional[SafetyAuditLog] = None,
) -> FastAPI:
    """Build the application.

    Configuration is loaded at startup when *config* is None.  Tests pass a
    fake *backend*; otherwise a :class:`LiteLLMClient` is created from the
    config and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or load_config()
        if config is None:
            setup_logging(cfg.logging.level, cfg.logging.json_format)
        audit = audit_log or SafetyAuditLog(
            Path(cfg.safety.audit_dir) if cfg.safety.audit_dir else None
        )
        client = backend or LiteLLMClient(cfg.litellm)
        manager = PluginManager()
        await manager.load_plugins(
            default_plugin_factories(cfg, audit_log=audit, backend=client)
        )
        app.state.runtime = Runtime(
            config=cfg,
            plugins=manager,
            chat=ChatService(client, manager, cfg.chat),
            audit_log=audit,
            backend=client,
        )
        logger.info("aiMate backend ready with %d plugins", len(manager.list_plugins()))
        try:
            yield
        finally:
            await manager.shutdown()
            if backend is None:
                await client.aclose()

    app = FastAPI(
        title="aiMate API",
        description=(
            "REST API for the aiMate chat core. "
            "Runs chat turns through the safety-first plugin pipeline and "
            "exposes plugin UI descriptors, tools and crisis resources."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # ---------------------------------------------------------------------------
    # CORS middleware (allow all origins for development)
    # ---------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat.router)
    app.include_router(plugins.router)
    app.include_router(safety.router)

    @app.get("/", tags=["meta"])
    async def root():
        """Return basic API information."""
        return {
            "name": "aiMate API",
            "version": __version__,
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    @app.get("/health", tags=["meta"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
