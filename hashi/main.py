"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from hashi.api import sync, webhooks
from hashi.api.deps import Services
from hashi.config import Settings, settings
from hashi.models.base import SessionLocal, init_db
from hashi.scheduler import SyncScheduler
from hashi.security import BasicAuthMiddleware
from hashi.services import (
    AsanaClient,
    GitHubClient,
    HookRegistrar,
    LocalMirror,
    Reconciler,
    SyncOrchestrator,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(config: Settings, session_factory=SessionLocal) -> Services:
    """Construct every client and component once, wired explicitly"""
    mirror = LocalMirror(session_factory)
    asana = AsanaClient(config.asana_api_key, base_url=config.asana_base_url)
    github = GitHubClient(config.github_token, base_url=config.github_base_url)
    reconciler = Reconciler(asana, mirror)
    registrar = HookRegistrar(
        github, mirror, config.webhook_url, secret=config.github_webhook_secret
    )
    orchestrator = SyncOrchestrator(
        config.bindings,
        asana,
        github,
        mirror,
        reconciler,
        registrar,
        max_workers=config.sync_workers,
    )
    scheduler = SyncScheduler(orchestrator, interval_minutes=config.poll_interval_minutes)
    return Services(
        settings=config,
        mirror=mirror,
        asana=asana,
        github=github,
        reconciler=reconciler,
        registrar=registrar,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )


def create_app(services: Optional[Services] = None, config: Settings = settings) -> FastAPI:
    """Build the application; pass ``services`` to skip wiring real clients"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        # Startup
        logger.info("Starting Hashi sync service")
        init_db()
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(config)
        if not config.bindings:
            logger.warning("No repository bindings configured; nothing will be synced")
        app.state.services.scheduler.start()
        yield
        # Shutdown
        logger.info("Stopping Hashi sync service")
        app.state.services.scheduler.stop()
        app.state.services.asana.close()
        app.state.services.github.close()

    app = FastAPI(
        title="Hashi",
        description="Keep GitHub issues and Asana tasks in sync",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # Optional built-in auth (recommended if exposed beyond localhost/private networks)
    if config.auth_enabled:
        if not config.auth_username or not config.auth_password:
            raise RuntimeError("AUTH_ENABLED=true requires AUTH_USERNAME and AUTH_PASSWORD to be set")
        app.add_middleware(
            BasicAuthMiddleware,
            username=config.auth_username,
            password=config.auth_password,
            allow_paths={"/health", "/webhooks/github"},
        )

    # Include API routers
    app.include_router(sync.router)
    app.include_router(webhooks.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "Hashi"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hashi.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
