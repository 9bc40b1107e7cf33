"""Request-scoped access to the wired services"""

from dataclasses import dataclass

from fastapi import HTTPException, Request

from hashi.config import Settings
from hashi.scheduler import SyncScheduler
from hashi.services import (
    AsanaClient,
    GitHubClient,
    HookRegistrar,
    LocalMirror,
    Reconciler,
    SyncOrchestrator,
)


@dataclass(frozen=True)
class Services:
    """Everything the routes and the scheduler share, built once at startup"""

    settings: Settings
    mirror: LocalMirror
    asana: AsanaClient
    github: GitHubClient
    reconciler: Reconciler
    registrar: HookRegistrar
    orchestrator: SyncOrchestrator
    scheduler: SyncScheduler


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return services
