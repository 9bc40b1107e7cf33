"""Services"""

from hashi.services.asana_client import AsanaClient
from hashi.services.github_client import GitHubClient
from hashi.services.hook_registrar import HookRegistrar
from hashi.services.linker import IdentityLinker
from hashi.services.mirror import LocalMirror
from hashi.services.orchestrator import SyncOrchestrator
from hashi.services.reconciler import ReconcileResult, Reconciler

__all__ = [
    "AsanaClient",
    "GitHubClient",
    "HookRegistrar",
    "IdentityLinker",
    "LocalMirror",
    "Reconciler",
    "ReconcileResult",
    "SyncOrchestrator",
]
