"""Inbound GitHub webhook"""
import logging
from typing import Optional

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from hashi.api.deps import Services
from hashi.models import Issue
from hashi.security import SIGNATURE_HEADER, verify_github_signature
from hashi.services.github_client import GitHubClient
from hashi.utils import parse_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

ACCEPTED = {"status": "accepted"}
IGNORED = {"status": "ignored"}


@router.post("/github")
async def github_webhook(request: Request):
    """Receive an `issues` delivery.

    Always answers 200 so GitHub does not redeliver; anything we cannot use
    is logged and dropped.
    """
    body = await request.body()
    delivery = request.headers.get("X-GitHub-Delivery", "?")
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        logger.warning(f"Dropping delivery {delivery}: service not ready")
        return IGNORED

    if not verify_github_signature(
        services.settings.github_webhook_secret, body, request.headers.get(SIGNATURE_HEADER)
    ):
        logger.warning(f"Dropping delivery {delivery}: bad or missing signature")
        return IGNORED

    event = request.headers.get("X-GitHub-Event", "issues")
    if event == "ping":
        return ACCEPTED
    if event != "issues":
        logger.debug(f"Ignoring '{event}' delivery {delivery}")
        return IGNORED

    try:
        issue = GitHubClient.issue_from_payload(parse_json(body))
    except ValueError as e:
        logger.warning(f"Dropping malformed delivery {delivery}: {e}")
        return IGNORED

    try:
        await run_in_threadpool(services.mirror.upsert, Issue, issue)
        services.scheduler.submit_reconcile(issue)
    except Exception as e:
        logger.error(f"Failed to accept delivery {delivery} for issue #{issue['number']}: {e}")
        return IGNORED

    return ACCEPTED
