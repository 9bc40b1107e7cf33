"""Keeps an `issues` web hook registered on every watched repository"""

import logging
from typing import Optional

from hashi.config import RepoBinding
from hashi.errors import HookAlreadyExistsError
from hashi.models import Hook
from hashi.services.github_client import GitHubClient
from hashi.services.mirror import LocalMirror

logger = logging.getLogger(__name__)


class HookRegistrar:
    """Creates missing hooks; never deletes any."""

    EVENTS = ["issues"]

    def __init__(
        self,
        github: GitHubClient,
        mirror: LocalMirror,
        callback_url: str,
        secret: Optional[str] = None,
    ):
        self.github = github
        self.mirror = mirror
        self.callback_url = callback_url
        self.secret = secret

    def ensure_hook(self, binding: RepoBinding) -> bool:
        """Make sure ``binding.repo`` has a hook; returns False on failure."""
        owner, name = binding.owner, binding.name
        if self.mirror.find(Hook, repo_owner=owner, repo_name=name):
            return True

        try:
            hook = self.github.create_webhook(
                owner, name, self.EVENTS, self.callback_url, secret=self.secret
            )
        except HookAlreadyExistsError:
            logger.info(f"Hook already exists on {binding.repo}")
            self._adopt_existing(owner, name)
            return True
        except Exception as e:
            logger.error(f"Failed to create hook on {binding.repo}: {e}")
            return False

        self.mirror.upsert(Hook, hook)
        return True

    def _adopt_existing(self, owner: str, name: str) -> None:
        """Mirror the remote hook pointing at us so later passes skip the create."""
        try:
            for hook in self.github.list_webhooks(owner, name):
                if hook.get("url") == self.callback_url:
                    self.mirror.upsert(Hook, hook)
                    return
        except Exception as e:
            logger.warning(f"Could not list hooks on {owner}/{name}: {e}")
