"""API routes"""

from hashi.api import sync, webhooks

__all__ = ["sync", "webhooks"]
