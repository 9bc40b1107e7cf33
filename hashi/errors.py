"""Error types shared by the adapters, the mirror and the reconciler.

Transport failures (network, auth, 5xx) are left as the client libraries'
own exceptions (``httpx.HTTPError``, ``github.GithubException``). The types
here cover failures the remote reported inside an otherwise well-formed
response, and inconsistencies found in locally mirrored data.
"""

from typing import Any, Optional


class HashiError(Exception):
    """Base class for all service errors"""


class RemoteApplicationError(HashiError):
    """A remote tracker answered with an error envelope."""

    def __init__(self, message: str, payload: Optional[Any] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload
        self.status_code = status_code


class AsanaApplicationError(RemoteApplicationError):
    """Asana rejected the request (validation failure, unknown gid, ...)."""


class HookAlreadyExistsError(RemoteApplicationError):
    """GitHub refused to create a hook because an identical one exists."""


class LocalInconsistencyError(HashiError):
    """Mirrored data is missing fields the sync logic depends on."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(f"{message}: {payload!r}")
        self.payload = payload
