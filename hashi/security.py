"""Security-related helpers.

Optional HTTP Basic auth for the admin API, and verification of GitHub's
webhook signatures.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

SIGNATURE_HEADER = "X-Hub-Signature-256"


@dataclass(frozen=True)
class BasicAuthCredentials:
    username: str
    password: str


def _parse_basic_auth_header(header_value: str) -> BasicAuthCredentials | None:
    """Parse an Authorization header containing HTTP Basic auth."""
    if not header_value:
        return None

    scheme, _, param = header_value.partition(" ")
    if scheme.lower() != "basic" or not param:
        return None

    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if sep != ":":
        return None

    return BasicAuthCredentials(username=username, password=password)


def sign_payload(secret: str, body: bytes) -> str:
    """Signature GitHub would send for ``body``: "sha256=<hex digest>"."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_github_signature(secret: str | None, body: bytes, header_value: str | None) -> bool:
    """Check X-Hub-Signature-256 against ``body``.

    Without a configured secret every delivery is accepted.
    """
    if not secret:
        return True
    if not header_value:
        return False
    return secrets.compare_digest(sign_payload(secret, body), header_value.strip())


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Protect routes via HTTP Basic auth.

    Paths in the allowlist (health check, GitHub webhook) stay open; GitHub
    cannot send Basic credentials and authenticates through the signature.
    """

    def __init__(
        self,
        app,
        *,
        username: str,
        password: str,
        allow_paths: set[str] | None = None,
        realm: str = "Hashi",
    ):
        super().__init__(app)
        self._username = username
        self._password = password
        self._allow_paths = allow_paths or {"/health", "/webhooks/github"}
        self._realm = realm

    def _unauthorized(self) -> Response:
        return Response(
            content="Unauthorized",
            status_code=401,
            headers={"WWW-Authenticate": f'Basic realm="{self._realm}", charset="UTF-8"'},
        )

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self._allow_paths:
            return await call_next(request)

        creds = _parse_basic_auth_header(request.headers.get("Authorization", ""))
        if creds is None:
            return self._unauthorized()

        ok_user = secrets.compare_digest(creds.username, self._username)
        ok_pass = secrets.compare_digest(creds.password, self._password)
        if not (ok_user and ok_pass):
            return self._unauthorized()

        return await call_next(request)
