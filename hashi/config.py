"""Application configuration"""

from typing import List

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings


class RepoBinding(BaseModel):
    """Maps a GitHub repository + tracked user onto an Asana workspace/project."""

    workspace: str
    project: str
    # Full repository path, e.g. "acme/widgets"
    repo: str
    # Only issues assigned to this GitHub login are synced
    github_user: str

    @field_validator("repo")
    @classmethod
    def _check_repo(cls, value: str) -> str:
        owner, sep, name = value.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"repo must look like 'owner/name', got {value!r}")
        return f"{owner}/{name}"

    @property
    def owner(self) -> str:
        return self.repo.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.repo.split("/", 1)[1]

    def matches(self, owner: str, name: str, assignee: str | None) -> bool:
        return (
            self.owner.lower() == (owner or "").lower()
            and self.name.lower() == (name or "").lower()
            and assignee is not None
            and self.github_user.lower() == assignee.lower()
        )


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite:///./hashi.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 34567

    # Sync
    poll_interval_minutes: int = 10
    # Worker threads used for the population branches and the reconcile fan-out
    sync_workers: int = 8
    # JSON list, e.g.
    # BINDINGS='[{"workspace": "W", "project": "P", "repo": "acme/widgets", "github_user": "alice"}]'
    bindings: List[RepoBinding] = []

    # Asana
    asana_api_key: str = ""
    asana_base_url: str = "https://app.asana.com/api/1.0"

    # GitHub
    github_token: str = ""
    github_base_url: str = "https://api.github.com"
    # Public base URL GitHub delivers webhooks to (e.g. https://hashi.example.com)
    public_url: str = "http://localhost:34567"
    # Optional shared secret; when set, deliveries must carry a valid X-Hub-Signature-256
    github_webhook_secret: str | None = None

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When enabled, the admin API is protected by HTTP Basic auth,
    # except for /health and the GitHub webhook endpoint.
    auth_enabled: bool = False
    auth_username: str | None = None
    auth_password: str | None = None

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def webhook_url(self) -> str:
        return f"{self.public_url.rstrip('/')}/webhooks/github"


settings = Settings()
