"""GitHub API client wrapper"""
import logging
from typing import Any, Dict, List, Optional

from github import Auth, Github, GithubException

from hashi.errors import HookAlreadyExistsError
from hashi.utils import parse_datetime

logger = logging.getLogger(__name__)


def _json_object(value: Any, what: str) -> Dict[str, Any]:
    """A nested webhook object, or {} when absent. Anything else is malformed."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{what} is not a JSON object")
    return value


def _error_messages(data: Any) -> str:
    """Flatten GitHub's validation error payload into one string."""
    if not isinstance(data, dict):
        return str(data or "")
    parts = [str(data.get("message") or "")]
    for err in data.get("errors") or []:
        if isinstance(err, dict):
            parts.append(str(err.get("message") or err.get("code") or ""))
        else:
            parts.append(str(err))
    return "; ".join(p for p in parts if p)


class GitHubClient:
    """Wrapper for GitHub API operations.

    PyGithub's paginated lists hide the page walking; this class turns
    its resource objects into plain issue/hook records.
    """

    def __init__(self, token: str, base_url: str = "https://api.github.com", gh: Optional[Github] = None):
        """Initialize GitHub client"""
        self.base_url = base_url
        self.gh = gh or Github(auth=Auth.Token(token), base_url=base_url, per_page=100)

    def close(self) -> None:
        self.gh.close()

    def get_repo(self, owner: str, name: str):
        """Get repository by owner/name"""
        try:
            return self.gh.get_repo(f"{owner}/{name}")
        except GithubException as e:
            logger.error(f"Failed to get repository {owner}/{name}: {e}")
            raise

    @staticmethod
    def issue_record(issue: Any, owner: str, name: str) -> Dict[str, Any]:
        assignee = getattr(issue, "assignee", None)
        return {
            "id": issue.id,
            "number": issue.number,
            "title": issue.title or "",
            "body": issue.body or "",
            "state": issue.state,
            "assignee_login": getattr(assignee, "login", None),
            "assignee_id": getattr(assignee, "id", None),
            "repo_owner": owner,
            "repo_name": name,
            "url": issue.html_url,
            "closed_at": parse_datetime(issue.closed_at),
            "created_at": parse_datetime(issue.created_at),
            "updated_at": parse_datetime(issue.updated_at),
        }

    @staticmethod
    def issue_from_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Build an issue record from a webhook delivery body.

        Raises ``ValueError`` when the body does not describe an issue.
        """
        if not isinstance(payload, dict):
            raise ValueError("payload is not a JSON object")
        issue = payload.get("issue")
        if not isinstance(issue, dict) or issue.get("id") is None or issue.get("number") is None:
            raise ValueError("payload has no issue")

        repository = _json_object(payload.get("repository"), "repository")
        owner = _json_object(repository.get("owner"), "repository.owner").get("login")
        name = repository.get("name")
        if not (owner and name):
            # ".../repos/<owner>/<name>"
            parts = str(issue.get("repository_url") or "").rstrip("/").split("/")
            if len(parts) >= 2 and parts[-2] and parts[-1]:
                owner, name = parts[-2], parts[-1]
        if not (owner and name):
            raise ValueError("payload has no repository")

        assignee = _json_object(issue.get("assignee"), "issue.assignee")
        try:
            issue_id, number = int(issue["id"]), int(issue["number"])
        except (TypeError, ValueError):
            raise ValueError("issue id/number are not integers")
        return {
            "id": issue_id,
            "number": number,
            "title": issue.get("title") or "",
            "body": issue.get("body") or "",
            "state": issue.get("state") or "open",
            "assignee_login": assignee.get("login"),
            "assignee_id": assignee.get("id"),
            "repo_owner": owner,
            "repo_name": name,
            "url": issue.get("html_url") or issue.get("url"),
            "closed_at": parse_datetime(issue.get("closed_at")),
            "created_at": parse_datetime(issue.get("created_at")),
            "updated_at": parse_datetime(issue.get("updated_at")),
        }

    @staticmethod
    def hook_record(hook: Any, owner: str, name: str) -> Dict[str, Any]:
        config = getattr(hook, "config", None) or {}
        return {
            "id": hook.id,
            "repo_owner": owner,
            "repo_name": name,
            "url": config.get("url"),
            "created_at": parse_datetime(getattr(hook, "created_at", None)),
        }

    def list_issues(self, owner: str, name: str, assignee: str, state: str = "all") -> List[Dict[str, Any]]:
        """Get all issues in a repository assigned to ``assignee``"""
        try:
            repo = self.get_repo(owner, name)
            # The issues endpoint also returns pull requests; those are not synced.
            return [
                self.issue_record(issue, owner, name)
                for issue in repo.get_issues(state=state, assignee=assignee)
                if getattr(issue, "pull_request", None) is None
            ]
        except Exception as e:
            logger.error(f"Failed to list issues for {owner}/{name}: {e}")
            raise

    def list_comments(self, issue: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Get all comments on an issue"""
        owner, name = issue["repo_owner"], issue["repo_name"]
        try:
            gh_issue = self.get_repo(owner, name).get_issue(number=issue["number"])
            return [
                {
                    "id": c.id,
                    "issue_id": issue["id"],
                    "body": c.body,
                    "user_login": getattr(c.user, "login", None),
                    "url": c.html_url,
                    "created_at": parse_datetime(c.created_at),
                    "updated_at": parse_datetime(c.updated_at),
                }
                for c in gh_issue.get_comments()
            ]
        except Exception as e:
            logger.error(f"Failed to list comments for {owner}/{name}#{issue['number']}: {e}")
            raise

    def create_webhook(
        self,
        owner: str,
        name: str,
        events: List[str],
        url: str,
        secret: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a web hook; raises HookAlreadyExistsError for duplicates"""
        config = {"url": url, "content_type": "json"}
        if secret:
            config["secret"] = secret
        repo = self.get_repo(owner, name)
        try:
            hook = repo.create_hook("web", config, events=events, active=True)
        except GithubException as e:
            message = _error_messages(e.data)
            if e.status == 422 and "already exists" in message.lower():
                raise HookAlreadyExistsError(message, payload=e.data, status_code=e.status) from e
            logger.error(f"Failed to create hook for {owner}/{name}: {e}")
            raise
        logger.info(f"Created hook {hook.id} on {owner}/{name} -> {url}")
        return self.hook_record(hook, owner, name)

    def list_webhooks(self, owner: str, name: str) -> List[Dict[str, Any]]:
        """Get all hooks of a repository"""
        try:
            return [self.hook_record(h, owner, name) for h in self.get_repo(owner, name).get_hooks()]
        except Exception as e:
            logger.error(f"Failed to list hooks for {owner}/{name}: {e}")
            raise

    def delete_webhook(self, owner: str, name: str, hook_id: int) -> None:
        """Delete a hook"""
        try:
            self.get_repo(owner, name).get_hook(hook_id).delete()
            logger.info(f"Deleted hook {hook_id} on {owner}/{name}")
        except Exception as e:
            logger.error(f"Failed to delete hook {hook_id} on {owner}/{name}: {e}")
            raise
