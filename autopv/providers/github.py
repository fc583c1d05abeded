"""
autopv.providers.github
=======================
GitHub export: the subject's public events and, when an organisation is
given, the organisation audit log.

The audit log needs an admin:org token. Without one the export still
succeeds with an empty audit list and a warning.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from autopv.core.exceptions import ProviderError
from autopv.providers.base import BaseProvider


DEFAULT_MAX_EVENTS = 1000
DEFAULT_MAX_AUDIT  = 500
_PER_PAGE          = 100


class GitHubProvider(BaseProvider):
    """
    GitHub REST API client.

    Usage
    -----
    provider = GitHubProvider(token)
    data = provider.export("user@example.com", scope="my-org")
    data["events"], data["audit"]
    """

    name = "github"
    base_url = "https://api.github.com"

    def __init__(
        self,
        token: str,
        max_events: int = DEFAULT_MAX_EVENTS,
        max_audit: int = DEFAULT_MAX_AUDIT,
        **kwargs: Any,
    ):
        super().__init__(token, **kwargs)
        self.max_events = max_events
        self.max_audit  = max_audit

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization":        f"Bearer {self._token}",
            "Accept":               "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    # ── Export ────────────────────────────────────────────────────────────────

    def export(self, subject: str, scope: Optional[str] = None) -> Dict[str, Any]:
        """
        Export events (and audit log) for `subject`.

        `subject` is an email address (resolved through user search) or a
        GitHub login. `scope` is the organisation whose audit log to read.
        """
        username = self.find_username(subject) if "@" in subject else subject

        events = self._paginate(
            f"/users/{username}/events/public", self.max_events
        )

        audit: List[Any] = []
        if scope:
            try:
                audit = self._paginate(f"/orgs/{scope}/audit-log", self.max_audit)
            except ProviderError as exc:
                self._logger.warn(
                    "audit_log_unavailable",
                    org=scope,
                    error=exc.message,
                )

        self._logger.log(
            "export",
            provider=self.name,
            events=len(events),
            audit=len(audit),
        )
        return {"username": username, "events": events, "audit": audit}

    def find_username(self, email: str) -> str:
        """Resolve an email to a GitHub login via user search."""
        result = self._get_json("/search/users", params={"q": f"{email} in:email"})
        items = result.get("items") if isinstance(result, dict) else None
        if not items:
            raise ProviderError(
                f"No GitHub user found with email: {email}",
                details={"provider": self.name},
            )
        return items[0]["login"]

    # ── Pagination ────────────────────────────────────────────────────────────

    def _paginate(self, path: str, cap: int) -> List[Any]:
        """Follow Link rel="next" until `cap` items are collected."""
        items: List[Any] = []
        url: Optional[str] = path
        params: Optional[Dict[str, Any]] = {"per_page": _PER_PAGE}

        while url and len(items) < cap:
            response = self._get(url, params)
            page = response.json()
            if not isinstance(page, list) or not page:
                break
            items.extend(page)
            url = response.links.get("next", {}).get("url")
            # The next URL already carries the query string
            params = None

        return items[:cap]
