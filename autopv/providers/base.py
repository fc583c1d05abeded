"""
autopv.providers.base
=====================
Base class for provider export clients.

A provider exports everything it holds about one data subject as a plain
hierarchical value (dicts, lists, scalars). Transport details are shared
here: one requests.Session per provider, JSON GETs with a timeout, and
status-code mapping onto the autopv exception hierarchy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from autopv.core.exceptions import CredentialError, ProviderError
from autopv.core.logger import StructuredLogger
from autopv.core.retry import RetryPolicy


DEFAULT_TIMEOUT = 30.0


class BaseProvider(ABC):
    """
    Base class for provider clients.

    Subclasses set `name` and `base_url`, implement export(), and build
    their auth headers in _auth_headers().

    Parameters
    ----------
    token : str
        Provider credential. Empty or missing raises CredentialError.
    session : requests.Session or None
        Injected for tests; a new Session otherwise.
    retry : RetryPolicy or None
        Wraps each HTTP call. CredentialError is never retried.
    timeout : float
        Per-request timeout in seconds.
    """

    name: str = "provider"
    base_url: str = ""

    def __init__(
        self,
        token: str,
        session: Optional[requests.Session] = None,
        retry: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: Optional[StructuredLogger] = None,
    ):
        if not token:
            raise CredentialError(
                f"No credential configured for provider {self.name!r}",
                details={"provider": self.name},
            )
        self._token   = token
        self._session = session or requests.Session()
        self._logger  = logger or StructuredLogger(name=self.name)
        self._retry   = retry or RetryPolicy(
            retry_on=(ProviderError,), give_up_on=(CredentialError,), logger=self._logger,
        )
        self.timeout  = timeout

    @abstractmethod
    def export(self, subject: str, scope: Optional[str] = None) -> Dict[str, Any]:
        """Return everything this provider holds for `subject`."""

    @abstractmethod
    def _auth_headers(self) -> Dict[str, str]:
        ...

    # ── HTTP ──────────────────────────────────────────────────────────────────

    def _get(self, path_or_url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """GET with retries; returns the successful response."""
        return self._retry.call(self._get_once, path_or_url, params)

    def _get_once(self, path_or_url: str, params: Optional[Dict[str, Any]]) -> requests.Response:
        url = path_or_url if path_or_url.startswith("http") else f"{self.base_url}{path_or_url}"
        try:
            response = self._session.get(
                url,
                params=params,
                headers=self._auth_headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(
                f"{self.name} request failed: {exc}",
                details={"provider": self.name, "url": url},
            ) from exc

        if response.status_code in (401, 403):
            raise CredentialError(
                f"{self.name} rejected the credential (HTTP {response.status_code})",
                details={"provider": self.name, "url": url, "status": response.status_code},
            )
        if response.status_code >= 400:
            raise ProviderError(
                f"{self.name} API error (HTTP {response.status_code}): {_error_text(response)}",
                details={"provider": self.name, "url": url, "status": response.status_code},
            )
        return response

    def _get_json(self, path_or_url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._get(path_or_url, params)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                f"{self.name} returned a non-JSON body",
                details={"provider": self.name, "url": path_or_url},
            ) from exc

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.base_url!r})"


def _error_text(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "")[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("message", err))
        return str(body.get("message", err or body))
    return str(body)[:200]
