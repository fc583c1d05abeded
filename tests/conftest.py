"""
Shared fakes and fixtures for the autopv test suite.
Run with: python -m pytest tests/ -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
from typing import Any, Dict, List, Optional

import pytest

from autopv.classification.reasoning import BaseReasoningService
from autopv.core.logger import StructuredLogger
from autopv.core.retry import RetryPolicy
from autopv.providers.base import BaseProvider


# ── HTTP fakes ────────────────────────────────────────────────────────────────

class FakeResponse:
    """Just enough of requests.Response for the provider clients."""

    def __init__(self, payload: Any = None, status_code: int = 200,
                 links: Optional[Dict[str, Dict[str, str]]] = None, text: str = ""):
        self._payload    = payload
        self.status_code = status_code
        self.links       = links or {}
        self.text        = text or (json.dumps(payload) if payload is not None else "")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """
    Routes GETs by path suffix. Each route is a list of responses served in
    order (the last one repeats). Every call is recorded.
    """

    def __init__(self, routes: Dict[str, List[FakeResponse]]):
        self.routes = {k: list(v) for k, v in routes.items()}
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({
            "url": url,
            "params": dict(params) if params else None,
            "headers": headers,
            "timeout": timeout,
        })
        path = url.split("?", 1)[0]
        for suffix in sorted(self.routes, key=len, reverse=True):
            if path.endswith(suffix):
                queue = self.routes[suffix]
                return queue.pop(0) if len(queue) > 1 else queue[0]
        return FakeResponse({"message": "Not Found"}, status_code=404)


# ── Reasoning fake ────────────────────────────────────────────────────────────

class FakeReasoningService(BaseReasoningService):
    """Returns canned text (or raises) and records every request."""

    name = "fake"

    def __init__(self, response: Any = "[]", error: Optional[BaseException] = None):
        self.response = response
        self.error    = error
        self.requests = []

    def complete(self, request) -> str:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if callable(self.response):
            return self.response(request)
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


# ── Provider fake ─────────────────────────────────────────────────────────────

class FakeProvider(BaseProvider):
    name = "fake"

    def __init__(self, token: str, data: Dict[str, Any], error: Optional[BaseException] = None):
        super().__init__(token, session=FakeSession({}))
        self.data  = data
        self.error = error
        self.calls = []

    def _auth_headers(self):
        return {}

    def export(self, subject, scope=None):
        self.calls.append((subject, scope))
        if self.error is not None:
            raise self.error
        return self.data


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def logger():
    return StructuredLogger(name="test")


@pytest.fixture
def no_sleep_retry():
    return RetryPolicy(max_attempts=3, backoff_seconds=0.0, sleep=lambda s: None)


@pytest.fixture
def github_data():
    return {
        "username": "octocat",
        "events": [
            {"type": "PushEvent", "actor": {"login": "octocat", "email": "octo@example.com"},
             "payload": {"note": "call 555-123-4567"}},
            {"type": "IssuesEvent", "actor": {"login": "octocat", "email": "octo@example.com"},
             "payload": {"note": "token ghp_" + "a" * 36}},
        ],
        "audit": [],
    }


@pytest.fixture
def stripe_data():
    return {
        "customers": [{"id": "cus_123", "email": "user@example.com", "phone": "+447911123456"}],
        "charges": [{"id": "ch_1", "amount": 1999, "status": "succeeded", "currency": "usd"}],
        "methods": [{"id": "pm_1", "card": {"last4": "4242"}}],
    }
