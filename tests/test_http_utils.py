"""
Tests for HTTP utilities in utils/http.py

Tests RetryStrategy and SessionManager without requiring actual network
calls; ``get_json`` runs against a stub session.
"""
import sys
from pathlib import Path

import pytest
import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.http import RetryStrategy, SessionManager  # noqa: E402


# ── RetryStrategy tests ──────────────────────────────────────────────────────

class TestRetryStrategy:
    def test_defaults(self):
        rs = RetryStrategy()
        assert rs.max_retries == 2
        assert rs.backoff_factor == 0.3
        assert 429 in rs.status_forcelist
        assert 503 in rs.status_forcelist

    def test_custom_params(self):
        rs = RetryStrategy(max_retries=5, backoff_factor=1.0, status_forcelist=[502])
        assert rs.max_retries == 5
        assert rs.status_forcelist == [502]

    def test_get_retry_object(self):
        retry = RetryStrategy(max_retries=4, backoff_factor=0.5).get_retry_object()
        assert retry.total == 4
        assert retry.backoff_factor == 0.5
        assert retry.raise_on_status is False

    def test_only_idempotent_methods(self):
        allowed = RetryStrategy().get_retry_object().allowed_methods
        assert "GET" in allowed
        assert "HEAD" in allowed
        assert "POST" not in allowed


# ── SessionManager tests ─────────────────────────────────────────────────────

class StubResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


class StubSession:
    def __init__(self, response):
        self.response = response
        self.calls = []
        self.closed = False

    def get(self, url, timeout=None, headers=None):
        self.calls.append((url, timeout, headers))
        return self.response

    def close(self):
        self.closed = True


class TestSessionManager:
    def test_session_cached(self):
        sm = SessionManager()
        assert sm.session is sm.session
        sm.close()

    def test_adapters_mounted(self):
        sm = SessionManager(pool_maxsize=3)
        adapter = sm.session.get_adapter("https://journal.test/")
        assert adapter.max_retries.total == 2
        sm.close()

    def test_close_resets_session(self):
        sm = SessionManager()
        first = sm.session
        sm.close()
        assert sm.session is not first
        sm.close()

    def test_context_manager(self):
        with SessionManager() as sm:
            sm.session
        assert sm._session is None

    def test_get_json(self):
        sm = SessionManager(timeout=2.5)
        stub = StubSession(StubResponse(payload={"items": []}))
        sm._session = stub
        assert sm.get_json("http://journal.test/api/v1/trades") == {"items": []}
        url, timeout, headers = stub.calls[0]
        assert timeout == 2.5
        assert headers == {"Accept": "application/json"}

    def test_get_json_http_error(self):
        sm = SessionManager()
        sm._session = StubSession(StubResponse(status_code=404))
        with pytest.raises(requests.HTTPError):
            sm.get_json("http://journal.test/missing")

    def test_get_json_not_json(self):
        sm = SessionManager()
        sm._session = StubSession(StubResponse(payload=None))
        with pytest.raises(ValueError):
            sm.get_json("http://journal.test/")
