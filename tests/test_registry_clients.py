"""Tests for the fraud registry clients and their wire formats."""

import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from onguard.cache import ExternalLookupCache
from onguard.metrics import metrics
from onguard.registry import (
    CounterScamClient,
    PhishingUrlRegistry,
    PoliceFraudClient,
)


def _counter_scam_handler(calls: list, *, search=None, session_status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.method == "GET":
            return httpx.Response(
                session_status,
                headers={"Set-Cookie": "JSESSIONID=abc123; Path=/"},
                text="<html>search</html>",
            )
        if search is not None:
            return search(request)
        return httpx.Response(200, json={"totalCount": 4, "voiceCount": 3, "smsCount": 1})

    return handler


@pytest.fixture
def cache():
    return ExternalLookupCache()


class TestCounterScamClient:
    @pytest.mark.asyncio
    async def test_lookup_wire_format(self, cache):
        calls: list[httpx.Request] = []
        client = CounterScamClient(cache, transport=httpx.MockTransport(_counter_scam_handler(calls)))
        result = await client.search_phone("010-1234-5678")
        await client.close()

        assert result.ok
        assert result.value.total_count == 4
        assert result.value.voice_count == 3
        assert result.value.sms_count == 1

        session_call, search_call = calls
        assert session_call.url.path == "/phishing/searchPhone.do"
        assert search_call.method == "POST"
        assert search_call.url.path == "/phishing/searchPhoneAjax.do"
        assert json.loads(search_call.content) == {"telNum": "01012345678"}
        assert search_call.headers["X-Requested-With"] == "XMLHttpRequest"
        assert search_call.headers["Origin"] == "https://www.counterscam112.go.kr"
        assert "JSESSIONID=abc123" in search_call.headers.get("Cookie", "")

    @pytest.mark.asyncio
    async def test_cached_answer_skips_network(self, cache):
        calls: list[httpx.Request] = []
        client = CounterScamClient(cache, transport=httpx.MockTransport(_counter_scam_handler(calls)))
        await client.lookup("01012345678")
        second = await client.lookup("01012345678")
        await client.close()

        assert second.cached
        assert len(calls) == 2
        stats = metrics.snapshot()["registries"]["counter_scam"]
        assert stats["cache_hits"] == 1
        assert stats["hits"] == 2

    @pytest.mark.asyncio
    async def test_session_shared_across_lookups(self, cache):
        calls: list[httpx.Request] = []
        client = CounterScamClient(cache, transport=httpx.MockTransport(_counter_scam_handler(calls)))
        await client.lookup("01012345678")
        await client.lookup("01098765432")
        await client.close()

        assert [c.method for c in calls] == ["GET", "POST", "POST"]

    @pytest.mark.asyncio
    async def test_configurable_search_path(self, cache):
        calls: list[httpx.Request] = []
        client = CounterScamClient(
            cache,
            search_path="/api/phone/search",
            transport=httpx.MockTransport(_counter_scam_handler(calls)),
        )
        await client.lookup("01012345678")
        await client.close()
        assert calls[-1].url.path == "/api/phone/search"

    @pytest.mark.asyncio
    async def test_server_error_fails_and_drops_session(self, cache):
        calls: list[httpx.Request] = []
        handler = _counter_scam_handler(calls, search=lambda request: httpx.Response(500, text="oops"))
        client = CounterScamClient(cache, transport=httpx.MockTransport(handler))
        result = await client.lookup("01012345678")
        await client.close()

        assert not result.ok
        assert "500" in result.error
        assert cache.current_session("counter_scam") is None
        assert cache.get("counter_scam", "01012345678") is None
        assert metrics.snapshot()["registries"]["counter_scam"]["failures"] == 1

    @pytest.mark.asyncio
    async def test_timeout_fails(self, cache):
        def search(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        client = CounterScamClient(
            cache, transport=httpx.MockTransport(_counter_scam_handler([], search=search))
        )
        result = await client.lookup("01012345678")
        await client.close()

        assert not result.ok
        assert result.error == "timed out"

    @pytest.mark.asyncio
    async def test_session_page_rejected(self, cache):
        client = CounterScamClient(
            cache, transport=httpx.MockTransport(_counter_scam_handler([], session_status=403))
        )
        result = await client.lookup("01012345678")
        await client.close()

        assert not result.ok
        assert "session" in result.error

    @pytest.mark.asyncio
    async def test_malformed_body(self, cache):
        handler = _counter_scam_handler([], search=lambda request: httpx.Response(200, text="<html>"))
        client = CounterScamClient(cache, transport=httpx.MockTransport(handler))
        result = await client.lookup("01012345678")
        await client.close()

        assert not result.ok
        assert "invalid JSON" in result.error

    @pytest.mark.asyncio
    async def test_unexpected_transport_error_is_a_failure(self, cache):
        def search(request):
            raise RuntimeError("Event loop is closed")

        client = CounterScamClient(
            cache, transport=httpx.MockTransport(_counter_scam_handler([], search=search))
        )
        result = await client.lookup("01012345678")
        await client.close()

        assert not result.ok
        assert result.error == "unexpected error: RuntimeError"
        assert cache.current_session("counter_scam") is None
        assert metrics.snapshot()["registries"]["counter_scam"]["failures"] == 1

    @pytest.mark.asyncio
    async def test_zero_counts(self, cache):
        handler = _counter_scam_handler([], search=lambda request: httpx.Response(200, json={"totalCount": 0}))
        client = CounterScamClient(cache, transport=httpx.MockTransport(handler))
        result = await client.lookup("01012345678")
        await client.close()

        assert result.ok
        assert not result.value.has_reports


def _police_handler(calls: list, payload):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.method == "GET":
            return httpx.Response(200, headers={"Set-Cookie": "WMONID=xyz; Path=/"})
        return httpx.Response(200, json=payload)

    return handler


class TestPoliceFraudClient:
    @pytest.mark.asyncio
    async def test_lookup_wire_format(self, cache):
        calls: list[httpx.Request] = []
        payload = {"result": True, "value": [{"result": "OK", "count": "4"}], "message": ""}
        client = PoliceFraudClient(cache, transport=httpx.MockTransport(_police_handler(calls, payload)))
        result = await client.search_account("110-123-456789")
        await client.close()

        assert result.ok
        assert result.value.fraud_count == 4
        search_call = calls[-1]
        assert search_call.url.path == "/user/cyber/fraud.do"
        form = parse_qs(search_call.content.decode())
        assert form == {"key": ["P"], "no": ["110123456789"], "ftype": ["A"]}

    @pytest.mark.asyncio
    async def test_empty_value_is_clean(self, cache):
        payload = {"result": True, "value": []}
        client = PoliceFraudClient(cache, transport=httpx.MockTransport(_police_handler([], payload)))
        result = await client.lookup("110123456789")
        await client.close()

        assert result.ok
        assert result.value.fraud_count == 0

    @pytest.mark.asyncio
    async def test_rejected_query_fails(self, cache):
        payload = {"result": False, "value": [], "message": "invalid request"}
        client = PoliceFraudClient(cache, transport=httpx.MockTransport(_police_handler([], payload)))
        result = await client.lookup("110123456789")
        await client.close()

        assert not result.ok
        assert "invalid request" in result.error


class _FakeResponse:
    def __init__(self, status: int, payload):
        self.status = status
        self._payload = payload

    async def json(self):
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakeSession:
    def __init__(self, *, status: int = 200, payload=None, error: Exception | None = None):
        self._status = status
        self._payload = payload
        self._error = error
        self.post_calls: list[tuple[str, dict]] = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.post_calls.append((url, json or {}))
        if self._error:
            raise self._error
        return _FakeResponse(self._status, self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _patch_session(monkeypatch, session: _FakeSession) -> dict:
    created = {"count": 0}

    def fake_client_session(*args, **kwargs):
        created["count"] += 1
        return session

    import aiohttp

    monkeypatch.setattr(aiohttp, "ClientSession", fake_client_session)
    return created


class TestPhishingUrlRegistry:
    @pytest.mark.asyncio
    async def test_remote_verdict_cached(self, monkeypatch, cache):
        session = _FakeSession(payload={"phishing": True})
        created = _patch_session(monkeypatch, session)
        registry = PhishingUrlRegistry(cache, endpoint="https://urldb.test/check")

        first = await registry.is_phishing_url("https://evil.example/login")
        second = await registry.is_phishing_url("https://evil.example/login/")

        assert first.ok and first.value is True
        assert second.cached and second.value is True
        assert created["count"] == 1
        assert session.post_calls == [("https://urldb.test/check", {"url": "https://evil.example/login"})]

    @pytest.mark.asyncio
    async def test_boolean_payload(self, monkeypatch, cache):
        _patch_session(monkeypatch, _FakeSession(payload=False))
        registry = PhishingUrlRegistry(cache, endpoint="https://urldb.test/check")
        result = await registry.is_phishing_url("https://example.com")
        assert result.ok and result.value is False

    @pytest.mark.asyncio
    async def test_blocklist_needs_no_network(self, monkeypatch, cache):
        created = _patch_session(monkeypatch, _FakeSession(payload=False))
        registry = PhishingUrlRegistry(cache, blocklist=["scam-bank.tk"], endpoint="https://urldb.test/check")

        result = await registry.is_phishing_url("https://secure.scam-bank.tk/verify")
        assert result.value is True
        assert created["count"] == 0

    @pytest.mark.asyncio
    async def test_without_endpoint_everything_is_unknown_clean(self, cache):
        registry = PhishingUrlRegistry(cache)
        result = await registry.is_phishing_url("https://example.com")
        assert result.ok and result.value is False

    @pytest.mark.asyncio
    async def test_error_status_fails(self, monkeypatch, cache):
        _patch_session(monkeypatch, _FakeSession(status=502, payload={}))
        registry = PhishingUrlRegistry(cache, endpoint="https://urldb.test/check")
        result = await registry.is_phishing_url("https://example.com")
        assert not result.ok
        assert cache.get("phishing_url", "example.com") is None

    @pytest.mark.asyncio
    async def test_malformed_payload_fails(self, monkeypatch, cache):
        _patch_session(monkeypatch, _FakeSession(payload={"status": "unknown"}))
        registry = PhishingUrlRegistry(cache, endpoint="https://urldb.test/check")
        result = await registry.is_phishing_url("https://example.com")
        assert not result.ok

    @pytest.mark.asyncio
    async def test_timeout_fails(self, monkeypatch, cache):
        _patch_session(monkeypatch, _FakeSession(error=asyncio.TimeoutError()))
        registry = PhishingUrlRegistry(cache, endpoint="https://urldb.test/check")
        result = await registry.is_phishing_url("https://example.com")
        assert not result.ok
        assert result.error == "timed out"
        assert metrics.snapshot()["registries"]["phishing_url"]["failures"] == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_a_failure(self, monkeypatch, cache):
        _patch_session(monkeypatch, _FakeSession(error=RuntimeError("session closed")))
        registry = PhishingUrlRegistry(cache, endpoint="https://urldb.test/check")
        result = await registry.is_phishing_url("https://example.com")
        assert not result.ok
        assert result.error == "unexpected error: RuntimeError"
