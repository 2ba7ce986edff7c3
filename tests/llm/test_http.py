# test_http.py
# 适配器共用 HTTP 重试测试 / Shared adapter HTTP retry tests

import httpx
import pytest

from magi.llm.http import is_retryable_status, post_json

_REAL_ASYNC_CLIENT = httpx.AsyncClient


def _mock_client(monkeypatch, handler):
    transport = httpx.MockTransport(handler)
    monkeypatch.setattr(
        httpx, "AsyncClient",
        lambda **kwargs: _REAL_ASYNC_CLIENT(transport=transport, **kwargs),
    )


class TestRetryableStatus:
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 529])
    def test_retryable(self, status):
        assert is_retryable_status(status)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_not_retryable(self, status):
        assert not is_retryable_status(status)


class TestPostJson:
    @pytest.mark.asyncio
    async def test_returns_parsed_body(self, monkeypatch):
        _mock_client(monkeypatch, lambda request: httpx.Response(200, json={"ok": True}))
        data = await post_json(
            "https://x/v1", {}, {"q": 1},
            api_name="Test API", model="m", timeout=5.0, max_retries=0,
        )
        assert data == {"ok": True}

    @pytest.mark.asyncio
    async def test_error_names_api_and_model(self, monkeypatch):
        _mock_client(monkeypatch, lambda request: httpx.Response(400, text="bad"))
        with pytest.raises(RuntimeError, match=r"Test API \(grok-3-fast\)"):
            await post_json(
                "https://x/v1", {}, {},
                api_name="Test API", model="grok-3-fast", timeout=5.0, max_retries=2,
            )
