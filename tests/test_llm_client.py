from __future__ import annotations

import pytest
import requests

import daily_news_ranker.processing.llm_client as llm_client
from daily_news_ranker.errors import ConfigurationError, OracleTimeout, OracleTransportError
from daily_news_ranker.processing.llm_client import OracleClient, OracleSettings
from daily_news_ranker.processing.retry import RetryPolicy

_MESSAGES = [{"role": "system", "content": "sys"}, {"role": "user", "content": "rank these"}]


class _Response:
    def __init__(self, status_code: int = 200, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _chat(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _build_client(*, max_attempts: int = 2, **settings) -> OracleClient:
    params = {"api_url": "http://oracle.test/v1/chat/completions", "model": "", "api_key": "", "timeout_sec": 5.0}
    params.update(settings)
    return OracleClient(
        OracleSettings(**params),
        retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=0.0),
    )


def test_judge_returns_raw_text_and_sends_payload(monkeypatch) -> None:
    captured: dict = {}

    def _post(url, headers=None, json=None, timeout=None):
        captured.update(url=url, headers=headers, json=json, timeout=timeout)
        return _Response(payload=_chat("  3,1,2\n"))

    monkeypatch.setattr(llm_client.requests, "post", _post)
    client = _build_client(model="local-model", api_key="secret")

    text = client.judge(_MESSAGES, temperature=0.3, timeout=42.0)

    assert text == "  3,1,2\n"
    assert captured["url"] == "http://oracle.test/v1/chat/completions"
    assert captured["timeout"] == 42.0
    assert captured["headers"]["Authorization"] == "Bearer secret"
    assert captured["json"]["model"] == "local-model"
    assert captured["json"]["temperature"] == 0.3
    assert captured["json"]["messages"] == _MESSAGES
    assert captured["json"]["stream"] is False


def test_default_timeout_and_no_auth_header(monkeypatch) -> None:
    captured: dict = {}

    def _post(url, headers=None, json=None, timeout=None):
        captured.update(headers=headers, json=json, timeout=timeout)
        return _Response(payload=_chat("ok"))

    monkeypatch.setattr(llm_client.requests, "post", _post)

    assert _build_client().judge(_MESSAGES) == "ok"
    assert captured["timeout"] == 5.0
    assert "Authorization" not in captured["headers"]
    assert "model" not in captured["json"]


def test_retryable_status_is_retried(monkeypatch) -> None:
    responses = [_Response(503, text="overloaded"), _Response(payload=_chat("1,2"))]
    calls = {"n": 0}

    def _post(url, headers=None, json=None, timeout=None):
        calls["n"] += 1
        return responses.pop(0)

    monkeypatch.setattr(llm_client.requests, "post", _post)

    assert _build_client(max_attempts=2).judge(_MESSAGES) == "1,2"
    assert calls["n"] == 2


def test_client_error_is_not_retried(monkeypatch) -> None:
    calls = {"n": 0}

    def _post(url, headers=None, json=None, timeout=None):
        calls["n"] += 1
        return _Response(400, text="bad request")

    monkeypatch.setattr(llm_client.requests, "post", _post)

    with pytest.raises(OracleTransportError) as excinfo:
        _build_client(max_attempts=3).judge(_MESSAGES)

    assert excinfo.value.status == 400
    assert not excinfo.value.retryable
    assert calls["n"] == 1


def test_timeout_raises_after_budget(monkeypatch) -> None:
    calls = {"n": 0}

    def _post(url, headers=None, json=None, timeout=None):
        calls["n"] += 1
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(llm_client.requests, "post", _post)

    with pytest.raises(OracleTimeout):
        _build_client(max_attempts=2).judge(_MESSAGES)
    assert calls["n"] == 2


def test_connection_error_becomes_transport_error(monkeypatch) -> None:
    def _post(url, headers=None, json=None, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(llm_client.requests, "post", _post)

    with pytest.raises(OracleTransportError):
        _build_client(max_attempts=1).judge(_MESSAGES)


def test_body_without_content_is_transport_error(monkeypatch) -> None:
    monkeypatch.setattr(llm_client.requests, "post", lambda *a, **k: _Response(payload={"choices": []}))
    with pytest.raises(OracleTransportError):
        _build_client(max_attempts=1).judge(_MESSAGES)

    monkeypatch.setattr(llm_client.requests, "post", lambda *a, **k: _Response(payload=None))
    with pytest.raises(OracleTransportError):
        _build_client(max_attempts=1).judge(_MESSAGES)


def test_invalid_settings_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        OracleSettings(api_url="")
    with pytest.raises(ConfigurationError):
        OracleSettings(api_url="http://oracle.test", timeout_sec=0)
