from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from daily_news_ranker.core.config import (
    ORACLE_API_KEY,
    ORACLE_API_URL,
    ORACLE_DEBUG,
    ORACLE_MAX_RETRIES,
    ORACLE_MAX_TOKENS,
    ORACLE_MODEL,
    ORACLE_RETRY_BACKOFF_SEC,
    ORACLE_TIMEOUT_SEC,
)
from daily_news_ranker.core.constants import RETRYABLE_HTTP_STATUS
from daily_news_ranker.errors import ConfigurationError, ExhaustedRetries, OracleTimeout, OracleTransportError
from daily_news_ranker.processing.retry import RetryPolicy
from daily_news_ranker.processing.types import Messages

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OracleSettings:
    api_url: str = ORACLE_API_URL
    model: str = ORACLE_MODEL
    api_key: str = field(default=ORACLE_API_KEY, repr=False)
    timeout_sec: float = ORACLE_TIMEOUT_SEC
    max_tokens: int = ORACLE_MAX_TOKENS
    debug: bool = ORACLE_DEBUG

    def __post_init__(self) -> None:
        if not self.api_url:
            raise ConfigurationError("api_url is required")
        if self.timeout_sec <= 0:
            raise ConfigurationError("timeout_sec must be positive")


def _extract_chat_text(payload: Any) -> str | None:
    # OpenAI 호환 응답에서 본문 텍스트만 추출 (가공하지 않음)
    try:
        content = payload["choices"][0]["message"]["content"]
    except Exception:
        return None
    return content if isinstance(content, str) else None


class OracleClient:
    """Single-call adapter around an OpenAI-compatible chat completions endpoint.

    Owns timeout enforcement and transport retry only. The response text is
    returned untouched; shape validation belongs to the caller.
    """

    def __init__(
        self,
        settings: OracleSettings | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._settings = settings or OracleSettings()
        self._retry = retry_policy or RetryPolicy(
            max_attempts=max(1, ORACLE_MAX_RETRIES + 1),
            base_delay=ORACLE_RETRY_BACKOFF_SEC,
        )
        self._log = log or logger

    @property
    def settings(self) -> OracleSettings:
        return self._settings

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"
        return headers

    def _payload(self, messages: Messages, temperature: float) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "messages": messages,
            "temperature": temperature,
            "max_tokens": self._settings.max_tokens,
            "stream": False,
        }
        if self._settings.model:
            payload["model"] = self._settings.model
        return payload

    def _post_once(self, messages: Messages, temperature: float, timeout: float) -> str:
        if self._settings.debug:
            self._log.debug("oracle_request: %s", json.dumps(messages, ensure_ascii=False))
        try:
            resp = requests.post(
                self._settings.api_url,
                headers=self._headers(),
                json=self._payload(messages, temperature),
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise OracleTimeout(f"oracle timed out after {timeout}s: {e}") from e
        except requests.RequestException as e:
            raise OracleTransportError(f"{type(e).__name__}: {e}") from e

        if not resp.ok:
            retryable = resp.status_code in RETRYABLE_HTTP_STATUS
            raise OracleTransportError(
                f"oracle returned {resp.status_code}: {resp.text[:200]}",
                retryable=retryable,
                status=resp.status_code,
            )
        try:
            data = resp.json()
        except Exception as e:
            raise OracleTransportError(f"oracle body is not JSON: {e}") from e

        text = _extract_chat_text(data)
        if text is None:
            raise OracleTransportError("oracle body has no choices[0].message.content")
        if self._settings.debug:
            self._log.debug("oracle_response: %s", text)
        return text

    def judge(self, messages: Messages, temperature: float = 0.2, timeout: float | None = None) -> str:
        """One logical oracle call: at most one request in flight, transport errors retried."""
        call_timeout = timeout if timeout is not None else self._settings.timeout_sec

        def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            self._log.warning("oracle_retry: attempt=%s delay=%.2fs error=%s", attempt, delay, exc)

        try:
            return self._retry.call(
                lambda: self._post_once(messages, temperature, call_timeout),
                retry_if=lambda e: isinstance(e, OracleTransportError) and e.retryable,
                on_retry=_on_retry,
            )
        except ExhaustedRetries as e:
            # 호출자에게는 마지막 전송 오류를 그대로 노출
            if isinstance(e.last_error, OracleTransportError):
                raise e.last_error
            raise
