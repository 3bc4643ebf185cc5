"""Anthropic (Claude) labeling oracle over the Messages API.

Authentication uses the ANTHROPIC_API_KEY environment variable (or an
explicit ``api_key``). The model can be overridden with SPANLABEL_ORACLE_MODEL.

Transient failures (429/5xx, timeouts, connection errors) are retried with
exponential backoff and jitter. Permanent failures are logged and surface as
an empty reply, which the pipeline reports as ``OracleCallError``.
"""

from __future__ import annotations

import json
import logging
import os
import random
import time
from typing import Any

import httpx

from spanlabel.shared.llm.oracle import OracleReply, OracleRequest

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Retry configuration
# ---------------------------------------------------------------------------

DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_BACKOFF = 1.0
DEFAULT_MAX_BACKOFF = 60.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
JITTER_FACTOR = 0.1
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 529}
DEFAULT_TIMEOUT = 90.0

# ---------------------------------------------------------------------------
# Model aliases
# ---------------------------------------------------------------------------

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-3-5-haiku-latest",
    "claude-haiku": "claude-3-5-haiku-latest",
    "sonnet": "claude-sonnet-4-5-20250929",
    "claude-sonnet": "claude-sonnet-4-5-20250929",
    "claude-sonnet-4": "claude-sonnet-4-20250514",
    "opus": "claude-opus-4-5-20251101",
    "claude-opus": "claude-opus-4-5-20251101",
}

DEFAULT_MODEL = "haiku"


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------


class AnthropicOracle:
    """Stateless labeling oracle backed by the Anthropic Messages API.

    Safe to share across threads: each call builds its own request and the
    underlying ``httpx.Client`` is thread-safe.
    """

    API_ENDPOINT = "https://api.anthropic.com/v1/messages"

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        temperature: float = 0.0,
        client: httpx.Client | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError(
                "Anthropic API key not configured.\n"
                "Set ANTHROPIC_API_KEY or pass api_key explicitly."
            )
        self._api_key = api_key
        self.model = self._resolve_model(
            model or os.environ.get("SPANLABEL_ORACLE_MODEL", DEFAULT_MODEL)
        )
        self.temperature = temperature
        self.max_retries = max(1, max_retries)
        self._client = client or httpx.Client()

    @property
    def name(self) -> str:
        return "anthropic"

    @staticmethod
    def _resolve_model(model: str) -> str:
        resolved = MODEL_MAP.get(model, model)
        if resolved != model:
            logger.debug("Model alias: %s -> %s", model, resolved)
        return resolved

    # -- retry helpers ------------------------------------------------------

    @staticmethod
    def _calculate_backoff(attempt: int, retry_after: float | None) -> float:
        if retry_after is not None:
            return min(retry_after, DEFAULT_MAX_BACKOFF)
        backoff = DEFAULT_INITIAL_BACKOFF * (DEFAULT_BACKOFF_MULTIPLIER ** attempt)
        backoff = min(backoff, DEFAULT_MAX_BACKOFF)
        jitter = backoff * JITTER_FACTOR * random.random()
        return backoff + jitter

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> float | None:
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return None

    # -- request building ---------------------------------------------------

    def build_body(self, request: OracleRequest) -> dict[str, Any]:
        messages: list[dict[str, str]] = [{"role": "user", "content": request.user_message}]
        if request.json_mode:
            # Prefilled assistant turn forces the reply to start as a JSON object.
            messages.append({"role": "assistant", "content": "{"})
        return {
            "model": self.model,
            "max_tokens": request.max_tokens,
            "temperature": self.temperature,
            "system": request.system_prompt,
            "messages": messages,
        }

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }

    # -- main execute -------------------------------------------------------

    def execute(self, operation_name: str, request: OracleRequest) -> OracleReply:
        """Run one labeling call. Returns an empty reply on permanent failure."""
        body = self.build_body(request)
        timeout = request.timeout if request.timeout is not None else DEFAULT_TIMEOUT
        deadline = time.monotonic() + timeout

        logger.debug(
            "[anthropic] %s model=%s prompt_len=%d timeout=%.1fs",
            operation_name,
            self.model,
            len(request.user_message),
            timeout,
        )
        start_time = time.time()

        for attempt in range(self.max_retries):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                response = self._client.post(
                    self.API_ENDPOINT,
                    json=body,
                    headers=self._headers(),
                    timeout=remaining,
                )
                elapsed = time.time() - start_time

                if response.status_code in RETRYABLE_STATUS_CODES:
                    backoff = self._calculate_backoff(attempt, self._parse_retry_after(response))
                    logger.info(
                        "[anthropic] RETRY %d | %s | attempt=%d/%d | wait=%.1fs | elapsed=%.1fs",
                        response.status_code,
                        operation_name,
                        attempt + 1,
                        self.max_retries,
                        backoff,
                        elapsed,
                    )
                    time.sleep(min(backoff, max(0.0, deadline - time.monotonic())))
                    continue

                if not response.is_success:
                    logger.error(
                        "[anthropic] FAILED %d | %s | elapsed=%.1fs | %s",
                        response.status_code,
                        operation_name,
                        elapsed,
                        response.text[:300],
                    )
                    return OracleReply(content="")

                data = response.json()
                usage = data.get("usage", {})
                logger.debug(
                    "[anthropic] OK | %s | in=%d out=%d | %.1fs",
                    operation_name,
                    usage.get("input_tokens", 0),
                    usage.get("output_tokens", 0),
                    elapsed,
                )

                text_parts = [
                    block.get("text", "")
                    for block in data.get("content", [])
                    if block.get("type") == "text"
                ]
                if not text_parts:
                    logger.warning("[anthropic] Unexpected response: %s", json.dumps(data)[:500])
                    return OracleReply(content="")

                text = "".join(text_parts).strip()
                if request.json_mode and not text.startswith("{"):
                    text = "{" + text
                return OracleReply(content=text)

            except (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError) as e:
                if attempt < self.max_retries - 1:
                    backoff = self._calculate_backoff(attempt, None)
                    logger.info(
                        "[anthropic] RETRY %s | %s | attempt=%d/%d | wait=%.1fs",
                        type(e).__name__,
                        operation_name,
                        attempt + 1,
                        self.max_retries,
                        backoff,
                    )
                    time.sleep(min(backoff, max(0.0, deadline - time.monotonic())))
                    continue
                logger.error(
                    "[anthropic] FAILED %s after %d attempts | %s",
                    type(e).__name__,
                    self.max_retries,
                    operation_name,
                )
                return OracleReply(content="")

        logger.error(
            "[anthropic] EXHAUSTED retries or deadline | %s | model=%s",
            operation_name,
            self.model,
        )
        return OracleReply(content="")

    def close(self) -> None:
        self._client.close()
