"""ADFLOW — Workflow Webhook Client.

POSTs campaign payloads to the external workflow engine. A 2xx means
"accepted for processing", nothing more. Retries 429 / 5xx / connection
errors with exponential backoff, then gives up with TransportFailure.
"""

import asyncio
import time
from typing import Any, Dict, Optional

import httpx

from adflow.config import settings
from adflow.core.errors import TransportFailure
from adflow.core.logging import get_logger

logger = get_logger("automation.webhook")


class WebhookClient:
    """Async HTTP client for the workflow webhook."""

    def __init__(
        self,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.webhook_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else settings.webhook_retry_base_delay
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _backoff(self, attempt: int) -> float:
        return self.retry_base_delay * (2 ** (attempt - 1))

    async def post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver ``payload``; return a summary of the accepting response."""
        client = await self._get_client()
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                resp = await client.post(url, json=payload)
            except httpx.RequestError as e:
                if attempt < attempts:
                    wait = self._backoff(attempt)
                    logger.warning(f"Webhook request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise TransportFailure(
                    f"Webhook unreachable after {attempts} attempts: {e}"
                ) from e

            duration_ms = round((time.monotonic() - started) * 1000)
            if resp.is_success:
                logger.info(
                    "Webhook accepted",
                    extra={"status_code": resp.status_code, "duration_ms": duration_ms},
                )
                return {"status_code": resp.status_code, "body": _body(resp)}

            retryable = resp.status_code == 429 or resp.status_code >= 500
            if retryable and attempt < attempts:
                wait = self._backoff(attempt)
                logger.warning(
                    f"Webhook returned {resp.status_code}. Retrying in {wait}s (attempt {attempt}/{attempts})"
                )
                await asyncio.sleep(wait)
                continue

            raise TransportFailure(_failure_message(resp), status_code=resp.status_code)

        raise TransportFailure("Max retries exhausted")


def _body(resp: httpx.Response) -> Any:
    if resp.headers.get("content-type", "").startswith("application/json"):
        try:
            return resp.json()
        except ValueError:
            return resp.text
    return resp.text[:2000]


def _failure_message(resp: httpx.Response) -> str:
    body = _body(resp)
    if isinstance(body, dict):
        message = str(body.get("message", ""))
        # n8n answers 404 "not registered" when the workflow is inactive
        if body.get("code") == 404 or "not registered" in message:
            return "Workflow webhook is not active; activate the workflow and retry"
        if message:
            return f"Webhook rejected the payload ({resp.status_code}): {message}"
    return f"Webhook rejected the payload ({resp.status_code})"
