import hashlib
import httpx
import logging
import os
import time
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from vehicle_sales.core.logging import LOG_BODY_MAX, _redact


def is_retryable_exception(exception: BaseException) -> bool:
    """Decides whether an exception is worth another attempt."""
    if isinstance(exception, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        # Only server-side errors (5xx) are retried
        return 500 <= exception.response.status_code < 600
    return False


LOG_SAMPLE_RATE = float(os.getenv("LOG_SAMPLE_RATE", "1.0"))


class BaseApiClient:
    """
    httpx client with one retry layer (tenacity) and per-request logging on the
    ``http`` logger.

    A call makes at most ``tries`` requests and stops retrying once
    ``retry_budget`` seconds have passed since the first one.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        tries: int = 3,
        retry_budget: float = 15.0,
    ):
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self.tries = tries
        self.retry_budget = retry_budget
        self._logger = logging.getLogger("http")

    def _maybe_hash(self, body: str) -> str:
        return hashlib.sha256(body.encode("utf-8", "ignore")).hexdigest()[:16]

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.tries) | stop_after_delay(self.retry_budget),
            wait=wait_exponential(multiplier=1, min=1, max=4),
            retry=retry_if_exception(is_retryable_exception),
            before_sleep=self._log_retry,
            reraise=True,
        )

    def _log_retry(self, retry_state) -> None:
        self._logger.debug("HTTP retry in %.1fs (attempt %d failed: %r)",
                           retry_state.next_action.sleep, retry_state.attempt_number,
                           retry_state.outcome.exception())

    async def _send(self, method: str, url: str, attempt: int, **kwargs):
        """One request: logs it, raises on 4xx/5xx, returns the parsed body."""
        req_body = kwargs.get("content") or kwargs.get("data") or (kwargs.get("json") and str(kwargs["json"])) or ""
        headers = _redact(dict(kwargs.get("headers") or {}))
        self._logger.debug("HTTP %s %s (attempt %d)", method, url, attempt,
                           extra={"extra": {"method": method, "url": url, "attempt": attempt,
                                            "headers": headers, "body_preview": str(req_body)[:LOG_BODY_MAX]}})

        t0 = time.perf_counter()
        response: httpx.Response = await self.client.request(method, url, **kwargs)
        dt = round((time.perf_counter() - t0) * 1000)

        body_text = response.text or ""
        body_hash = self._maybe_hash(body_text)
        if LOG_SAMPLE_RATE >= 1.0:
            body_preview = body_text[:LOG_BODY_MAX]
        else:
            body_preview = f"[sampled hash:{body_hash}]"

        self._logger.info("HTTP %s %s -> %d in %dms", method, url, response.status_code, dt,
                          extra={"extra": {"method": method, "url": url, "status_code": response.status_code,
                                           "elapsed_ms": dt, "attempt": attempt,
                                           "response_preview": body_preview, "response_hash": body_hash}})

        response.raise_for_status()
        return self._parse_response(response)

    def _parse_response(self, response: httpx.Response):
        """Parse an HTTP response, tolerating empty or non-JSON bodies."""
        if response.status_code == 204 or not response.content:
            return {}

        content_type = response.headers.get("content-type", "").lower()
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                return {}
        return {}

    async def _request(self, method: str, url: str, **kwargs):
        t0 = time.perf_counter()
        attempt = 0
        try:
            async for attempt_state in self._retrying():
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    return await self._send(method, url, attempt, **kwargs)
        except httpx.HTTPError as e:
            dt = round((time.perf_counter() - t0) * 1000)
            self._logger.error("HTTP FAIL %s %s after %d tries: %s", method, url, attempt, repr(e),
                               extra={"extra": {"method": method, "url": url, "elapsed_ms": dt,
                                                "attempts": attempt}})
            raise

    async def close(self):
        await self.client.aclose()
