"""
Callback Dispatcher
Delivers on_<action> payloads to the buyer app and reports the outcome
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

import httpx

from ondc_adapter.config import settings
from ondc_adapter.core.errors import TransientUpstreamError
from ondc_adapter.core.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)


@dataclass
class CallbackResult:
    """Outcome of delivering one callback"""
    success: bool
    attempts: int
    last_error: Optional[str] = None


def callback_url(counterparty_uri: str, action: str) -> str:
    action = action[3:] if action.startswith("on_") else action
    return f"{counterparty_uri.rstrip('/')}/on_{action}"


class CallbackDispatcher:
    """Posts callbacks with a per-attempt timeout under its own retry policy"""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy.for_callbacks()
        self.timeout = timeout if timeout is not None else settings.CALLBACK_TIMEOUT
        self.transport = transport
        self.sleep = sleep

    async def _post(self, client: httpx.AsyncClient, url: str, payload: Dict) -> None:
        try:
            response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise TransientUpstreamError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise TransientUpstreamError(
                f"{url} answered HTTP {response.status_code}",
                status_code=response.status_code,
            )

        # A buyer app may answer 200 with an explicit NACK body
        try:
            body = response.json()
        except ValueError:
            return
        ack = (body.get("message") or {}).get("ack") if isinstance(body, dict) else None
        if isinstance(ack, dict) and ack.get("status") == "NACK":
            raise TransientUpstreamError(f"{url} answered NACK", status_code=response.status_code)

    async def deliver(self, payload: Dict, counterparty_uri: Optional[str], action: str) -> CallbackResult:
        """
        Send `payload` to `{counterparty_uri}/on_{action}`

        Never raises: transport failures, non-2xx answers and NACK bodies are
        retried, and a final failure is reported as `success=False`.
        """
        transaction_id = (payload.get("context") or {}).get("transaction_id", "unknown")
        if not counterparty_uri:
            logger.error(f"[{transaction_id}] No callback URI for on_{action}; nothing delivered")
            return CallbackResult(success=False, attempts=0, last_error="missing counterparty URI")

        url = callback_url(counterparty_uri, action)
        attempts = 0

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:

            async def attempt() -> None:
                nonlocal attempts
                attempts += 1
                await self._post(client, url, payload)

            try:
                await run_with_retry(
                    attempt,
                    self.policy,
                    sleep=self.sleep,
                    description=f"[{transaction_id}] on_{action} delivery",
                )
            except Exception as e:
                logger.error(f"[{transaction_id}] on_{action} undelivered to {url} after {attempts} attempts: {e}")
                return CallbackResult(success=False, attempts=attempts, last_error=str(e))

        logger.info(f"[{transaction_id}] on_{action} delivered to {url} in {attempts} attempt(s)")
        return CallbackResult(success=True, attempts=attempts)


# Singleton instance
_dispatcher: Optional[CallbackDispatcher] = None

def get_callback_dispatcher() -> CallbackDispatcher:
    """Get or create the process-wide callback dispatcher"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = CallbackDispatcher()
    return _dispatcher
