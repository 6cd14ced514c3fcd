"""HTTP client for the core banking settlement switch."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from src.core.config import settings
from src.core.exceptions import SettlementAuthError, SettlementError
from src.integrations.settlement.schemas import (
    SettlementResponse,
    TokenResponse,
    TransferInstruction,
)

logger = logging.getLogger(__name__)


class SettlementClient:
    """
    Token + transfer calls against the switch.

    Concurrent transfers are capped by a semaphore sized like the connection
    pool, so a slow switch queues callers instead of opening unbounded sockets.
    No retries: a failed call is reported once and the caller decides.
    """

    def __init__(
        self,
        *,
        token_url: str,
        payment_url: str,
        username: str,
        password: str,
        timeout_seconds: float = 30.0,
        max_concurrency: int = 10,
        success_code: str = "00",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_url = token_url
        self.payment_url = payment_url
        self.success_code = success_code
        self._auth = httpx.BasicAuth(username, password)
        self._timeout = httpx.Timeout(timeout_seconds)
        self._limits = httpx.Limits(
            max_connections=max_concurrency,
            max_keepalive_connections=max_concurrency,
        )
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, transport: httpx.AsyncBaseTransport | None = None) -> SettlementClient:
        return cls(
            token_url=settings.settlement_token_url,
            payment_url=settings.settlement_payment_url,
            username=settings.settlement_username,
            password=settings.settlement_password,
            timeout_seconds=settings.settlement_timeout_seconds,
            max_concurrency=settings.settlement_max_concurrency,
            success_code=settings.settlement_success_code,
            transport=transport,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=self._limits,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("Settlement %s %s timed out", method, url)
            raise SettlementError("Settlement switch timed out", code="TIMEOUT") from exc
        except httpx.HTTPError as exc:
            logger.error("Settlement %s %s failed: %s", method, url, exc)
            raise SettlementError(f"Settlement switch unreachable: {exc}", code="TRANSPORT") from exc

    async def fetch_token(self) -> str:
        """GET the token URL with Basic credentials."""
        if not self.token_url:
            raise SettlementAuthError("Settlement token URL is not configured")

        response = await self._send("GET", self.token_url, auth=self._auth)
        if response.status_code in (401, 403):
            raise SettlementAuthError(
                f"Settlement token request rejected (HTTP {response.status_code})"
            )
        if response.status_code >= 400:
            raise SettlementAuthError(
                f"Settlement token request failed (HTTP {response.status_code})"
            )

        try:
            token_response = TokenResponse.model_validate(response.json())
        except ValueError as exc:
            raise SettlementAuthError("Settlement token response is not valid JSON") from exc

        if token_response.code != self.success_code:
            raise SettlementAuthError(
                f"Settlement token request failed: {token_response.message or token_response.code}"
            )
        if not token_response.token:
            raise SettlementAuthError("Settlement token response carried an empty token")

        return token_response.token

    async def submit(self, token: str, instruction: TransferInstruction) -> SettlementResponse:
        """POST one transfer instruction with the token as a query parameter."""
        if not self.payment_url:
            raise SettlementError("Settlement payment URL is not configured", code="CONFIG")

        response = await self._send(
            "POST",
            self.payment_url,
            params={"token": token},
            json=instruction.to_wire(),
        )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SettlementError(
                f"Settlement response is not valid JSON (HTTP {response.status_code})",
                code="INVALID_RESPONSE",
            ) from exc

        try:
            return SettlementResponse.from_payload(payload, http_status=response.status_code)
        except ValueError as exc:
            raise SettlementError(str(exc), code="INVALID_RESPONSE") from exc

    async def transfer(self, instruction: TransferInstruction) -> SettlementResponse:
        """Token then transfer, within the concurrency cap."""
        async with self._semaphore:
            token = await self.fetch_token()
            return await self.submit(token, instruction)


_client: SettlementClient | None = None


def get_settlement_client() -> SettlementClient:
    """Process-wide client (FastAPI dependency)."""
    global _client
    if _client is None:
        _client = SettlementClient.from_settings()
    return _client


async def close_settlement_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
