"""Analysis backend REST client (async).

Handles all communication with the analysis backend: setup analysis,
simple-signal pairs, trade status, and the enter/exit trade mutations.
Responses are handed to the normalizer before they leave this module.

No request is retried here.  Polls are retried by the next scheduler tick;
trade mutations are never retried, so an exit cannot be sent twice.
"""

import logging
from dataclasses import asdict
from typing import Any, Optional

import httpx

from setupdesk.backend.models import (
    EnterTradeRequest,
    ExitTradeRequest,
    Instrument,
    MultiPairSummary,
    MutationResult,
    Setup,
    SignalSnapshot,
    TradeStatus,
)
from setupdesk.config import Config
from setupdesk.core.normalizer import (
    normalize_analysis,
    normalize_multi_pair,
    normalize_signal,
    normalize_trade_status,
)
from setupdesk.errors import MutationRejected, TransportError

logger = logging.getLogger("setupdesk.backend")


class BackendClient:
    """Async client wrapping the analysis backend's REST API."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.api_base_url
        self._headers = {"Content-Type": "application/json"}

    # ── Transport ────────────────────────────────────────────────────────

    async def _send(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> tuple[int, Any]:
        """Execute one HTTP request and decode its JSON body.

        Returns:
            ``(status_code, payload)``; *payload* is ``None`` when the body
            is not JSON.

        Raises:
            TransportError: On any network-level failure.
        """
        try:
            async with httpx.AsyncClient() as client:
                resp = await getattr(client, method)(
                    url,
                    headers=self._headers,
                    **kwargs,
                )
        except httpx.HTTPError as exc:
            logger.warning("Backend %s %s failed: %s", method.upper(), url, exc)
            raise TransportError(f"Network error: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = None
        return resp.status_code, payload

    async def _get_json(self, method: str, url: str, **kwargs) -> Any:
        status, payload = await self._send(method, url, **kwargs)
        if status >= 400:
            raise TransportError(f"HTTP {status}", status_code=status)
        if payload is None:
            raise TransportError(f"Malformed response from {url}", status_code=status)
        return payload

    # ── Pro-trader setups ────────────────────────────────────────────────

    def _pro_trader_url(self, instrument: Instrument, action: str) -> str:
        return f"{self._base_url}/api/pro-trader-{instrument.pro_trader_slug}/{action}"

    async def fetch_analysis(self, instrument: Instrument) -> dict[str, Optional[Setup]]:
        """Fetch and normalize the bullish/bearish setups for *instrument*."""
        payload = await self._get_json("get", self._pro_trader_url(instrument, "analysis"))
        return normalize_analysis(payload, instrument.symbol)

    async def fetch_trade_status(self, instrument: Instrument) -> TradeStatus:
        """Fetch the authoritative position record for *instrument*."""
        payload = await self._get_json("get", self._pro_trader_url(instrument, "trade-status"))
        return normalize_trade_status(payload)

    async def enter_trade(
        self,
        instrument: Instrument,
        request: EnterTradeRequest,
    ) -> MutationResult:
        """Submit an entry (or add-to-position) request.

        Raises:
            MutationRejected: When the backend answers ``success: false``.
            TransportError: On network or HTTP failure without a verdict.
        """
        return await self._mutate(
            self._pro_trader_url(instrument, "enter-trade"), asdict(request),
        )

    async def exit_trade(
        self,
        instrument: Instrument,
        request: ExitTradeRequest,
    ) -> MutationResult:
        """Submit an exit request.  Sent exactly once."""
        return await self._mutate(
            self._pro_trader_url(instrument, "exit-trade"), asdict(request),
        )

    async def _mutate(self, url: str, body: dict) -> MutationResult:
        status, payload = await self._send("post", url, json=body)

        if isinstance(payload, dict) and payload.get("success") is False:
            message = str(payload.get("error") or payload.get("message") or "Request rejected")
            logger.warning("Backend rejected %s: %s", url, message)
            raise MutationRejected(message)
        if status >= 400:
            raise TransportError(f"HTTP {status}", status_code=status)
        if not isinstance(payload, dict):
            raise TransportError(f"Malformed response from {url}", status_code=status)

        def _num(key: str) -> Optional[float]:
            value = payload.get(key)
            return float(value) if isinstance(value, (int, float)) else None

        return MutationResult(
            success=bool(payload.get("success", True)),
            message=str(payload.get("message") or ""),
            pnl=_num("pnl"),
            pnl_pct=_num("pnl_pct"),
        )

    # ── Simple-signal pairs ──────────────────────────────────────────────

    async def fetch_signal(self, instrument: Instrument) -> SignalSnapshot:
        """Fetch the latest cached analysis for a simple-signal pair."""
        url = f"{self._base_url}/api/{instrument.pair_slug}/analysis"
        return normalize_signal(await self._get_json("get", url), instrument.symbol)

    async def scan_signal(self, instrument: Instrument) -> SignalSnapshot:
        """Force the backend to re-scan a simple-signal pair."""
        url = f"{self._base_url}/api/{instrument.pair_slug}/scan"
        return normalize_signal(await self._get_json("post", url), instrument.symbol)

    async def fetch_multi_pair(self) -> MultiPairSummary:
        """Fetch the cross-pair overview."""
        url = f"{self._base_url}/api/multi-pair/analysis"
        return normalize_multi_pair(await self._get_json("get", url))
