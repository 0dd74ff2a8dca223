"""
Jupiter Routing Client (Async)
==============================
Quote/order side of the swap pipeline.

Two integration shapes:
- Ultra:  request_order() -> Order (unsigned tx + requestId), execute()
- Swap:   get_quote() -> Quote, build_swap_transaction() -> unsigned bytes

No retries here. A non-2xx response or a payload that fails schema
validation raises RoutingServiceError carrying status and body; callers
decide what to do. execute() is never retried by anyone: re-executing a
quoted order could double-spend it.
"""

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from syndicate.shared.config.settings import Settings
from syndicate.shared.execution.errors import RoutingServiceError
from syndicate.shared.execution.execution_result import (
    Ambiguous,
    ExecuteOutcome,
    ServiceConfirmed,
    ServiceRejected,
)
from syndicate.shared.execution.schemas import (
    ExecuteResponse,
    Order,
    Quote,
    SwapResponse,
    encode_transaction,
)
from syndicate.shared.system.logging import Logger


def _body_of(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class JupiterClient:
    """
    Usage:
        async with JupiterClient(api_key=config.jupiter_api_key) as jupiter:
            order = await jupiter.request_order(SOL, USDC, 1_000_000_000, taker)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        ultra_url: str = Settings.JUPITER_ULTRA_API,
        quote_url: str = Settings.JUPITER_QUOTE_API,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = Settings.HTTP_TIMEOUT_S,
    ):
        self.api_key = api_key
        self.ultra_url = ultra_url.rstrip("/")
        self.quote_url = quote_url.rstrip("/")
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "JupiterClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def _request(self, label: str, method: str, url: str, **kwargs) -> Any:
        """Send one request; any non-2xx or transport failure is a RoutingServiceError."""
        try:
            response = await self.http.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise RoutingServiceError(f"Jupiter {label} request failed: {e}") from e

        if not response.is_success:
            raise RoutingServiceError(
                f"Jupiter {label} failed", status_code=response.status_code, body=_body_of(response)
            )

        try:
            return response.json()
        except ValueError as e:
            raise RoutingServiceError(
                f"Jupiter {label} returned non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from e

    # =========================================================================
    # ULTRA API (order / execute)
    # =========================================================================

    async def request_order(self, input_mint: str, output_mint: str, amount: int, taker: str) -> Order:
        """GET /order: priced quote plus unsigned transaction for `taker`."""
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "taker": taker,
        }
        data = await self._request("order", "GET", f"{self.ultra_url}/order", params=params)

        try:
            order = Order.model_validate(data)
        except ValidationError as e:
            raise RoutingServiceError(f"Jupiter order response invalid: {e}", status_code=200, body=data) from e

        Logger.info(f"[JUPITER] Order {order.request_id[:12]}: {order.in_amount} -> {order.out_amount}")
        return order

    async def execute(self, signed_transaction: bytes, request_id: str) -> ExecuteOutcome:
        """
        POST /execute and classify the response.

        Never raises for a rejection: a failure status, a non-2xx response
        or a transport error all come back as ServiceRejected so the engine
        owns the branching.
        """
        payload = {"signedTransaction": encode_transaction(signed_transaction), "requestId": request_id}
        try:
            response = await self.http.post(f"{self.ultra_url}/execute", json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            return ServiceRejected(reason=f"execute request failed: {e}")

        body = _body_of(response)
        Logger.debug(f"[JUPITER] Execute response ({response.status_code}): {body}")
        return classify_execute_response(response.status_code, body)

    # =========================================================================
    # SWAP API (quote / swap)
    # =========================================================================

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int = Settings.DEFAULT_SLIPPAGE_BPS,
    ) -> Quote:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": str(slippage_bps),
        }
        data = await self._request("quote", "GET", f"{self.quote_url}/quote", params=params)

        try:
            quote = Quote.from_payload(data)
        except ValidationError as e:
            raise RoutingServiceError(f"Jupiter quote response invalid: {e}", status_code=200, body=data) from e

        Logger.info(f"[JUPITER] Quote: {quote.in_amount} -> {quote.out_amount} ({slippage_bps} bps)")
        return quote

    async def build_swap_transaction(self, quote: Quote, taker: str) -> bytes:
        """POST /swap: unsigned transaction bytes for a previously fetched quote."""
        payload = {
            "quoteResponse": quote.payload,
            "userPublicKey": taker,
            "wrapAndUnwrapSol": True,
        }
        data = await self._request("swap", "POST", f"{self.quote_url}/swap", json=payload)

        try:
            swap = SwapResponse.model_validate(data)
        except ValidationError as e:
            raise RoutingServiceError(f"Jupiter swap response invalid: {e}", status_code=200, body=data) from e
        return swap.transaction_bytes


def classify_execute_response(status_code: int, body: Any) -> ExecuteOutcome:
    """
    Three-way split of an /execute response.

    A reported signature wins even on a non-2xx status: the transaction was
    relayed, so the only safe next step is to wait for it.
    """
    parsed = None
    if isinstance(body, dict):
        try:
            parsed = ExecuteResponse.model_validate(body)
        except ValidationError:
            parsed = None

    if parsed is not None and parsed.signature:
        return ServiceConfirmed(
            signature=parsed.signature,
            total_output_amount=parsed.total_output_amount,
            raw_response=body,
        )

    if parsed is not None and parsed.is_failure:
        return ServiceRejected(
            reason=parsed.error or f"status={parsed.status}",
            status_code=status_code,
            raw_response=body,
        )

    if not 200 <= status_code < 300:
        return ServiceRejected(reason=f"HTTP {status_code}", status_code=status_code, raw_response=body)

    return Ambiguous(raw_response=body)
