"""
Routing Service Schemas
=======================
Pydantic models for every Jupiter payload the treasury consumes.

Responses are validated at the boundary: a missing or malformed field
becomes a RoutingServiceError in the client, never a KeyError deep in the
pipeline.

Two API shapes are supported:
- Ultra (combined):  GET /order  -> Order,  POST /execute -> ExecuteResponse
- Swap  (separate):  GET /quote  -> Quote,  POST /swap    -> SwapResponse
"""

import base64
import binascii
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from syndicate.shared.execution.errors import MalformedTransactionError


def decode_transaction(encoded: str) -> bytes:
    """base64 wire string -> raw transaction bytes."""
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedTransactionError(f"Transaction payload is not valid base64: {e}") from e


def encode_transaction(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


class _RoutingModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Order(_RoutingModel):
    """
    Priced, ready-to-sign conversion from GET /order.

    Transient: lives for one swap leg and is never persisted directly.
    """
    input_mint: str = Field(..., alias="inputMint")
    output_mint: str = Field(..., alias="outputMint")
    in_amount: int = Field(..., alias="inAmount", ge=0)
    out_amount: int = Field(..., alias="outAmount", ge=0)
    transaction: str = Field(..., min_length=1, description="base64 unsigned VersionedTransaction")
    request_id: str = Field(..., alias="requestId", min_length=1)

    @property
    def transaction_bytes(self) -> bytes:
        return decode_transaction(self.transaction)


class ExecuteResponse(_RoutingModel):
    """POST /execute body. Every field is optional on the wire."""
    signature: Optional[str] = None
    status: Optional[str] = None
    total_output_amount: Optional[int] = Field(default=None, alias="totalOutputAmount")
    error: Optional[str] = None
    code: Optional[int] = None

    @property
    def is_failure(self) -> bool:
        return (self.status or "").lower() == "failed"


class Quote(_RoutingModel):
    """
    Priced estimate from GET /quote.

    The full original payload is kept because POST /swap expects it back
    verbatim as `quoteResponse`.
    """
    input_mint: str = Field(..., alias="inputMint")
    output_mint: str = Field(..., alias="outputMint")
    in_amount: int = Field(..., alias="inAmount", ge=0)
    out_amount: int = Field(..., alias="outAmount", ge=0)
    slippage_bps: int = Field(default=50, alias="slippageBps")
    route_plan: List[Dict[str, Any]] = Field(default_factory=list, alias="routePlan")

    _payload: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Quote":
        quote = cls.model_validate(data)
        quote._payload = dict(data)
        return quote

    @property
    def payload(self) -> Dict[str, Any]:
        return self._payload or self.model_dump(by_alias=True)


class SwapResponse(_RoutingModel):
    """POST /swap body."""
    swap_transaction: str = Field(..., alias="swapTransaction", min_length=1)
    last_valid_block_height: Optional[int] = Field(default=None, alias="lastValidBlockHeight")

    @property
    def transaction_bytes(self) -> bytes:
        return decode_transaction(self.swap_transaction)
