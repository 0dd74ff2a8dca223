"""
Execution Results
=================
Standardized result types for the treasury pipeline.

`ExecuteOutcome` is the tagged classification of a POST /execute response:

    ServiceConfirmed  - the routing service reported a signature
    ServiceRejected   - explicit failure status, non-2xx, or transport error
    Ambiguous         - no signature and no failure: self-broadcast fallback

Only the submission engine consumes these; everything above it sees
SubmissionResult / LegResult / ConversionResult.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from syndicate.shared.models.ledger import PendingConversion, Trade


# ═══════════════════════════════════════════════════════════════════════════════
# EXECUTE CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ServiceConfirmed:
    signature: str
    total_output_amount: Optional[int] = None
    raw_response: Any = None


@dataclass(frozen=True)
class ServiceRejected:
    reason: str
    status_code: Optional[int] = None
    raw_response: Any = None


@dataclass(frozen=True)
class Ambiguous:
    raw_response: Any = None


ExecuteOutcome = Union[ServiceConfirmed, ServiceRejected, Ambiguous]


# ═══════════════════════════════════════════════════════════════════════════════
# SUBMISSION / LEG / CONVERSION
# ═══════════════════════════════════════════════════════════════════════════════

class SubmissionPath(Enum):
    ROUTING_SERVICE = "ROUTING_SERVICE"
    DIRECT_BROADCAST = "DIRECT_BROADCAST"


@dataclass(frozen=True)
class SubmissionResult:
    """
    Outcome of submitAndConfirm.

    `confirmed=False` means submitted but confirmation not awaited; it is
    never used to signal failure (failures raise).
    """
    signature: str
    confirmed: bool
    path: SubmissionPath
    total_output_amount: Optional[int] = None


@dataclass(frozen=True)
class LegResult:
    """One settled conversion leg."""
    signature: str
    input_mint: str
    output_mint: str
    amount_in: int
    output_amount: int
    path: Optional[SubmissionPath] = None
    trade: Optional[Trade] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "inputMint": self.input_mint,
            "outputMint": self.output_mint,
            "amountIn": self.amount_in,
            "outputAmount": self.output_amount,
            "path": self.path.value if self.path else None,
            "tradeId": self.trade.id if self.trade else None,
        }


class ConversionStatus(Enum):
    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"


@dataclass
class ConversionResult:
    """
    Two-leg conversion outcome.

    PARTIAL: leg 1 settled, leg 2 failed. The intermediate asset is held
    and recorded in `pending`; retry leg 2 later.
    """
    status: ConversionStatus
    leg1: LegResult
    leg2: Optional[LegResult] = None
    pending: Optional[PendingConversion] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == ConversionStatus.COMPLETE

    @property
    def partial(self) -> bool:
        return self.status == ConversionStatus.PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "partial": self.partial,
            "status": self.status.value,
            "leg1": self.leg1.to_dict(),
            "leg2": self.leg2.to_dict() if self.leg2 else None,
        }
        if self.pending:
            data["pending"] = self.pending.to_dict()
        if self.error:
            data["error"] = {"type": self.error_type, "message": self.error}
        return data
