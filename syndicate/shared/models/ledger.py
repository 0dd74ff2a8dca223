"""
Ledger Document Model
=====================
Typed view of the persisted syndicate ledger.

The on-disk document keeps the camelCase wire names
(`currentBalanceSol`, `txSignature`, ...); Python code works with
snake_case attributes. `to_dict()` / `from_dict()` convert between the two.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Treasury:
    """Wallet and the three tracked balances (native / intermediate / target)."""
    wallet: str = ""
    seed: str = "1 SOL"
    current_balance_sol: float = 1.0
    current_balance_usdc: float = 0.0
    piggy_usdc_balance: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "wallet": self.wallet,
            "currentBalanceSol": self.current_balance_sol,
            "currentBalanceUsdc": self.current_balance_usdc,
            "piggyUsdcBalance": self.piggy_usdc_balance,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Treasury":
        return cls(
            wallet=data.get("wallet", ""),
            seed=data.get("seed", "1 SOL"),
            current_balance_sol=float(data.get("currentBalanceSol", 0.0)),
            current_balance_usdc=float(data.get("currentBalanceUsdc", 0.0)),
            piggy_usdc_balance=float(data.get("piggyUsdcBalance", 0.0)),
        )


@dataclass
class Member:
    agent_id: int
    agent_name: str
    joined_at: str
    theses_count: int = 0
    win_count: int = 0
    loss_count: int = 0
    total_pnl_percent: float = 0.0
    voting_power: float = 1.0
    profit_share: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "thesesCount": self.theses_count,
            "winCount": self.win_count,
            "lossCount": self.loss_count,
            "totalPnlPercent": self.total_pnl_percent,
            "votingPower": self.voting_power,
            "profitShare": self.profit_share,
            "joinedAt": self.joined_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Member":
        return cls(
            agent_id=int(data["agentId"]),
            agent_name=data.get("agentName", ""),
            joined_at=data.get("joinedAt", ""),
            theses_count=int(data.get("thesesCount", 0)),
            win_count=int(data.get("winCount", 0)),
            loss_count=int(data.get("lossCount", 0)),
            total_pnl_percent=float(data.get("totalPnlPercent", 0.0)),
            voting_power=float(data.get("votingPower", 1.0)),
            profit_share=float(data.get("profitShare", 0.0)),
        )


@dataclass
class Thesis:
    id: str
    agent_id: int
    agent_name: str
    token: str
    direction: str
    timeframe: str
    conviction: str
    reasoning: str
    created_at: str
    status: str = "pending"  # pending | active | closed | rejected
    score: Optional[int] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    pnl_percent: Optional[float] = None
    closed_at: Optional[str] = None
    tx_signature: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "token": self.token,
            "direction": self.direction,
            "timeframe": self.timeframe,
            "conviction": self.conviction,
            "reasoning": self.reasoning,
            "score": self.score,
            "entryPrice": self.entry_price,
            "exitPrice": self.exit_price,
            "pnlPercent": self.pnl_percent,
            "status": self.status,
            "createdAt": self.created_at,
            "closedAt": self.closed_at,
            "txSignature": self.tx_signature,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Thesis":
        return cls(
            id=data["id"],
            agent_id=int(data["agentId"]),
            agent_name=data.get("agentName", ""),
            token=data.get("token", ""),
            direction=data.get("direction", "long"),
            timeframe=data.get("timeframe", ""),
            conviction=data.get("conviction", "medium"),
            reasoning=data.get("reasoning", ""),
            created_at=data.get("createdAt", ""),
            status=data.get("status", "pending"),
            score=data.get("score"),
            entry_price=data.get("entryPrice"),
            exit_price=data.get("exitPrice"),
            pnl_percent=data.get("pnlPercent"),
            closed_at=data.get("closedAt"),
            tx_signature=data.get("txSignature"),
        )


@dataclass(frozen=True)
class Trade:
    """One confirmed conversion leg. Written once, never mutated."""
    id: str
    thesis_id: str
    agent_id: int
    input_mint: str
    output_mint: str
    amount_in: int
    amount_out: int
    tx_signature: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "thesisId": self.thesis_id,
            "agentId": self.agent_id,
            "inputMint": self.input_mint,
            "outputMint": self.output_mint,
            "amountIn": self.amount_in,
            "amountOut": self.amount_out,
            "txSignature": self.tx_signature,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trade":
        return cls(
            id=data["id"],
            thesis_id=data.get("thesisId", ""),
            agent_id=int(data.get("agentId", 0)),
            input_mint=data["inputMint"],
            output_mint=data["outputMint"],
            amount_in=int(data["amountIn"]),
            amount_out=int(data["amountOut"]),
            tx_signature=data["txSignature"],
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class PendingConversion:
    """
    Leg 1 settled but leg 2 did not: the intermediate asset is held
    in the wallet and waits for a leg-2 retry.
    """
    id: str
    trade_id: str
    held_mint: str
    held_amount: int
    target_mint: str
    source_mint: str
    source_amount: int
    thesis_id: str
    error: str
    created_at: str
    # Leg 2 submitted but never observed confirmed: it may still land
    leg2_signature: Optional[str] = None
    leg2_expected_output: Optional[int] = None
    leg2_submitted_at: Optional[str] = None
    # Set while a resume owns the entry
    resuming_since: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tradeId": self.trade_id,
            "heldMint": self.held_mint,
            "heldAmount": self.held_amount,
            "targetMint": self.target_mint,
            "sourceMint": self.source_mint,
            "sourceAmount": self.source_amount,
            "thesisId": self.thesis_id,
            "error": self.error,
            "createdAt": self.created_at,
            "leg2Signature": self.leg2_signature,
            "leg2ExpectedOutput": self.leg2_expected_output,
            "leg2SubmittedAt": self.leg2_submitted_at,
            "resumingSince": self.resuming_since,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingConversion":
        return cls(
            id=data["id"],
            trade_id=data["tradeId"],
            held_mint=data["heldMint"],
            held_amount=int(data["heldAmount"]),
            target_mint=data["targetMint"],
            source_mint=data.get("sourceMint", ""),
            source_amount=int(data.get("sourceAmount", 0)),
            thesis_id=data.get("thesisId", ""),
            error=data.get("error", ""),
            created_at=data.get("createdAt", ""),
            leg2_signature=data.get("leg2Signature"),
            leg2_expected_output=data.get("leg2ExpectedOutput"),
            leg2_submitted_at=data.get("leg2SubmittedAt"),
            resuming_since=data.get("resumingSince"),
        )


@dataclass
class Ledger:
    syndicate: str
    treasury: Treasury
    members: List[Member] = field(default_factory=list)
    theses: List[Thesis] = field(default_factory=list)
    trades: List[Trade] = field(default_factory=list)
    pending_conversions: List[PendingConversion] = field(default_factory=list)

    def find_member(self, agent_id: int) -> Optional[Member]:
        return next((m for m in self.members if m.agent_id == agent_id), None)

    def find_pending(self, pending_id: str) -> Optional[PendingConversion]:
        return next((p for p in self.pending_conversions if p.id == pending_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "syndicate": self.syndicate,
            "treasury": self.treasury.to_dict(),
            "members": [m.to_dict() for m in self.members],
            "theses": [t.to_dict() for t in self.theses],
            "trades": [t.to_dict() for t in self.trades],
            "pendingConversions": [p.to_dict() for p in self.pending_conversions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ledger":
        return cls(
            syndicate=data.get("syndicate", ""),
            treasury=Treasury.from_dict(data.get("treasury", {})),
            members=[Member.from_dict(m) for m in data.get("members", [])],
            theses=[Thesis.from_dict(t) for t in data.get("theses", [])],
            trades=[Trade.from_dict(t) for t in data.get("trades", [])],
            pending_conversions=[PendingConversion.from_dict(p) for p in data.get("pendingConversions", [])],
        )
