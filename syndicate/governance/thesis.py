"""
Thesis Scoring
==============
Deterministic classifier for member-submitted trade theses.

    evaluate_thesis(proposal) -> ThesisEvaluation(approved, score, risk_level, reasons)

Unknown or disallowed assets are rejected with score 0. Everything else
starts at 50, takes additive adjustments, is clamped to [0, 100] and is
approved iff score >= 40.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

RISK_PARAMETERS = {
    "max_drawdown": 0.05,
    "allowed_asset_types": ("stablecoins", "lst", "bluechips"),
    "banned_tokens": ("pump.fun tokens", "unverified memecoins"),
    "max_single_position": 0.30,
    "leverage_allowed": False,
}

ASSET_CLASSIFICATIONS: Dict[str, str] = {
    "USDC": "stablecoins",
    "USDT": "stablecoins",
    "piggyUSDC": "stablecoins",
    "SOL": "bluechips",
    "JitoSOL": "lst",
    "mSOL": "lst",
    "bSOL": "lst",
    "JUP": "bluechips",
    "RAY": "bluechips",
    "PYTH": "bluechips",
    "JTO": "bluechips",
    "BONK": "bluechips",
    "WIF": "bluechips",
}

ASSET_TYPE_BONUS = {"stablecoins": 20, "lst": 15, "bluechips": 5}

DATA_KEYWORDS = ("apy", "apr", "tvl", "volume", "historical", "backtest", "sharpe", "correlation", "hedge")
RISK_KEYWORDS = ("yolo", "moon", "100x", "ape", "degen")

APPROVAL_THRESHOLD = 40
LOW_RISK_THRESHOLD = 70
MEDIUM_RISK_THRESHOLD = 45


@dataclass(frozen=True)
class ThesisProposal:
    token: str
    direction: str = "long"
    timeframe: str = "3d"
    conviction: str = "medium"
    reasoning: str = ""


@dataclass
class ThesisEvaluation:
    approved: bool
    score: int
    risk_level: str  # low | medium | high | rejected
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "approved": self.approved,
            "score": self.score,
            "riskLevel": self.risk_level,
            "reasons": list(self.reasons),
        }


def _rejected(reason: str) -> ThesisEvaluation:
    return ThesisEvaluation(approved=False, score=0, risk_level="rejected", reasons=[reason])


def evaluate_thesis(proposal: ThesisProposal) -> ThesisEvaluation:
    asset_type = ASSET_CLASSIFICATIONS.get(proposal.token)
    if asset_type is None:
        return _rejected(f'Token "{proposal.token}" not in approved list')
    if asset_type not in RISK_PARAMETERS["allowed_asset_types"]:
        return _rejected(f'Asset type "{asset_type}" not allowed')

    reasons = [f"Asset type: {asset_type} ✅"]
    score = 50 + ASSET_TYPE_BONUS.get(asset_type, 0)

    # Longer timeframes carry less noise
    timeframe = proposal.timeframe
    if "week" in timeframe:
        score += 10
    if "3d" in timeframe:
        score += 5
    if "24h" in timeframe:
        score -= 5

    if proposal.conviction == "high":
        score += 10
    elif proposal.conviction == "medium":
        score += 5

    # Reasoning length as a proxy for quality
    reasoning = proposal.reasoning
    if len(reasoning) > 200:
        score += 10
        reasons.append("Detailed reasoning ✅")
    if len(reasoning) < 50:
        score -= 15
        reasons.append("Reasoning too brief ⚠️")

    lower = reasoning.lower()
    data_hits = [k for k in DATA_KEYWORDS if k in lower]
    if len(data_hits) >= 2:
        score += 10
        reasons.append(f"Data-driven ({', '.join(data_hits)}) ✅")

    risk_hits = [k for k in RISK_KEYWORDS if k in lower]
    if risk_hits:
        score -= 20
        reasons.append(f"Risk flags: {', '.join(risk_hits)} ⚠️")

    score = max(0, min(100, score))

    if score >= LOW_RISK_THRESHOLD:
        risk_level = "low"
    elif score >= MEDIUM_RISK_THRESHOLD:
        risk_level = "medium"
    else:
        risk_level = "high"

    return ThesisEvaluation(
        approved=score >= APPROVAL_THRESHOLD,
        score=score,
        risk_level=risk_level,
        reasons=reasons,
    )


_TOKEN_RE = re.compile(r"Token:\s*(\w+)", re.IGNORECASE)
_DIRECTION_RE = re.compile(r"Direction:\s*(\w+)", re.IGNORECASE)
_TIMEFRAME_RE = re.compile(r"Timeframe:\s*(.+)", re.IGNORECASE)
_CONVICTION_RE = re.compile(r"Conviction:\s*(\w+)", re.IGNORECASE)
_REASONING_RE = re.compile(r"Reasoning:\s*(.+)", re.IGNORECASE | re.DOTALL)


def parse_thesis_from_comment(body: str) -> Optional[ThesisProposal]:
    """Parse a `Token: / Direction: / Timeframe: / Conviction: / Reasoning:` block."""
    token = _TOKEN_RE.search(body)
    if not token:
        return None

    direction = _DIRECTION_RE.search(body)
    timeframe = _TIMEFRAME_RE.search(body)
    conviction = _CONVICTION_RE.search(body)
    reasoning = _REASONING_RE.search(body)

    return ThesisProposal(
        token=token.group(1),
        direction=direction.group(1) if direction else "long",
        timeframe=(timeframe.group(1).strip() if timeframe else "") or "3d",
        conviction=conviction.group(1).lower() if conviction else "medium",
        reasoning=reasoning.group(1).strip() if reasoning else "",
    )
