"""
Ledger Store
============
Sole owner of the syndicate ledger JSON document.

Every mutation is a full read-modify-write cycle (load -> mutate -> save)
performed under one process-wide lock, so concurrent writers serialize
instead of overwriting each other. Writes are atomic (temp file +
os.replace), so readers never see a half-written document.

A missing file means "never initialized": the default document is written
before the first read returns.
"""

import dataclasses
import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from syndicate.shared.config.settings import Settings
from syndicate.shared.execution.errors import ResumeInProgressError
from syndicate.shared.models.ledger import (
    Ledger,
    Member,
    PendingConversion,
    Thesis,
    Trade,
    Treasury,
)
from syndicate.shared.system.logging import Logger

T = TypeVar("T")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def seconds_since(timestamp: Optional[str]) -> float:
    """Age of a `utc_now_iso()` timestamp; unparseable or missing counts as infinitely old."""
    if not timestamp:
        return float("inf")
    try:
        then = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return float("inf")
    return (datetime.now(timezone.utc) - then).total_seconds()


def default_ledger(wallet: str = "") -> Ledger:
    return Ledger(
        syndicate=Settings.SYNDICATE_NAME,
        treasury=Treasury(
            wallet=wallet,
            seed=Settings.TREASURY_SEED,
            current_balance_sol=Settings.SEED_BALANCE_SOL,
            current_balance_usdc=0.0,
            piggy_usdc_balance=0.0,
        ),
    )


class LedgerStore:
    """
    File-backed ledger with an exclusive critical section around every
    load -> mutate -> save sequence.

    Usage:
        store = LedgerStore("syndicate_ledger.json", wallet=pubkey)
        store.add_trade(trade)
        ledger = store.load()
    """

    # One lock per process: every store instance pointing at any path shares it.
    _lock = threading.RLock()

    def __init__(self, path: str, wallet: str = ""):
        self.path = Path(path)
        self.wallet = wallet

    # ═══════════════════════════════════════════════════════════════════════
    # PERSISTENCE LAYER
    # ═══════════════════════════════════════════════════════════════════════

    def load(self) -> Ledger:
        """Read the full document, creating the default one if absent."""
        with self._lock:
            if not self.path.exists():
                ledger = default_ledger(self.wallet)
                self._write(ledger)
                Logger.info(f"[LEDGER] Initialized new ledger at {self.path}")
                return ledger

            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Ledger.from_dict(data)

    def save(self, ledger: Ledger) -> None:
        with self._lock:
            self._write(ledger)

    def _write(self, ledger: Ledger) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_name(self.path.name + ".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(ledger.to_dict(), f, indent=2)
        os.replace(temp_file, self.path)

    def exclusive(self) -> threading.RLock:
        """The store lock, for callers that must read then write as one step."""
        return self._lock

    def mutate(self, fn: Callable[[Ledger], T]) -> T:
        """
        Run `fn` against a freshly loaded ledger and persist the result.

        The whole cycle holds the store lock. If `fn` raises, nothing is saved.
        """
        with self._lock:
            ledger = self.load()
            result = fn(ledger)
            self._write(ledger)
            return result

    # ═══════════════════════════════════════════════════════════════════════
    # MEMBERS & THESES
    # ═══════════════════════════════════════════════════════════════════════

    def add_member(self, agent_id: int, agent_name: str) -> Member:
        """Register a member; returns the existing record if already present."""
        with self._lock:
            existing = self.load().find_member(agent_id)
            if existing:
                return existing

            def _add(ledger: Ledger) -> Member:
                member = Member(agent_id=agent_id, agent_name=agent_name, joined_at=utc_now_iso())
                ledger.members.append(member)
                return member

            member = self.mutate(_add)
            Logger.info(f"[LEDGER] New member #{agent_id} ({agent_name})")
            return member

    def add_thesis(self, thesis: Thesis) -> None:
        def _add(ledger: Ledger) -> None:
            ledger.theses.append(thesis)
            member = ledger.find_member(thesis.agent_id)
            if member:
                member.theses_count += 1

        self.mutate(_add)

    def has_thesis(self, thesis_id: str) -> bool:
        return any(t.id == thesis_id for t in self.load().theses)

    def get_leaderboard(self) -> List[Member]:
        return sorted(self.load().members, key=lambda m: m.total_pnl_percent, reverse=True)

    # ═══════════════════════════════════════════════════════════════════════
    # TRADES & TREASURY
    # ═══════════════════════════════════════════════════════════════════════

    def add_trade(self, trade: Trade) -> None:
        """Append one trade. Trade ids are unique; a duplicate id is rejected."""

        def _add(ledger: Ledger) -> None:
            if any(t.id == trade.id for t in ledger.trades):
                raise ValueError(f"Trade {trade.id} already recorded")
            ledger.trades.append(trade)

        self.mutate(_add)

    def update_treasury_balance(self, balance_sol: float, balance_usdc: float, piggy_usdc: float) -> None:
        def _update(ledger: Ledger) -> None:
            ledger.treasury.current_balance_sol = balance_sol
            ledger.treasury.current_balance_usdc = balance_usdc
            ledger.treasury.piggy_usdc_balance = piggy_usdc

        self.mutate(_update)

    # ═══════════════════════════════════════════════════════════════════════
    # PENDING CONVERSIONS (leg 1 settled, leg 2 outstanding)
    # ═══════════════════════════════════════════════════════════════════════

    def record_pending(self, pending: PendingConversion) -> None:
        self.mutate(lambda ledger: ledger.pending_conversions.append(pending))

    def get_pending(self, pending_id: str) -> Optional[PendingConversion]:
        return self.load().find_pending(pending_id)

    def claim_pending(
        self, pending_id: str, ttl_s: float = Settings.RESUME_CLAIM_TTL_S
    ) -> PendingConversion:
        """
        Mark a pending entry as being resumed and return a copy of it.

        The check and the mark happen in one locked mutate, so of two
        concurrent claims exactly one wins. A claim older than `ttl_s`
        (crashed resume) may be taken over.

        Raises:
            KeyError: no such entry
            ResumeInProgressError: a live claim already exists
        """

        def _claim(ledger: Ledger) -> PendingConversion:
            pending = ledger.find_pending(pending_id)
            if pending is None:
                raise KeyError(f"No pending conversion {pending_id}")
            if pending.resuming_since and seconds_since(pending.resuming_since) < ttl_s:
                raise ResumeInProgressError(pending_id)
            pending.resuming_since = utc_now_iso()
            return dataclasses.replace(pending)

        return self.mutate(_claim)

    def release_pending(
        self,
        pending_id: str,
        error: str,
        leg2_signature: Optional[str] = None,
        leg2_expected_output: Optional[int] = None,
    ) -> Optional[PendingConversion]:
        """Drop the resume claim after a failed attempt, keeping the latest error and in-flight leg."""

        def _release(ledger: Ledger) -> Optional[PendingConversion]:
            pending = ledger.find_pending(pending_id)
            if pending is None:
                return None
            pending.resuming_since = None
            pending.error = error
            if leg2_signature:
                pending.leg2_signature = leg2_signature
                pending.leg2_expected_output = leg2_expected_output
                pending.leg2_submitted_at = utc_now_iso()
            return pending

        return self.mutate(_release)

    def resolve_pending(self, pending_id: str) -> Optional[PendingConversion]:
        """Remove a pending entry once its leg 2 has settled."""

        def _resolve(ledger: Ledger) -> Optional[PendingConversion]:
            pending = ledger.find_pending(pending_id)
            if pending:
                ledger.pending_conversions.remove(pending)
            return pending

        return self.mutate(_resolve)
