"""
Settlement Recorder
===================
Writes confirmed legs into the ledger.

- record_leg(): one Trade per confirmed leg, appended exactly once
- update_treasury(): called once per full conversion, after both legs

Nothing here runs for a failed or unconfirmed leg; the orchestrator only
calls in after confirmation.
"""

import itertools
import threading
import time
from typing import Optional

from syndicate.shared.execution.execution_result import LegResult
from syndicate.shared.models.ledger import PendingConversion, Trade
from syndicate.shared.persistence.ledger_store import LedgerStore, utc_now_iso
from syndicate.shared.system.logging import Logger

_id_lock = threading.Lock()
_id_counter = itertools.count()


def describe_error(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


def new_record_id(prefix: str, kind: str) -> str:
    """
    `<prefix>-<kind>-<epoch ms>-<seq>`.

    The process-wide sequence keeps ids unique when two calls land in the
    same millisecond.
    """
    with _id_lock:
        seq = next(_id_counter)
    return f"{prefix}-{kind}-{int(time.time() * 1000)}-{seq}"


class SettlementRecorder:
    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger

    def record_leg(self, trade: Trade) -> Trade:
        self.ledger.add_trade(trade)
        Logger.info(f"[SETTLE] Trade {trade.id} recorded ({trade.amount_in} -> {trade.amount_out})")
        return trade

    def trade_from_leg(self, leg: LegResult, kind: str, thesis_id: str, agent_id: int) -> Trade:
        return Trade(
            id=new_record_id("trade", kind),
            thesis_id=thesis_id,
            agent_id=agent_id,
            input_mint=leg.input_mint,
            output_mint=leg.output_mint,
            amount_in=leg.amount_in,
            amount_out=leg.output_amount,
            tx_signature=leg.signature,
            timestamp=utc_now_iso(),
        )

    def update_treasury(self, native_balance: float, intermediate_balance: float, target_balance: float) -> None:
        self.ledger.update_treasury_balance(native_balance, intermediate_balance, target_balance)
        Logger.success(
            f"[SETTLE] Treasury: {native_balance:.6f} SOL | {intermediate_balance:.6f} USDC | "
            f"{target_balance:.6f} target"
        )

    def settle_conversion(self, native_spent: float, target_received: float) -> None:
        """
        Apply a completed conversion to the treasury in one step.

        The source leg's native spend is debited and the target leg's output
        credited; the intermediate balance is untouched because leg 1's
        output was forwarded in full.
        """
        with self.ledger.exclusive():
            treasury = self.ledger.load().treasury
            self.update_treasury(
                max(treasury.current_balance_sol - native_spent, 0.0),
                treasury.current_balance_usdc,
                treasury.piggy_usdc_balance + target_received,
            )

    def sync_native_balance(self, native_balance: float) -> None:
        with self.ledger.exclusive():
            treasury = self.ledger.load().treasury
            self.update_treasury(native_balance, treasury.current_balance_usdc, treasury.piggy_usdc_balance)

    def record_pending(
        self,
        leg1_trade: Trade,
        target_mint: str,
        source_amount: int,
        error: BaseException,
        thesis_id: Optional[str] = None,
        leg2_signature: Optional[str] = None,
        leg2_expected_output: Optional[int] = None,
    ) -> PendingConversion:
        """
        Annotate the ledger with a held intermediate amount awaiting leg 2.

        `leg2_signature` is set when leg 2 was submitted but its outcome is
        unknown (confirmation timeout or cancellation); resume re-checks it
        before placing a new order.
        """
        pending = PendingConversion(
            id=new_record_id("pending", "leg2"),
            trade_id=leg1_trade.id,
            held_mint=leg1_trade.output_mint,
            held_amount=leg1_trade.amount_out,
            target_mint=target_mint,
            source_mint=leg1_trade.input_mint,
            source_amount=source_amount,
            thesis_id=thesis_id or leg1_trade.thesis_id,
            error=describe_error(error),
            created_at=utc_now_iso(),
            leg2_signature=leg2_signature,
            leg2_expected_output=leg2_expected_output,
            leg2_submitted_at=utc_now_iso() if leg2_signature else None,
        )
        self.ledger.record_pending(pending)
        Logger.warning(f"[SETTLE] Pending leg 2 recorded: {pending.id} holds {pending.held_amount} of {pending.held_mint[:8]}")
        return pending

    def claim_pending(self, pending_id: str) -> PendingConversion:
        return self.ledger.claim_pending(pending_id)

    def release_pending(
        self,
        pending_id: str,
        error: BaseException,
        leg2_signature: Optional[str] = None,
        leg2_expected_output: Optional[int] = None,
    ) -> None:
        self.ledger.release_pending(pending_id, describe_error(error), leg2_signature, leg2_expected_output)
        Logger.warning(f"[SETTLE] Resume of {pending_id} failed, entry kept: {describe_error(error)}")

    def resolve_pending(self, pending_id: str) -> Optional[PendingConversion]:
        return self.ledger.resolve_pending(pending_id)
