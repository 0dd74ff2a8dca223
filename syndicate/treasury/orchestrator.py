"""
Swap Orchestrator
=================
Sequences conversions end to end:

    request order/quote -> sign -> submit & confirm -> record trade

Two-leg conversion (source -> intermediate -> target):
- leg 1 fails: the error propagates; nothing was recorded.
- leg 1 settles, leg 2 fails: funds already moved on-chain cannot be rolled
  back. The leg-1 trade stays, a pending-conversion entry records the held
  intermediate amount, and a PARTIAL result is returned instead of raising.
- both settle: two trades, then a single treasury update.

A leg 2 that was submitted but never observed confirmed (timeout or
cancellation) keeps its signature on the pending entry. Resuming re-checks
that signature first and only places a new order once the old transaction
has failed or its blockhash has expired.

Leg 2 always receives leg 1's exact reported output amount.
"""

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Optional

from syndicate.shared.config.settings import Settings
from syndicate.shared.execution.errors import (
    ConfirmationTimeoutError,
    LegStillPendingError,
    TransactionFailedError,
)
from syndicate.shared.execution.execution_result import (
    ConversionResult,
    ConversionStatus,
    LegResult,
)
from syndicate.shared.execution.settlement import SettlementRecorder
from syndicate.shared.execution.submission_engine import SubmissionEngine
from syndicate.shared.infrastructure.chain_rpc import ChainRpc
from syndicate.shared.infrastructure.jupiter_client import JupiterClient
from syndicate.shared.infrastructure.signer import TransactionSigner
from syndicate.shared.models.ledger import PendingConversion
from syndicate.shared.persistence.ledger_store import LedgerStore, seconds_since
from syndicate.shared.system.logging import Logger

SYMBOLS = {
    Settings.SOL_MINT: "sol",
    Settings.USDC_MINT: "usdc",
    Settings.PIGGY_USDC_MINT: "piggy",
}


def _label(input_mint: str, output_mint: str) -> str:
    return f"{SYMBOLS.get(input_mint, input_mint[:6])}-{SYMBOLS.get(output_mint, output_mint[:6])}"


def _native_spent(source_mint: str, amount: int) -> float:
    if source_mint != Settings.SOL_MINT:
        return 0.0
    return amount / Settings.LAMPORTS_PER_SOL


@dataclass
class InFlightLeg:
    """What is known about a leg's transaction before it is confirmed."""

    expected_output: Optional[int] = None
    signature: Optional[str] = None

    def submitted(self, signature: str, reported_output: Optional[int]) -> None:
        self.signature = signature
        if reported_output is not None:
            self.expected_output = int(reported_output)

    def unresolved_signature(self, error: BaseException) -> Optional[str]:
        """Signature of a transaction that may still land after `error`, if any."""
        if isinstance(error, ConfirmationTimeoutError):
            return self.signature or error.signature
        if isinstance(error, asyncio.CancelledError):
            return self.signature
        return None


class SwapOrchestrator:
    """
    Usage:
        orchestrator = SwapOrchestrator(jupiter, signer, engine, settlement, ledger, rpc)
        result = await orchestrator.deposit_to_target()
        if result.partial:
            await orchestrator.resume_pending(result.pending.id)
    """

    def __init__(
        self,
        jupiter: JupiterClient,
        signer: TransactionSigner,
        engine: SubmissionEngine,
        settlement: SettlementRecorder,
        ledger: LedgerStore,
        rpc: Optional[ChainRpc] = None,
        routing_mode: str = "ultra",
        agent_id: int = Settings.DEFAULT_AGENT_ID,
        inter_leg_delay_s: float = 3.0,
    ):
        self.jupiter = jupiter
        self.signer = signer
        self.engine = engine
        self.settlement = settlement
        self.ledger = ledger
        self.rpc = rpc
        self.routing_mode = routing_mode
        self.agent_id = agent_id
        self.inter_leg_delay_s = inter_leg_delay_s

    # =========================================================================
    # SINGLE LEG
    # =========================================================================

    async def convert(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        thesis_id: str = Settings.DEPOSIT_THESIS_ID,
        agent_id: Optional[int] = None,
        kind: Optional[str] = None,
        in_flight: Optional[InFlightLeg] = None,
    ) -> LegResult:
        """
        Execute one conversion leg and record its trade.

        Raises whatever the client, signer or engine raised; a raising leg
        leaves no trace in the ledger. When `in_flight` is given it receives
        the quoted output and, once submitted, the transaction signature.
        """
        taker = self.signer.public_key
        Logger.info(f"[SYNDICATE] Leg {_label(input_mint, output_mint)}: {amount} via {self.routing_mode}")

        if self.routing_mode == "ultra":
            order = await self.jupiter.request_order(input_mint, output_mint, amount, taker)
            signed = self.signer.sign(order.transaction_bytes)
            request_id, quoted_out = order.request_id, order.out_amount
        else:
            quote = await self.jupiter.get_quote(input_mint, output_mint, amount)
            unsigned = await self.jupiter.build_swap_transaction(quote, taker)
            signed = self.signer.sign(unsigned)
            request_id, quoted_out = None, quote.out_amount

        on_submitted = None
        if in_flight is not None:
            in_flight.expected_output = int(quoted_out)
            on_submitted = in_flight.submitted
        submission = await self.engine.submit_and_confirm(signed, request_id, on_submitted=on_submitted)

        output_amount = submission.total_output_amount if submission.total_output_amount is not None else quoted_out
        leg = LegResult(
            signature=submission.signature,
            input_mint=input_mint,
            output_mint=output_mint,
            amount_in=int(amount),
            output_amount=int(output_amount),
            path=submission.path,
        )

        trade = self.settlement.trade_from_leg(
            leg,
            kind or _label(input_mint, output_mint),
            thesis_id,
            self.agent_id if agent_id is None else agent_id,
        )
        self.settlement.record_leg(trade)
        return dataclasses.replace(leg, trade=trade)

    # =========================================================================
    # TWO LEGS
    # =========================================================================

    async def convert_two_leg(
        self,
        source_mint: str,
        intermediate_mint: str,
        target_mint: str,
        amount: int,
        thesis_id: str = Settings.DEPOSIT_THESIS_ID,
        agent_id: Optional[int] = None,
        kind_prefix: str = "",
        target_decimals: int = Settings.PIGGY_USDC_DECIMALS,
    ) -> ConversionResult:
        prefix = f"{kind_prefix}-" if kind_prefix else ""

        Logger.info(f"[SYNDICATE] Step 1: {_label(source_mint, intermediate_mint)} ({amount})")
        leg1 = await self.convert(
            source_mint, intermediate_mint, amount, thesis_id, agent_id,
            kind=prefix + _label(source_mint, intermediate_mint),
        )
        Logger.success(f"[SYNDICATE] Step 1 done. Sig: {leg1.signature}, received: {leg1.output_amount}")

        in_flight = InFlightLeg()
        try:
            if self.inter_leg_delay_s:
                await asyncio.sleep(self.inter_leg_delay_s)

            Logger.info(f"[SYNDICATE] Step 2: {_label(intermediate_mint, target_mint)} ({leg1.output_amount})")
            leg2 = await self.convert(
                intermediate_mint, target_mint, leg1.output_amount, thesis_id, agent_id,
                kind=prefix + _label(intermediate_mint, target_mint),
                in_flight=in_flight,
            )
        except (Exception, asyncio.CancelledError) as e:
            # Leg 1 already moved funds on-chain: hold the intermediate and report partial
            Logger.warning(
                f"[SYNDICATE] Step 2 failed: {e!r}. Keeping {leg1.output_amount} of {intermediate_mint[:8]} in wallet."
            )
            unresolved = in_flight.unresolved_signature(e)
            pending = self.settlement.record_pending(
                leg1.trade, target_mint, amount, e, thesis_id,
                leg2_signature=unresolved,
                leg2_expected_output=in_flight.expected_output if unresolved else None,
            )
            if isinstance(e, asyncio.CancelledError):
                raise
            return ConversionResult(
                status=ConversionStatus.PARTIAL,
                leg1=leg1,
                pending=pending,
                error=str(e),
                error_type=type(e).__name__,
            )

        Logger.success(f"[SYNDICATE] Step 2 done. Sig: {leg2.signature}, received: {leg2.output_amount}")
        self.settlement.settle_conversion(
            native_spent=_native_spent(source_mint, amount),
            target_received=leg2.output_amount / 10 ** target_decimals,
        )
        return ConversionResult(status=ConversionStatus.COMPLETE, leg1=leg1, leg2=leg2)

    async def deposit_to_target(self, amount_lamports: int = Settings.DEFAULT_DEPOSIT_LAMPORTS) -> ConversionResult:
        """SOL -> USDC -> piggyUSDC, recorded against the seed-deposit thesis."""
        Logger.section("Treasury Deposit")
        result = await self.convert_two_leg(
            Settings.SOL_MINT,
            Settings.USDC_MINT,
            Settings.PIGGY_USDC_MINT,
            amount_lamports,
            thesis_id=Settings.DEPOSIT_THESIS_ID,
            kind_prefix="deposit",
        )
        if result.success:
            Logger.success(f"[SYNDICATE] Deposit complete. Target received: {result.leg2.output_amount}")
        return result

    async def resume_pending(self, pending_id: str) -> ConversionResult:
        """
        Retry leg 2 of a partial conversion with the recorded held amount.

        Leg 1 is not re-run. The entry is claimed before anything is sent, so
        a concurrent resume of the same entry fails instead of converting the
        held amount twice. On failure the claim is dropped, the entry is kept
        and the error propagates.

        Raises:
            KeyError: no such pending entry
            ResumeInProgressError: another resume holds the entry
            LegStillPendingError: an earlier leg 2 may still land
        """
        pending = self.settlement.claim_pending(pending_id)
        Logger.info(f"[SYNDICATE] Resuming {pending_id}: {pending.held_amount} of {pending.held_mint[:8]}")

        in_flight = InFlightLeg()
        try:
            leg2 = await self._complete_leg2(pending, in_flight)
        except (Exception, asyncio.CancelledError) as e:
            unresolved = in_flight.unresolved_signature(e)
            self.settlement.release_pending(
                pending_id, e, unresolved, in_flight.expected_output if unresolved else None
            )
            raise

        self.settlement.resolve_pending(pending_id)
        self.settlement.settle_conversion(
            native_spent=_native_spent(pending.source_mint, pending.source_amount),
            target_received=leg2.output_amount / 10 ** Settings.PIGGY_USDC_DECIMALS,
        )

        leg1_trade = next((t for t in self.ledger.load().trades if t.id == pending.trade_id), None)
        leg1 = LegResult(
            signature=leg1_trade.tx_signature if leg1_trade else "",
            input_mint=pending.source_mint,
            output_mint=pending.held_mint,
            amount_in=pending.source_amount,
            output_amount=pending.held_amount,
            trade=leg1_trade,
        )
        return ConversionResult(status=ConversionStatus.COMPLETE, leg1=leg1, leg2=leg2)

    async def _complete_leg2(self, pending: PendingConversion, in_flight: InFlightLeg) -> LegResult:
        kind = f"resume-{_label(pending.held_mint, pending.target_mint)}"

        if pending.leg2_signature:
            signature = pending.leg2_signature
            try:
                landed = await self.engine.check_confirmation(signature)
            except TransactionFailedError as e:
                Logger.warning(f"[SYNDICATE] Earlier leg 2 {signature} failed on-chain: {e.err}")
                landed = None

            if landed:
                Logger.success(f"[SYNDICATE] Earlier leg 2 {signature} landed; recording it without a new order")
                leg = LegResult(
                    signature=signature,
                    input_mint=pending.held_mint,
                    output_mint=pending.target_mint,
                    amount_in=pending.held_amount,
                    output_amount=int(pending.leg2_expected_output or 0),
                )
                trade = self.settlement.trade_from_leg(leg, kind, pending.thesis_id, self.agent_id)
                self.settlement.record_leg(trade)
                return dataclasses.replace(leg, trade=trade)

            # None: failed on-chain, so the held amount never moved
            if landed is False and seconds_since(pending.leg2_submitted_at) < Settings.BLOCKHASH_VALIDITY_S:
                raise LegStillPendingError(signature)
            Logger.info(f"[SYNDICATE] Earlier leg 2 {signature} will not land; placing a new order")

        return await self.convert(
            pending.held_mint,
            pending.target_mint,
            pending.held_amount,
            pending.thesis_id,
            kind=kind,
            in_flight=in_flight,
        )

    async def refresh_native_balance(self) -> float:
        """Pull the wallet's native balance from chain into the treasury."""
        if self.rpc is None:
            raise RuntimeError("refresh_native_balance needs a ChainRpc")
        lamports = await self.rpc.get_balance(self.signer.public_key)
        balance = lamports / Settings.LAMPORTS_PER_SOL
        self.settlement.sync_native_balance(balance)
        Logger.info(f"[SYNDICATE] Native balance: {balance:.6f} SOL")
        return balance
