"""
Swap Orchestrator Unit Tests
============================
Real signer, ledger and settlement; Jupiter and the submission engine are mocked.

Scenarios:
1. Both legs settle: two trades, one treasury update
2. Leg 1 fails: nothing recorded
3. Leg 2 fails: one trade, pending entry, treasury untouched, PARTIAL result
4. Resume: pending leg 2 completes later
5. Leg 2 outcome unknown (timeout, cancellation): signature kept and re-checked on resume
6. Concurrent resumes of one entry: exactly one converts
"""

import asyncio
import base64
from unittest.mock import AsyncMock, MagicMock

import pytest

from syndicate.shared.config.settings import Settings
from syndicate.shared.execution.errors import (
    ConfirmationTimeoutError,
    ExecutionRejectedError,
    LegStillPendingError,
    ResumeInProgressError,
    RoutingServiceError,
    TransactionFailedError,
)
from syndicate.shared.execution.execution_result import (
    ConversionStatus,
    SubmissionPath,
    SubmissionResult,
)
from syndicate.shared.execution.schemas import Order, Quote
from syndicate.shared.execution.settlement import SettlementRecorder
from syndicate.shared.infrastructure.signer import TransactionSigner
from syndicate.treasury.orchestrator import SwapOrchestrator

SOL, USDC, PIGGY = Settings.SOL_MINT, Settings.USDC_MINT, Settings.PIGGY_USDC_MINT
ONE_SOL = 1_000_000_000


def make_order(unsigned_tx: bytes, input_mint: str, output_mint: str, amount: int, out_amount: int, rid: str) -> Order:
    return Order.model_validate({
        "inputMint": input_mint,
        "outputMint": output_mint,
        "inAmount": str(amount),
        "outAmount": str(out_amount),
        "transaction": base64.b64encode(unsigned_tx).decode(),
        "requestId": rid,
    })


def confirmed(signature: str, total_output_amount=None) -> SubmissionResult:
    return SubmissionResult(signature, True, SubmissionPath.ROUTING_SERVICE, total_output_amount)


async def partial_deposit(orchestrator, jupiter, engine, leg_orders, leg2_error):
    """Run a deposit whose leg 2 submission raises `leg2_error`."""
    jupiter.request_order.side_effect = leg_orders
    engine.submit_and_confirm.side_effect = [confirmed("sig-leg1", 150_000_000), leg2_error]
    result = await orchestrator.deposit_to_target(ONE_SOL)
    assert result.partial is True
    return result


@pytest.fixture
def jupiter():
    mock = MagicMock()
    mock.request_order = AsyncMock()
    mock.get_quote = AsyncMock()
    mock.build_swap_transaction = AsyncMock()
    return mock


@pytest.fixture
def engine():
    return MagicMock(submit_and_confirm=AsyncMock(), check_confirmation=AsyncMock(return_value=False))


@pytest.fixture
def orchestrator(jupiter, engine, keypair, ledger):
    return SwapOrchestrator(
        jupiter,
        TransactionSigner(keypair),
        engine,
        SettlementRecorder(ledger),
        ledger,
        routing_mode="ultra",
        agent_id=896,
        inter_leg_delay_s=0,
    )


@pytest.fixture
def leg_orders(unsigned_tx):
    return [
        make_order(unsigned_tx, SOL, USDC, ONE_SOL, 150_000_000, "req-leg1"),
        make_order(unsigned_tx, USDC, PIGGY, 150_000_000, 149_000_000, "req-leg2"),
    ]


class TestDepositHappyPath:
    @pytest.mark.asyncio
    async def test_two_trades_and_single_treasury_update(self, orchestrator, jupiter, engine, ledger, leg_orders):
        jupiter.request_order.side_effect = leg_orders
        engine.submit_and_confirm.side_effect = [
            confirmed("sig-leg1", 150_000_000),
            confirmed("sig-leg2", 149_500_000),
        ]

        result = await orchestrator.deposit_to_target(ONE_SOL)

        assert result.status == ConversionStatus.COMPLETE
        assert result.success is True
        assert result.leg1.signature == "sig-leg1"
        assert result.leg2.output_amount == 149_500_000

        doc = ledger.load()
        assert [t.tx_signature for t in doc.trades] == ["sig-leg1", "sig-leg2"]
        assert doc.trades[0].amount_in == ONE_SOL
        assert doc.trades[0].amount_out == 150_000_000
        assert doc.trades[1].input_mint == USDC and doc.trades[1].output_mint == PIGGY
        assert all(t.thesis_id == "seed-deposit" and t.agent_id == 896 for t in doc.trades)

        assert doc.treasury.current_balance_sol == 0.0
        assert doc.treasury.current_balance_usdc == 0.0
        assert doc.treasury.piggy_usdc_balance == pytest.approx(149.5)
        assert doc.pending_conversions == []

    @pytest.mark.asyncio
    async def test_leg2_receives_exact_leg1_output(self, orchestrator, jupiter, engine, leg_orders):
        jupiter.request_order.side_effect = leg_orders
        engine.submit_and_confirm.side_effect = [confirmed("s1", 151_234_567), confirmed("s2")]

        await orchestrator.deposit_to_target(ONE_SOL)

        second_call = jupiter.request_order.await_args_list[1]
        assert second_call.args[:3] == (USDC, PIGGY, 151_234_567)

    @pytest.mark.asyncio
    async def test_falls_back_to_quoted_output(self, orchestrator, jupiter, engine, ledger, leg_orders):
        jupiter.request_order.side_effect = leg_orders
        engine.submit_and_confirm.side_effect = [confirmed("s1"), confirmed("s2")]

        result = await orchestrator.deposit_to_target(ONE_SOL)

        assert result.leg1.output_amount == 150_000_000
        assert result.leg2.output_amount == 149_000_000
        assert ledger.load().treasury.piggy_usdc_balance == pytest.approx(149.0)

    @pytest.mark.asyncio
    async def test_submits_signed_bytes_with_request_id(self, orchestrator, jupiter, engine, leg_orders, keypair):
        jupiter.request_order.side_effect = leg_orders
        engine.submit_and_confirm.side_effect = [confirmed("s1"), confirmed("s2")]

        await orchestrator.deposit_to_target(ONE_SOL)

        signed, request_id = engine.submit_and_confirm.await_args_list[0].args
        assert request_id == "req-leg1"
        assert signed != leg_orders[0].transaction_bytes
        assert jupiter.request_order.await_args_list[0].args[3] == str(keypair.pubkey())


class TestLegFailures:
    @pytest.mark.asyncio
    async def test_leg1_failure_propagates_and_records_nothing(self, orchestrator, jupiter, ledger):
        jupiter.request_order.side_effect = RoutingServiceError("Jupiter order failed", status_code=500, body="oops")

        with pytest.raises(RoutingServiceError):
            await orchestrator.deposit_to_target(ONE_SOL)

        doc = ledger.load()
        assert doc.trades == []
        assert doc.pending_conversions == []
        assert doc.treasury.current_balance_sol == 1.0

    @pytest.mark.asyncio
    async def test_leg1_confirmation_timeout_propagates(self, orchestrator, jupiter, engine, ledger, leg_orders):
        jupiter.request_order.side_effect = leg_orders
        engine.submit_and_confirm.side_effect = ConfirmationTimeoutError("s1", 60)

        with pytest.raises(ConfirmationTimeoutError):
            await orchestrator.deposit_to_target(ONE_SOL)

        assert ledger.load().trades == []

    @pytest.mark.asyncio
    async def test_leg2_failure_is_partial(self, orchestrator, jupiter, engine, ledger, leg_orders):
        jupiter.request_order.side_effect = [leg_orders[0], RoutingServiceError("order failed", status_code=500)]
        engine.submit_and_confirm.side_effect = [confirmed("sig-leg1", 150_000_000)]

        result = await orchestrator.deposit_to_target(ONE_SOL)

        assert result.status == ConversionStatus.PARTIAL
        assert result.success is False
        assert result.partial is True
        assert result.leg2 is None
        assert result.error_type == "RoutingServiceError"

        doc = ledger.load()
        assert len(doc.trades) == 1
        assert doc.trades[0].tx_signature == "sig-leg1"
        # Treasury not updated for a partial conversion
        assert doc.treasury.current_balance_sol == 1.0
        assert doc.treasury.piggy_usdc_balance == 0.0

        assert len(doc.pending_conversions) == 1
        pending = doc.pending_conversions[0]
        assert pending.id == result.pending.id
        assert pending.trade_id == doc.trades[0].id
        assert pending.held_mint == USDC
        assert pending.held_amount == 150_000_000
        assert pending.target_mint == PIGGY
        assert pending.source_mint == SOL
        assert pending.source_amount == ONE_SOL

    @pytest.mark.asyncio
    async def test_leg2_execute_rejection_is_partial(self, orchestrator, jupiter, engine, leg_orders):
        jupiter.request_order.side_effect = leg_orders
        engine.submit_and_confirm.side_effect = [
            confirmed("sig-leg1"),
            ExecutionRejectedError("Execute failed: slippage"),
        ]

        result = await orchestrator.deposit_to_target(ONE_SOL)

        assert result.partial is True
        payload = result.to_dict()
        assert payload["success"] is False
        assert payload["leg1"]["signature"] == "sig-leg1"
        assert payload["error"]["type"] == "ExecutionRejectedError"
        assert payload["pending"]["heldAmount"] == 150_000_000


class TestResumePending:
    @pytest.mark.asyncio
    async def test_resume_completes_conversion(self, orchestrator, jupiter, engine, ledger, leg_orders):
        jupiter.request_order.side_effect = [leg_orders[0], RoutingServiceError("order failed", status_code=503)]
        engine.submit_and_confirm.side_effect = [confirmed("sig-leg1", 150_000_000)]
        partial = await orchestrator.deposit_to_target(ONE_SOL)

        jupiter.request_order.side_effect = [leg_orders[1]]
        engine.submit_and_confirm.side_effect = [confirmed("sig-leg2", 149_000_000)]

        result = await orchestrator.resume_pending(partial.pending.id)

        assert result.success is True
        assert result.leg1.signature == "sig-leg1"
        assert result.leg2.signature == "sig-leg2"
        # Leg 1 is not re-run
        assert jupiter.request_order.await_args.args[:3] == (USDC, PIGGY, 150_000_000)

        doc = ledger.load()
        assert len(doc.trades) == 2
        assert doc.pending_conversions == []
        assert doc.treasury.current_balance_sol == 0.0
        assert doc.treasury.piggy_usdc_balance == pytest.approx(149.0)

    @pytest.mark.asyncio
    async def test_failed_resume_keeps_pending(self, orchestrator, jupiter, engine, ledger, leg_orders):
        jupiter.request_order.side_effect = [leg_orders[0], RoutingServiceError("order failed", status_code=503)]
        engine.submit_and_confirm.side_effect = [confirmed("sig-leg1", 150_000_000)]
        partial = await orchestrator.deposit_to_target(ONE_SOL)

        jupiter.request_order.side_effect = RoutingServiceError("still down", status_code=503)

        with pytest.raises(RoutingServiceError):
            await orchestrator.resume_pending(partial.pending.id)

        assert ledger.get_pending(partial.pending.id) is not None
        assert len(ledger.load().trades) == 1

    @pytest.mark.asyncio
    async def test_unknown_pending_id(self, orchestrator):
        with pytest.raises(KeyError):
            await orchestrator.resume_pending("pending-missing")

    @pytest.mark.asyncio
    async def test_failed_resume_releases_claim(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ExecutionRejectedError("Execute failed: slippage")
        )

        jupiter.request_order.side_effect = RoutingServiceError("still down", status_code=503)
        with pytest.raises(RoutingServiceError):
            await orchestrator.resume_pending(partial.pending.id)

        pending = ledger.get_pending(partial.pending.id)
        assert pending.resuming_since is None
        assert pending.error.startswith("RoutingServiceError")

        # Next attempt is not blocked by the failed one
        jupiter.request_order.side_effect = [leg_orders[1]]
        engine.submit_and_confirm.side_effect = [confirmed("sig-leg2", 149_000_000)]
        result = await orchestrator.resume_pending(partial.pending.id)

        assert result.success is True
        assert ledger.load().pending_conversions == []


class TestConcurrentResume:
    @pytest.mark.asyncio
    async def test_only_one_resume_converts(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ExecutionRejectedError("Execute failed: slippage")
        )

        async def slow_submit(signed, request_id, on_submitted=None):
            # Yield so the second resume runs while the first is mid-flight
            await asyncio.sleep(0)
            return confirmed("sig-leg2", 149_000_000)

        jupiter.request_order.side_effect = [leg_orders[1], leg_orders[1]]
        engine.submit_and_confirm.side_effect = slow_submit

        results = await asyncio.gather(
            orchestrator.resume_pending(partial.pending.id),
            orchestrator.resume_pending(partial.pending.id),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, BaseException)]
        rejected = [r for r in results if isinstance(r, ResumeInProgressError)]
        assert len(succeeded) == 1
        assert len(rejected) == 1
        assert rejected[0].pending_id == partial.pending.id

        # Leg 2 ordered once across both calls (one for the deposit, one resume)
        assert jupiter.request_order.await_count == 3
        doc = ledger.load()
        assert [t.tx_signature for t in doc.trades] == ["sig-leg1", "sig-leg2"]
        assert doc.pending_conversions == []
        assert doc.treasury.piggy_usdc_balance == pytest.approx(149.0)

    @pytest.mark.asyncio
    async def test_resume_of_claimed_entry_sends_nothing(self, orchestrator, jupiter, ledger, engine, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ExecutionRejectedError("Execute failed: slippage")
        )
        ledger.claim_pending(partial.pending.id)
        orders_before = jupiter.request_order.await_count

        with pytest.raises(ResumeInProgressError):
            await orchestrator.resume_pending(partial.pending.id)

        assert jupiter.request_order.await_count == orders_before
        # The live claim is left to its owner
        assert ledger.get_pending(partial.pending.id).resuming_since is not None


class TestUnresolvedLeg2:
    @pytest.mark.asyncio
    async def test_timeout_keeps_leg2_signature(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ConfirmationTimeoutError("sig-leg2-landed", 60)
        )

        pending = ledger.get_pending(partial.pending.id)
        assert pending.leg2_signature == "sig-leg2-landed"
        assert pending.leg2_expected_output == 149_000_000
        assert pending.leg2_submitted_at is not None
        assert partial.to_dict()["pending"]["leg2Signature"] == "sig-leg2-landed"

    @pytest.mark.asyncio
    async def test_definite_failure_has_no_leg2_signature(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ExecutionRejectedError("Execute failed: slippage")
        )

        assert ledger.get_pending(partial.pending.id).leg2_signature is None

    @pytest.mark.asyncio
    async def test_resume_records_landed_leg_without_new_order(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ConfirmationTimeoutError("sig-leg2-landed", 60)
        )
        engine.check_confirmation.return_value = True

        result = await orchestrator.resume_pending(partial.pending.id)

        engine.check_confirmation.assert_awaited_once_with("sig-leg2-landed")
        assert jupiter.request_order.await_count == 2
        assert engine.submit_and_confirm.await_count == 2

        assert result.success is True
        assert result.leg2.signature == "sig-leg2-landed"
        assert result.leg2.output_amount == 149_000_000

        doc = ledger.load()
        assert [t.tx_signature for t in doc.trades] == ["sig-leg1", "sig-leg2-landed"]
        assert doc.trades[1].id.startswith("trade-resume-usdc-piggy-")
        assert doc.trades[1].amount_in == 150_000_000
        assert doc.pending_conversions == []
        assert doc.treasury.current_balance_sol == 0.0
        assert doc.treasury.piggy_usdc_balance == pytest.approx(149.0)

    @pytest.mark.asyncio
    async def test_resume_waits_while_leg2_may_still_land(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ConfirmationTimeoutError("sig-leg2-slow", 60)
        )

        with pytest.raises(LegStillPendingError) as exc:
            await orchestrator.resume_pending(partial.pending.id)

        assert exc.value.signature == "sig-leg2-slow"
        assert jupiter.request_order.await_count == 2

        pending = ledger.get_pending(partial.pending.id)
        assert pending.leg2_signature == "sig-leg2-slow"
        assert pending.resuming_since is None
        assert len(ledger.load().trades) == 1

    @pytest.mark.asyncio
    async def test_resume_reorders_after_blockhash_expiry(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ConfirmationTimeoutError("sig-leg2-lost", 60)
        )

        def age(doc):
            doc.find_pending(partial.pending.id).leg2_submitted_at = "2020-01-01T00:00:00Z"

        ledger.mutate(age)
        jupiter.request_order.side_effect = [leg_orders[1]]
        engine.submit_and_confirm.side_effect = [confirmed("sig-leg2-retry", 149_000_000)]

        result = await orchestrator.resume_pending(partial.pending.id)

        engine.check_confirmation.assert_awaited_once_with("sig-leg2-lost")
        assert result.leg2.signature == "sig-leg2-retry"
        assert [t.tx_signature for t in ledger.load().trades] == ["sig-leg1", "sig-leg2-retry"]

    @pytest.mark.asyncio
    async def test_resume_reorders_when_leg2_failed_on_chain(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ConfirmationTimeoutError("sig-leg2-failed", 60)
        )
        engine.check_confirmation.side_effect = TransactionFailedError("sig-leg2-failed", {"InstructionError": [2, "Custom"]})
        jupiter.request_order.side_effect = [leg_orders[1]]
        engine.submit_and_confirm.side_effect = [confirmed("sig-leg2-retry", 149_000_000)]

        result = await orchestrator.resume_pending(partial.pending.id)

        assert result.leg2.signature == "sig-leg2-retry"
        assert ledger.load().pending_conversions == []

    @pytest.mark.asyncio
    async def test_cancelled_leg2_is_recorded_then_reraised(self, orchestrator, jupiter, engine, ledger, leg_orders):
        jupiter.request_order.side_effect = leg_orders
        submitted = asyncio.Event()

        async def submit(signed, request_id, on_submitted=None):
            if request_id == "req-leg1":
                return confirmed("sig-leg1", 150_000_000)
            on_submitted("sig-leg2-cancelled", None)
            submitted.set()
            await asyncio.Event().wait()

        engine.submit_and_confirm.side_effect = submit

        task = asyncio.create_task(orchestrator.deposit_to_target(ONE_SOL))
        await submitted.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        doc = ledger.load()
        assert [t.tx_signature for t in doc.trades] == ["sig-leg1"]
        assert len(doc.pending_conversions) == 1
        pending = doc.pending_conversions[0]
        assert pending.held_amount == 150_000_000
        assert pending.leg2_signature == "sig-leg2-cancelled"
        assert pending.leg2_expected_output == 149_000_000
        assert pending.error.startswith("CancelledError")

    @pytest.mark.asyncio
    async def test_cancelled_resume_keeps_new_signature(self, orchestrator, jupiter, engine, ledger, leg_orders):
        partial = await partial_deposit(
            orchestrator, jupiter, engine, leg_orders, ExecutionRejectedError("Execute failed: slippage")
        )
        jupiter.request_order.side_effect = [leg_orders[1]]
        submitted = asyncio.Event()

        async def submit(signed, request_id, on_submitted=None):
            on_submitted("sig-resume-cancelled", 149_200_000)
            submitted.set()
            await asyncio.Event().wait()

        engine.submit_and_confirm.side_effect = submit

        task = asyncio.create_task(orchestrator.resume_pending(partial.pending.id))
        await submitted.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        pending = ledger.get_pending(partial.pending.id)
        assert pending.resuming_since is None
        assert pending.leg2_signature == "sig-resume-cancelled"
        # Execute-reported output wins over the quote
        assert pending.leg2_expected_output == 149_200_000


class TestSwapRouting:
    @pytest.mark.asyncio
    async def test_quote_swap_path_broadcasts_without_request_id(self, orchestrator, jupiter, engine, ledger, unsigned_tx):
        orchestrator.routing_mode = "swap"
        jupiter.get_quote.return_value = Quote.from_payload({
            "inputMint": SOL, "outputMint": USDC, "inAmount": str(ONE_SOL), "outAmount": "150000000",
        })
        jupiter.build_swap_transaction.return_value = unsigned_tx
        engine.submit_and_confirm.return_value = SubmissionResult("sig-direct", True, SubmissionPath.DIRECT_BROADCAST)

        leg = await orchestrator.convert(SOL, USDC, ONE_SOL)

        assert engine.submit_and_confirm.await_args.args[1] is None
        assert leg.output_amount == 150_000_000
        assert leg.path == SubmissionPath.DIRECT_BROADCAST
        assert ledger.load().trades[0].tx_signature == "sig-direct"
        jupiter.request_order.assert_not_awaited()


class TestRefreshNativeBalance:
    @pytest.mark.asyncio
    async def test_syncs_from_chain(self, orchestrator, ledger):
        orchestrator.rpc = MagicMock(get_balance=AsyncMock(return_value=2_500_000_000))

        balance = await orchestrator.refresh_native_balance()

        assert balance == 2.5
        assert ledger.load().treasury.current_balance_sol == 2.5

    @pytest.mark.asyncio
    async def test_requires_rpc(self, orchestrator):
        with pytest.raises(RuntimeError):
            await orchestrator.refresh_native_balance()
