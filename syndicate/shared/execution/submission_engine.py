"""
Submission & Confirmation Engine
================================
Gets an already-signed transaction on-chain and waits for it.

    signed bytes + requestId
          │
          ▼
    POST /execute ──► ServiceConfirmed ──► wait for confirmation
          │
          ├────────► ServiceRejected  ──► ExecutionRejectedError (no fallback)
          │
          └────────► Ambiguous        ──► direct broadcast (same bytes) ──► wait

The routing service does not always relay execution, so the ambiguous
branch self-broadcasts the exact bytes already signed: no re-sign, no
re-quote. With no requestId (quote/swap integration) there is no execute
endpoint and the engine broadcasts directly.
"""

from typing import Callable, Optional

from syndicate.shared.config.settings import Settings
from syndicate.shared.execution.errors import ExecutionRejectedError
from syndicate.shared.execution.execution_result import (
    Ambiguous,
    ServiceConfirmed,
    ServiceRejected,
    SubmissionPath,
    SubmissionResult,
)
from syndicate.shared.infrastructure.chain_rpc import ChainRpc
from syndicate.shared.infrastructure.jupiter_client import JupiterClient
from syndicate.shared.system.logging import Logger


class SubmissionEngine:
    def __init__(
        self,
        jupiter: JupiterClient,
        rpc: ChainRpc,
        confirm_timeout_s: float = Settings.CONFIRMATION_TIMEOUT_S,
    ):
        self.jupiter = jupiter
        self.rpc = rpc
        self.confirm_timeout_s = confirm_timeout_s

    async def submit_and_confirm(
        self,
        signed_transaction: bytes,
        request_id: Optional[str] = None,
        timeout: Optional[float] = None,
        wait: bool = True,
        on_submitted: Optional[Callable[[str, Optional[int]], None]] = None,
    ) -> SubmissionResult:
        """
        Submit and (by default) wait for "confirmed" commitment.

        Args:
            signed_transaction: fully signed VersionedTransaction bytes
            request_id: routing-service request id; None skips /execute
            timeout: confirmation bound in seconds (defaults to the engine's)
            wait: False returns right after submission with confirmed=False
            on_submitted: called with (signature, reported output) once the
                transaction is out, before the confirmation wait starts

        Raises:
            ExecutionRejectedError: the routing service reported failure
            BroadcastError: direct broadcast exhausted its attempts
            ConfirmationTimeoutError: submitted, but not confirmed in time
            TransactionFailedError: landed with an on-chain error
        """
        total_output_amount = None

        if request_id is None:
            path = SubmissionPath.DIRECT_BROADCAST
            signature = await self.rpc.broadcast(signed_transaction)
        else:
            outcome = await self.jupiter.execute(signed_transaction, request_id)

            if isinstance(outcome, ServiceConfirmed):
                path = SubmissionPath.ROUTING_SERVICE
                signature = outcome.signature
                total_output_amount = outcome.total_output_amount
                Logger.info(f"[ENGINE] Routing service relayed tx: {signature}")
            elif isinstance(outcome, ServiceRejected):
                Logger.error(f"[ENGINE] Execute rejected: {outcome.reason}")
                raise ExecutionRejectedError(
                    f"Execute failed: {outcome.reason}",
                    status_code=outcome.status_code,
                    body=outcome.raw_response,
                )
            elif isinstance(outcome, Ambiguous):
                Logger.warning(f"[ENGINE] No signature in execute response, sending directly: {outcome.raw_response}")
                path = SubmissionPath.DIRECT_BROADCAST
                signature = await self.rpc.broadcast(signed_transaction)
            else:
                raise TypeError(f"Unknown execute outcome: {outcome!r}")

        if on_submitted is not None:
            on_submitted(signature, total_output_amount)

        if not wait:
            return SubmissionResult(signature, False, path, total_output_amount)

        Logger.info(f"[ENGINE] Waiting for confirmation: {signature}")
        await self.rpc.wait_for_confirmation(signature, timeout if timeout is not None else self.confirm_timeout_s)
        Logger.success(f"[ENGINE] Confirmed: https://solscan.io/tx/{signature}")
        return SubmissionResult(signature, True, path, total_output_amount)

    async def check_confirmation(self, signature: str) -> bool:
        """Out-of-band re-check for a signature that previously timed out."""
        return await self.rpc.is_confirmed(signature)
