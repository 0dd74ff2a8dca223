"""
Chain RPC (Async)
=================
The three chain operations the treasury needs:

- balance lookup by address
- direct broadcast of already-signed bytes (bounded attempts, preflight on)
- confirmation wait at "confirmed" commitment, boundable by a timeout

Broadcast re-sends the SAME signed bytes on each attempt, so a retry can
never produce a second, different transaction.
"""

import asyncio
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from syndicate.shared.config.settings import Settings
from syndicate.shared.execution.errors import (
    BroadcastError,
    ConfirmationTimeoutError,
    TransactionFailedError,
)
from syndicate.shared.system.logging import Logger

_LANDED = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)


class ChainRpc:
    """
    Thin wrapper over solana-py's AsyncClient.

    Usage:
        rpc = ChainRpc(AsyncClient(config.rpc_url, commitment=Confirmed))
        sig = await rpc.broadcast(signed_bytes)
        await rpc.wait_for_confirmation(sig, timeout=60)
    """

    def __init__(
        self,
        client: AsyncClient,
        attempts: int = Settings.BROADCAST_ATTEMPTS,
        backoff_s: float = Settings.BROADCAST_BACKOFF_S,
        poll_interval_s: float = Settings.CONFIRMATION_POLL_S,
    ):
        self.client = client
        self.attempts = attempts
        self.backoff_s = backoff_s
        self.poll_interval_s = poll_interval_s

    @classmethod
    def from_url(cls, rpc_url: str, **kwargs) -> "ChainRpc":
        return cls(AsyncClient(rpc_url, commitment=Confirmed), **kwargs)

    async def aclose(self) -> None:
        await self.client.close()

    async def get_balance(self, address: str) -> int:
        """Native balance in lamports."""
        resp = await self.client.get_balance(Pubkey.from_string(address), commitment=Confirmed)
        return int(resp.value)

    async def broadcast(self, signed_transaction: bytes) -> str:
        """Send signed bytes straight to the chain. Raises BroadcastError after the last attempt."""
        opts = TxOpts(skip_preflight=False, preflight_commitment=Confirmed, max_retries=self.attempts)
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.attempts + 1):
            try:
                resp = await self.client.send_raw_transaction(bytes(signed_transaction), opts=opts)
                signature = str(resp.value)
                Logger.info(f"[RPC] Broadcast accepted (attempt {attempt}/{self.attempts}): {signature}")
                return signature
            except Exception as e:
                # RPCException, SolanaRpcException and transport errors all retry
                last_error = e
                Logger.warning(f"[RPC] Broadcast attempt {attempt}/{self.attempts} failed: {e}")
                if attempt < self.attempts:
                    await asyncio.sleep(self.backoff_s * attempt)

        raise BroadcastError(
            f"Direct broadcast failed after {self.attempts} attempts: {last_error}",
            attempts=self.attempts,
            last_error=last_error,
        )

    async def is_confirmed(self, signature: str) -> bool:
        """One-shot status check. Raises TransactionFailedError if it landed with an error."""
        resp = await self.client.get_signature_statuses([Signature.from_string(signature)])
        status = resp.value[0] if resp.value else None
        if status is None:
            return False
        if status.err is not None:
            raise TransactionFailedError(signature, status.err)
        return status.confirmation_status in _LANDED

    async def wait_for_confirmation(self, signature: str, timeout: Optional[float] = None) -> None:
        """
        Block (cooperatively) until `signature` reaches confirmed commitment.

        Raises ConfirmationTimeoutError when `timeout` elapses first. The
        signature may still land afterwards; re-check with is_confirmed().
        """
        try:
            await asyncio.wait_for(self._poll_until_landed(signature), timeout)
        except asyncio.TimeoutError as e:
            raise ConfirmationTimeoutError(signature, timeout) from e
        except asyncio.CancelledError:
            Logger.warning(f"[RPC] Confirmation wait cancelled; submitted but not confirmed: {signature}")
            raise

    async def _poll_until_landed(self, signature: str) -> None:
        while True:
            try:
                if await self.is_confirmed(signature):
                    return
            except TransactionFailedError:
                raise
            except Exception as e:
                # Transient RPC errors keep polling; the outer timeout bounds the wait
                Logger.debug(f"[RPC] Status poll error for {signature[:16]}: {e}")
            await asyncio.sleep(self.poll_interval_s)
