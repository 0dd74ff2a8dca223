"""
Transaction Signer
==================
Attaches the treasury key's signature to an unsigned VersionedTransaction.

No network I/O. Ed25519 signing is deterministic, so identical unsigned
bytes and key material always produce identical signed bytes.
"""

import json
from typing import List

from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from syndicate.shared.execution.errors import ConfigurationError, MalformedTransactionError
from syndicate.shared.system.logging import Logger


def load_keypair(raw: str) -> Keypair:
    """
    Parse private key material.

    Accepts a JSON byte array (`[12, 34, ...]`, 64 bytes) or a base58
    encoded secret key.
    """
    raw = (raw or "").strip()
    if not raw:
        raise ConfigurationError("SOLANA_PRIVATE_KEY")
    try:
        if raw.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(raw)))
        return Keypair.from_base58_string(raw)
    except Exception as e:
        # solders surfaces several error types for bad key material
        raise ConfigurationError("SOLANA_PRIVATE_KEY", f"SOLANA_PRIVATE_KEY is not a valid keypair: {e}") from e


class TransactionSigner:
    """
    Usage:
        signer = TransactionSigner(keypair)
        signed = signer.sign(unsigned_bytes)
    """

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @property
    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    def sign(self, unsigned_transaction: bytes) -> bytes:
        return sign_transaction(unsigned_transaction, self.keypair)


def sign_transaction(unsigned_transaction: bytes, keypair: Keypair) -> bytes:
    """
    Deserialize, place exactly one signature for `keypair`, re-serialize.

    Signatures already present for other signers are preserved; only the
    slot belonging to the held key is written.
    """
    try:
        tx = VersionedTransaction.from_bytes(bytes(unsigned_transaction))
    except Exception as e:
        raise MalformedTransactionError(f"Cannot deserialize transaction: {e}") from e

    message = tx.message
    required = message.header.num_required_signatures
    signer_keys = list(message.account_keys[:required])
    pubkey = keypair.pubkey()
    if pubkey not in signer_keys:
        raise MalformedTransactionError(f"Transaction does not require a signature from {pubkey}")

    signatures: List[Signature] = list(tx.signatures)[:required]
    signatures += [Signature.default()] * (required - len(signatures))
    signatures[signer_keys.index(pubkey)] = keypair.sign_message(to_bytes_versioned(message))

    signed = VersionedTransaction.populate(message, signatures)
    Logger.debug(f"[SIGNER] Signed tx {signatures[0]} for {pubkey}")
    return bytes(signed)
