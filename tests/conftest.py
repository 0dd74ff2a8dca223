"""
Agent Syndicate Test Configuration
==================================
Shared fixtures and pytest markers for the test suite.
"""

import os
import sys
import tempfile

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep per-run log files out of the working tree
os.environ.setdefault("SYNDICATE_LOG_DIR", tempfile.mkdtemp(prefix="syndicate-logs-"))

from syndicate.shared.config.settings import Settings  # noqa: E402
from syndicate.shared.persistence.ledger_store import LedgerStore  # noqa: E402
from syndicate.shared.system.logging import Logger  # noqa: E402


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_logger():
    Logger.set_silent(True)
    yield
    Logger.set_silent(False)


@pytest.fixture
def keypair():
    """Deterministic treasury key."""
    return Keypair.from_seed(bytes([7] * 32))


@pytest.fixture
def other_keypair():
    return Keypair.from_seed(bytes([9] * 32))


def build_unsigned_transaction(payer: Keypair, lamports: int = 1_000) -> bytes:
    """A one-instruction v0 transfer with an empty signature slot for `payer`."""
    ix = transfer(
        TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=lamports)
    )
    message = MessageV0.try_compile(payer.pubkey(), [ix], [], Hash.default())
    return bytes(VersionedTransaction.populate(message, [Signature.default()]))


@pytest.fixture
def unsigned_tx(keypair):
    return build_unsigned_transaction(keypair)


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "syndicate_ledger.json"


@pytest.fixture
def ledger(ledger_path):
    return LedgerStore(str(ledger_path), wallet="TreasuryWallet111")


@pytest.fixture
def order_payload(unsigned_tx):
    """Golden path /order response (1 SOL -> ~150 USDC)."""
    import base64

    return {
        "inputMint": Settings.SOL_MINT,
        "outputMint": Settings.USDC_MINT,
        "inAmount": "1000000000",
        "outAmount": "150000000",
        "transaction": base64.b64encode(unsigned_tx).decode(),
        "requestId": "req-abc123",
        "slippageBps": 50,
    }
