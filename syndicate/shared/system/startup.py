"""
Service wiring: builds every component once from a SyndicateConfig and
hands the same instances to the CLI and the HTTP app.
"""

from dataclasses import dataclass
from typing import Optional

from syndicate.governance.intake import ThesisIntake
from syndicate.shared.config.settings import SyndicateConfig
from syndicate.shared.execution.errors import ConfigurationError
from syndicate.shared.execution.settlement import SettlementRecorder
from syndicate.shared.execution.submission_engine import SubmissionEngine
from syndicate.shared.infrastructure.chain_rpc import ChainRpc
from syndicate.shared.infrastructure.forum_client import ForumClient
from syndicate.shared.infrastructure.jupiter_client import JupiterClient
from syndicate.shared.infrastructure.signer import TransactionSigner, load_keypair
from syndicate.shared.persistence.ledger_store import LedgerStore
from syndicate.shared.system.logging import Logger
from syndicate.treasury.orchestrator import SwapOrchestrator


@dataclass
class SyndicateServices:
    config: SyndicateConfig
    ledger: LedgerStore
    forum: ForumClient
    intake: ThesisIntake
    orchestrator: Optional[SwapOrchestrator] = None
    jupiter: Optional[JupiterClient] = None
    rpc: Optional[ChainRpc] = None

    def require_orchestrator(self) -> SwapOrchestrator:
        if self.orchestrator is None:
            raise ConfigurationError("SOLANA_PRIVATE_KEY", "Trading is not configured (SOLANA_PRIVATE_KEY not set)")
        return self.orchestrator

    async def aclose(self) -> None:
        await self.forum.aclose()
        if self.jupiter is not None:
            await self.jupiter.aclose()
        if self.rpc is not None:
            await self.rpc.aclose()


def build_services(config: SyndicateConfig, trading: bool = True) -> SyndicateServices:
    """
    Wire the component graph.

    With `trading=True` the signing key and RPC endpoint are required and a
    missing one raises ConfigurationError here, before any request is served.
    With `trading=False` only the ledger and forum side is built.
    """
    signer = None
    if trading:
        signer = TransactionSigner(load_keypair(config.require("private_key")))

    wallet = config.public_key or (signer.public_key if signer else "")
    ledger = LedgerStore(config.ledger_path, wallet=wallet)
    forum = ForumClient(api_key=config.forum_api_key, base_url=config.forum_api_url)
    services = SyndicateServices(config=config, ledger=ledger, forum=forum, intake=ThesisIntake(forum, ledger))

    if not trading:
        return services

    rpc = ChainRpc.from_url(config.require("rpc_url"))
    jupiter = JupiterClient(api_key=config.jupiter_api_key)
    engine = SubmissionEngine(jupiter, rpc, confirm_timeout_s=config.confirm_timeout_s)
    services.rpc = rpc
    services.jupiter = jupiter
    services.orchestrator = SwapOrchestrator(
        jupiter,
        signer,
        engine,
        SettlementRecorder(ledger),
        ledger,
        rpc=rpc,
        routing_mode=config.routing_mode,
        agent_id=config.agent_id,
    )
    Logger.info(f"[SYSTEM] Trading wired for {signer.public_key} ({config.routing_mode} routing)")
    return services
