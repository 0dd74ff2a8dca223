"""
Syndicate Configuration
=======================
Static protocol constants (`Settings`) plus the environment-derived
`SyndicateConfig` that is built once at startup and handed to every
component constructor.

Usage:
    config = SyndicateConfig.from_env()
    rpc_url = config.require("rpc_url")   # raises ConfigurationError if unset
"""

import os
from dataclasses import dataclass, field, fields
from typing import Optional

from dotenv import load_dotenv

from syndicate.shared.execution.errors import ConfigurationError


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # MINTS
    # ═══════════════════════════════════════════════════════════════════
    SOL_MINT = "So11111111111111111111111111111111111111112"
    USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    PIGGY_USDC_MINT = "F35yYmTR6PqkbTx449P1eGhB57mRhWAdYs93eCo2dMZR"

    SOL_DECIMALS = 9
    USDC_DECIMALS = 6
    PIGGY_USDC_DECIMALS = 6

    LAMPORTS_PER_SOL = 1_000_000_000

    # ═══════════════════════════════════════════════════════════════════
    # ROUTING SERVICE (Jupiter)
    # ═══════════════════════════════════════════════════════════════════
    JUPITER_ULTRA_API = "https://api.jup.ag/ultra/v1"
    JUPITER_QUOTE_API = "https://quote-api.jup.ag/v6"
    DEFAULT_SLIPPAGE_BPS = 50
    HTTP_TIMEOUT_S = 15.0

    # ═══════════════════════════════════════════════════════════════════
    # CHAIN SUBMISSION
    # ═══════════════════════════════════════════════════════════════════
    BROADCAST_ATTEMPTS = 3
    BROADCAST_BACKOFF_S = 0.5
    CONFIRMATION_TIMEOUT_S = 60
    CONFIRMATION_POLL_S = 0.5
    # Recent blockhashes expire after ~150 slots; past this an unconfirmed tx can no longer land
    BLOCKHASH_VALIDITY_S = 90
    RESUME_CLAIM_TTL_S = 600

    # ═══════════════════════════════════════════════════════════════════
    # SYNDICATE
    # ═══════════════════════════════════════════════════════════════════
    SYNDICATE_NAME = "The Agent Syndicate"
    TREASURY_SEED = "1 SOL"
    SEED_BALANCE_SOL = 1.0
    DEPOSIT_THESIS_ID = "seed-deposit"
    DEFAULT_AGENT_ID = 896
    DEFAULT_DEPOSIT_LAMPORTS = 1_000_000_000

    FORUM_API = "https://agents.colosseum.com/api"

    ROUTING_MODES = ("ultra", "swap")


@dataclass
class SyndicateConfig:
    """
    Explicit runtime configuration.

    Secrets and endpoints are Optional here; components call `require()`
    for the ones they actually need so a missing value fails fast with a
    named ConfigurationError instead of a silent default.
    """

    rpc_url: Optional[str] = None
    private_key: Optional[str] = field(default=None, repr=False)
    public_key: Optional[str] = None
    jupiter_api_key: Optional[str] = field(default=None, repr=False)
    port: Optional[int] = None
    ledger_path: str = "syndicate_ledger.json"
    routing_mode: str = "ultra"
    confirm_timeout_s: float = Settings.CONFIRMATION_TIMEOUT_S
    forum_api_key: Optional[str] = field(default=None, repr=False)
    forum_api_url: str = Settings.FORUM_API
    agent_id: int = Settings.DEFAULT_AGENT_ID

    # Environment variable backing each field
    ENV_KEYS = {
        "rpc_url": "SOLANA_RPC_URL",
        "private_key": "SOLANA_PRIVATE_KEY",
        "public_key": "SOLANA_PUBLIC_KEY",
        "jupiter_api_key": "JUPITER_API_KEY",
        "port": "PORT",
        "ledger_path": "SYNDICATE_LEDGER_PATH",
        "routing_mode": "ROUTING_MODE",
        "confirm_timeout_s": "CONFIRM_TIMEOUT_S",
        "forum_api_key": "COLOSSEUM_API_KEY",
        "forum_api_url": "COLOSSEUM_API_URL",
        "agent_id": "SYNDICATE_AGENT_ID",
    }

    def __post_init__(self):
        if self.routing_mode not in Settings.ROUTING_MODES:
            raise ConfigurationError(
                "routing_mode",
                f"ROUTING_MODE must be one of {Settings.ROUTING_MODES}, got {self.routing_mode!r}",
            )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, environ=None) -> "SyndicateConfig":
        """Build the config from the process environment (after loading .env)."""
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        values = {}
        for f in fields(cls):
            env_key = cls.ENV_KEYS.get(f.name)
            raw = environ.get(env_key) if env_key else None
            if raw is None or raw == "":
                continue
            try:
                if f.name in ("port", "agent_id"):
                    values[f.name] = int(raw)
                elif f.name == "confirm_timeout_s":
                    values[f.name] = float(raw)
                else:
                    values[f.name] = raw
            except ValueError as e:
                raise ConfigurationError(env_key, f"{env_key} is not a valid number: {raw!r}") from e

        return cls(**values)

    def require(self, name: str):
        """Return a configured value or raise ConfigurationError naming its env var."""
        value = getattr(self, name)
        if value is None or value == "":
            env_key = self.ENV_KEYS.get(name, name.upper())
            raise ConfigurationError(env_key)
        return value
