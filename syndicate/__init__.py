"""Agent Syndicate: collective treasury routing SOL into piggyUSDC via Jupiter."""

__version__ = "1.0.0"
