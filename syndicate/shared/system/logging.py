"""
Centralized Logger with Rich Console
====================================
Static facade used by every treasury component.

Usage:
    from syndicate.shared.system.logging import Logger

    Logger.info("[JUPITER] Order received")
    Logger.success("[ENGINE] Confirmed")
    Logger.warning("[SYNDICATE] Leg 2 failed, holding USDC")
    Logger.section("Deposit")
"""

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.text import Text

_run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
_console = Console()
_file_logger: Optional[logging.Logger] = None


# =============================================================================
# SOURCE ICONS (for visual scanning)
# =============================================================================

SOURCE_ICONS = {
    "SYSTEM": "🏛️",
    "LEDGER": "📒",
    "JUPITER": "🪐",
    "SIGNER": "🔐",
    "ENGINE": "🚀",
    "RPC": "📡",
    "SETTLE": "💰",
    "SYNDICATE": "🤝",
    "FORUM": "💬",
    "API": "🛸",
}

LEVEL_STYLES = {
    "INFO": "cyan",
    "SUCCESS": "green bold",
    "WARNING": "yellow",
    "ERROR": "red bold",
    "DEBUG": "dim",
    "CRITICAL": "red bold reverse",
}


def _get_file_logger() -> logging.Logger:
    """Per-run rotating log file, created on first use."""
    global _file_logger
    if _file_logger is not None:
        return _file_logger

    log_dir = os.getenv("SYNDICATE_LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"syndicate_{_run_id}.log")

    handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )

    file_logger = logging.getLogger("AgentSyndicate")
    file_logger.setLevel(logging.DEBUG)
    file_logger.propagate = False
    file_logger.addHandler(handler)
    _file_logger = file_logger
    return file_logger


class Logger:
    """
    Colour-coded console output via Rich, mirrored to a rotating file.

    A leading [SOURCE] tag in the message becomes its own column.
    """

    _silent_mode = False

    @staticmethod
    def _timestamp() -> str:
        now = datetime.now()
        return f"{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d}"

    @staticmethod
    def _parse_source(message: str) -> tuple:
        """Extract [SOURCE] tag from message if present."""
        stripped = message.strip()
        if stripped.startswith("[") and "]" in stripped:
            tag_end = stripped.index("]")
            source = stripped[1:tag_end].upper()
            if 0 < len(source) < 15:
                return source, stripped[tag_end + 1:].strip()
        return "SYSTEM", message

    @staticmethod
    def _format_console(level: str, message: str, source: str) -> None:
        if Logger._silent_mode:
            return

        icon = SOURCE_ICONS.get(source, "")
        line = Text()
        line.append(f"{Logger._timestamp()} ", style="dim")
        line.append(f"| {level[:8].ljust(8)} ", style=LEVEL_STYLES.get(level, "white"))
        line.append(f"| {source[:10].ljust(10)} | ", style="dim")
        line.append(f"{icon} {message}" if icon else message)
        _console.print(line)

    @staticmethod
    def _log_to_file(level: int, message: str, source: str) -> None:
        _get_file_logger().log(level, f"[{source}] {message}")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def info(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("INFO", msg, source)
        Logger._log_to_file(logging.INFO, msg, source)

    @staticmethod
    def success(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("SUCCESS", msg, source)
        Logger._log_to_file(logging.INFO, f"✅ {msg}", source)

    @staticmethod
    def warning(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("WARNING", msg, source)
        Logger._log_to_file(logging.WARNING, msg, source)

    @staticmethod
    def error(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("ERROR", msg, source)
        Logger._log_to_file(logging.ERROR, msg, source)

    @staticmethod
    def debug(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._log_to_file(logging.DEBUG, msg, source)

    @staticmethod
    def critical(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("CRITICAL", f"🛑 {msg}", source)
        Logger._log_to_file(logging.CRITICAL, f"🛑 {msg}", source)

    @staticmethod
    def section(title: str) -> None:
        if not Logger._silent_mode:
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")
        Logger._log_to_file(logging.INFO, f"=== {title} ===", "SYSTEM")

    @staticmethod
    def set_silent(silent: bool) -> None:
        """Enable/disable console output. File logging continues."""
        Logger._silent_mode = silent
