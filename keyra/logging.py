"""
Centralized logging configuration for Keyra.

Provides:
- Console logging with colored, prefixed output by component area
- File logging with timestamps for post-mortem analysis
- Access to the most recent log lines for the relay status server

Modules log through plain ``logging.getLogger("keyra.<area>.<module>")``;
this module only decides where those records go.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# ANSI color codes for console output
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_BLUE = "\033[94m"
    BRIGHT_MAGENTA = "\033[95m"
    BRIGHT_CYAN = "\033[96m"


# Area-specific colors and prefixes
AREA_CONFIG = {
    "main": {"color": Colors.BRIGHT_CYAN, "prefix": "KEYRA.main"},
    "relay": {"color": Colors.BRIGHT_MAGENTA, "prefix": "KEYRA.relay"},
    "ledger": {"color": Colors.BRIGHT_BLUE, "prefix": "KEYRA.ledger"},
    "store": {"color": Colors.BRIGHT_YELLOW, "prefix": "KEYRA.store"},
    "vault": {"color": Colors.BRIGHT_GREEN, "prefix": "KEYRA.vault"},
    "intents": {"color": Colors.GREEN, "prefix": "KEYRA.intents"},
    "client": {"color": Colors.CYAN, "prefix": "KEYRA.client"},
}

# Default for unknown areas
DEFAULT_AREA_CONFIG = {"color": Colors.WHITE, "prefix": "KEYRA"}

ROOT_LOGGER_NAME = "keyra"


def area_for(logger_name: str) -> str:
    """Map a logger name like ``keyra.relay.monitor`` to its area (``relay``)."""
    parts = logger_name.split(".")
    if len(parts) >= 2 and parts[0] == ROOT_LOGGER_NAME:
        return parts[1]
    return "main"


class ColoredConsoleFormatter(logging.Formatter):
    """Custom formatter that adds colors and area prefixes to console output."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.DIM,
        logging.INFO: Colors.RESET,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BRIGHT_RED + Colors.BOLD,
    }

    def format(self, record: logging.LogRecord) -> str:
        config = AREA_CONFIG.get(area_for(record.name), DEFAULT_AREA_CONFIG)
        level_color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        # Format: [KEYRA.area] HH:MM:SS LEVEL: message
        prefix = f"{config['color']}[{config['prefix']}]{Colors.RESET}"
        time_str = f"{Colors.DIM}{timestamp}{Colors.RESET}"
        level_str = f"{level_color}{record.levelname:<8}{Colors.RESET}"

        message = f"{prefix} {time_str} {level_str} {record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class FileFormatter(logging.Formatter):
    """Formatter for file output with full timestamps and structured format."""

    def format(self, record: logging.LogRecord) -> str:
        config = AREA_CONFIG.get(area_for(record.name), DEFAULT_AREA_CONFIG)
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        # Include extra context if available
        extra = ""
        if hasattr(record, "tx_id"):
            extra += f" tx_id={record.tx_id}"
        if hasattr(record, "cid"):
            extra += f" cid={record.cid}"

        # Format: TIMESTAMP [AREA] LEVEL: message (extra)
        line = f"{timestamp} [{config['prefix']}] {record.levelname}: {record.getMessage()}{extra}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# Global log directory
_log_dir: Optional[Path] = None
_file_handler: Optional[logging.FileHandler] = None


def setup_logging(
    log_dir: Optional[str] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Initialize the logging system for the ``keyra`` logger tree.

    Args:
        log_dir: Directory for log files. Defaults to ./logs
        console_level: Minimum level for console output
        file_level: Minimum level for file output

    Returns:
        Path to the log directory
    """
    global _log_dir, _file_handler

    _log_dir = Path(log_dir) if log_dir else Path.cwd() / "logs"
    _log_dir.mkdir(parents=True, exist_ok=True)

    # One log file per process start
    log_filename = datetime.now().strftime("keyra_%Y%m%d_%H%M%S.log")
    log_path = _log_dir / log_filename

    # Also create/update a symlink to latest log
    latest_link = _log_dir / "latest.log"
    try:
        if latest_link.is_symlink() or latest_link.exists():
            latest_link.unlink()
        latest_link.symlink_to(log_filename)
    except OSError:
        pass  # Symlinks may not work on all systems

    _file_handler = logging.FileHandler(log_path, encoding="utf-8")
    _file_handler.setLevel(file_level)
    _file_handler.setFormatter(FileFormatter())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredConsoleFormatter())

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)  # Capture everything, handlers filter
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_file_handler)
    root_logger.propagate = False

    root_logger.info(f"Logging initialized. Log file: {log_path}")

    return _log_dir


def get_recent_logs(lines: int = 100) -> list[str]:
    """
    Read the most recent log entries.

    Args:
        lines: Number of lines to return

    Returns:
        List of log lines (most recent last)
    """
    if not _log_dir:
        return []

    latest = _log_dir / "latest.log"
    if not latest.exists():
        return []

    try:
        with open(latest, "r", encoding="utf-8") as f:
            all_lines = f.readlines()
            return all_lines[-lines:]
    except OSError:
        return []
