"""Relay configuration with CLI > env var > defaults precedence."""

import os
from dataclasses import dataclass

DEFAULT_LEDGER_URL = "https://api.devnet.solana.com"
DEFAULT_STORE_URL = "http://localhost:5001/api/v0"
DEFAULT_MONITORING_ADDRESS = "AcGNd7QUx7jsy9yhTzc6unMfu9gU1AYL1PXdXz7CM1Tx"
DEFAULT_PROGRAM_ID = "2WeZQkQ4cd86G2ymjQLRbCPGUWcipZSdFjsbKv2ArBT3"

DEFAULT_PAGE_SIZE = 10
DEFAULT_POLL_INTERVAL = 15
DEFAULT_PORT = 8200

MAX_PAGE_SIZE = 1000


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class RelayConfig:
    """Configuration for a relay process."""
    ledger_url: str = ""
    store_url: str = ""
    relay_identity: str = ""
    relay_credential: str = ""
    monitoring_address: str = ""
    program_id: str = ""
    page_size: int = 0
    poll_interval: float = 0
    port: int = 0
    log_dir: str = ""

    def __post_init__(self):
        # Apply env var defaults before CLI overrides
        if not self.ledger_url:
            self.ledger_url = os.getenv("KEYRA_LEDGER_URL", DEFAULT_LEDGER_URL)
        if not self.store_url:
            self.store_url = os.getenv("KEYRA_STORE_URL", DEFAULT_STORE_URL)
        if not self.relay_identity:
            self.relay_identity = os.getenv("KEYRA_RELAY_IDENTITY", "")
        if not self.relay_credential:
            self.relay_credential = os.getenv("KEYRA_RELAY_CREDENTIAL", "")
        if not self.monitoring_address:
            self.monitoring_address = os.getenv("KEYRA_MONITORING_ADDRESS", DEFAULT_MONITORING_ADDRESS)
        if not self.program_id:
            self.program_id = os.getenv("KEYRA_PROGRAM_ID", DEFAULT_PROGRAM_ID)
        if not self.page_size:
            self.page_size = _env_int("KEYRA_PAGE_SIZE", DEFAULT_PAGE_SIZE)
        if not self.poll_interval:
            self.poll_interval = _env_int("KEYRA_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)
        if not self.port:
            self.port = _env_int("KEYRA_RELAY_PORT", DEFAULT_PORT)
        if not self.log_dir:
            self.log_dir = os.getenv("KEYRA_LOG_DIR", "")

    def validate(self) -> None:
        """Raise ValueError listing every problem that prevents the relay from starting."""
        problems = []
        if not self.relay_identity:
            problems.append("KEYRA_RELAY_IDENTITY is not set")
        if not self.relay_credential:
            problems.append("KEYRA_RELAY_CREDENTIAL is not set")
        if not self.monitoring_address:
            problems.append("monitoring address is empty")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            problems.append(f"page size must be between 1 and {MAX_PAGE_SIZE}")
        if self.poll_interval <= 0:
            problems.append("poll interval must be positive")
        if problems:
            raise ValueError("Invalid relay configuration: " + "; ".join(problems))
