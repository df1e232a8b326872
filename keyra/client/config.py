"""Client configuration with CLI > env var > defaults precedence."""

import os
from dataclasses import dataclass

from ..relay.config import (
    DEFAULT_LEDGER_URL,
    DEFAULT_MONITORING_ADDRESS,
    DEFAULT_PROGRAM_ID,
    DEFAULT_STORE_URL,
)


@dataclass
class ClientConfig:
    """Configuration for the vault client."""
    ledger_url: str = ""
    store_url: str = ""
    monitoring_address: str = ""
    program_id: str = ""
    user_identity: str = ""
    password_hash: str = ""

    def __post_init__(self):
        if not self.ledger_url:
            self.ledger_url = os.getenv("KEYRA_LEDGER_URL", DEFAULT_LEDGER_URL)
        if not self.store_url:
            self.store_url = os.getenv("KEYRA_STORE_URL", DEFAULT_STORE_URL)
        if not self.monitoring_address:
            self.monitoring_address = os.getenv("KEYRA_MONITORING_ADDRESS", DEFAULT_MONITORING_ADDRESS)
        if not self.program_id:
            self.program_id = os.getenv("KEYRA_PROGRAM_ID", DEFAULT_PROGRAM_ID)
        if not self.user_identity:
            self.user_identity = os.getenv("KEYRA_USER_IDENTITY", "")
        if not self.password_hash:
            self.password_hash = os.getenv("KEYRA_PASSWORD_HASH", "")
