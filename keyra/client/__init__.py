"""Vault client: encrypt, upload and emit signal intents; fetch and decrypt."""

from .config import ClientConfig
from .service import IntentSubmitter, MutationResult, VaultService

__all__ = ["ClientConfig", "IntentSubmitter", "MutationResult", "VaultService"]
