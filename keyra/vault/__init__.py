"""Vault codec: password-derived encryption of vault entries."""

from .crypto import (
    decrypt,
    decrypt_object,
    derive_key,
    encrypt,
    encrypt_object,
    hash_password,
    verify_password,
)
from .entry import StoredEntry, VaultEntry
from .generator import generate_secret, strength_score
from .session import VaultSession

__all__ = [
    'derive_key',
    'encrypt',
    'decrypt',
    'encrypt_object',
    'decrypt_object',
    'hash_password',
    'verify_password',
    'generate_secret',
    'strength_score',
    'VaultEntry',
    'StoredEntry',
    'VaultSession',
]
