"""VaultEntry: the plaintext record stored (encrypted) under a CID."""

import json
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Optional

from ..errors import MalformedEnvelope
from .crypto import decrypt_object, encrypt_object

# Older clients stored the secret under "password"
_LEGACY_KEYS = {"password": "secret"}


@dataclass(frozen=True)
class VaultEntry:
    """A single secret. It has no identity until uploaded; then its id is its CID."""

    title: str = ""
    username: str = ""
    secret: str = ""
    url: str = ""
    category: str = ""

    def to_json(self) -> str:
        """Canonical compact JSON (field order: title, username, secret, url, category)."""
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VaultEntry":
        values = {}
        names = {f.name for f in fields(cls)}
        for key, value in data.items():
            key = _LEGACY_KEYS.get(key, key)
            if key in names and key not in values:
                values[key] = "" if value is None else str(value)
        return cls(**values)

    def merged(self, **changes: Optional[str]) -> "VaultEntry":
        """Return a copy with the non-None changes applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def encrypt(self, password: str) -> str:
        return encrypt_object(asdict(self), password)

    @classmethod
    def decrypt(cls, envelope: str, password: str) -> "VaultEntry":
        data = decrypt_object(envelope, password)
        if not isinstance(data, dict):
            raise MalformedEnvelope("Decrypted payload is not a vault entry")
        return cls.from_dict(data)


@dataclass(frozen=True)
class StoredEntry:
    """A VaultEntry paired with the CID it was loaded from."""

    cid: str
    entry: VaultEntry
