"""
Vault session management - holds the live master password in memory.

Unlock is gated on a PasswordHashRecord. The encryption key itself is never
cached: every encrypt/decrypt derives it again from the held password.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..errors import AuthenticationFailure
from .crypto import verify_password


@dataclass
class VaultSession:
    """Holds the master password and owner identity while unlocked."""

    _password: Optional[str] = None
    _unlocked_at: Optional[datetime] = None
    _user_identity: Optional[str] = None

    @property
    def is_unlocked(self) -> bool:
        """Check if vault is currently unlocked."""
        return self._password is not None

    @property
    def password(self) -> str:
        """Get the master password. Raises if locked."""
        if self._password is None:
            raise ValueError("Vault is locked")
        return self._password

    @property
    def unlocked_at(self) -> Optional[datetime]:
        """When the vault was unlocked."""
        return self._unlocked_at

    @property
    def user_identity(self) -> str:
        """The identity that owns the unlocked vault. Raises if locked."""
        if self._user_identity is None:
            raise ValueError("Vault is locked")
        return self._user_identity

    def unlock(self, password: str, user_identity: str, password_hash: Optional[str] = None) -> None:
        """Hold the password in memory, after checking it against the record if one is given."""
        if password_hash is not None and not verify_password(password, password_hash):
            raise AuthenticationFailure("Master password does not match")
        self._password = password
        self._unlocked_at = datetime.now()
        self._user_identity = user_identity

    def lock(self) -> None:
        """Clear the master password from memory."""
        self._password = None
        self._unlocked_at = None
        self._user_identity = None
