"""Error taxonomy shared by the codec, store client, ledger client and relay."""


class KeyraError(Exception):
    """Base class for all Keyra errors."""


# --- Vault codec ---

class DecryptionError(KeyraError):
    """Raised when a cipher envelope cannot be turned back into plaintext."""


class MalformedEnvelope(DecryptionError):
    """Raised when an envelope is structurally invalid (segments, base64, sizes)."""


class AuthenticationFailure(DecryptionError):
    """Raised on AEAD tag mismatch or a password that does not verify.

    Tampered ciphertext and a wrong password are reported identically.
    """


# --- Content-addressed store ---

class StoreError(KeyraError):
    """Base class for object store failures."""


class StoreUnavailable(StoreError):
    """Raised when the store cannot be reached, even after one forced reconnect."""


class NotFound(StoreError):
    """Raised when the store answered but the requested content is absent."""

    def __init__(self, cid: str):
        super().__init__(f"Content not found: {cid}")
        self.cid = cid


# --- Signal intents ---

class MalformedIntent(KeyraError):
    """Raised when a memo is not a well-formed signal intent."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# --- Ledger ---

class LedgerError(KeyraError):
    """Base class for ledger RPC failures."""


class LedgerUnavailable(LedgerError):
    """Raised on transport-level failures talking to the ledger endpoint."""


class LedgerRpcError(LedgerError):
    """Raised when the ledger returns a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str):
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message


class DispatchFailure(KeyraError):
    """Raised by the ledger facade when a mutation call is rejected or fails."""
