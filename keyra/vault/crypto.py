"""
Vault encryption using PBKDF2 + AES-GCM.

Envelope format (all segments standard base64, joined with '.'):

    salt(16) . iv(12) . ciphertext||tag

Password hash records (local unlock gating only) are ``salt:hash`` with a
PBKDF2-SHA512 derived hash. The record is never used as an encryption key.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import AuthenticationFailure, MalformedEnvelope

logger = logging.getLogger("keyra.vault.crypto")

# PBKDF2 configuration (must match the browser client)
PBKDF2_ITERATIONS = 100000
PBKDF2_HASH = 'sha256'
PASSWORD_HASH_DIGEST = 'sha512'
KEY_LENGTH_BYTES = 32  # 256 bits
SALT_LENGTH_BYTES = 16  # 128 bits

# AES-GCM configuration
IV_LENGTH_BYTES = 12  # 96 bits, recommended for AES-GCM

ENVELOPE_SEPARATOR = '.'
RECORD_SEPARATOR = ':'


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')


def _b64decode(segment: str) -> bytes:
    return base64.b64decode(segment.encode('ascii'), validate=True)


def derive_key(password: str, salt: bytes) -> AESGCM:
    """
    Derive a 256-bit AES-GCM key from password and salt using PBKDF2-SHA256.

    Args:
        password: The master password
        salt: Exactly 16 random bytes

    Returns:
        An AESGCM cipher bound to the derived key. The raw key bytes are not
        returned to callers.

    Raises:
        ValueError: if the salt is not 16 bytes
    """
    if len(salt) != SALT_LENGTH_BYTES:
        raise ValueError(f"Salt must be {SALT_LENGTH_BYTES} bytes, got {len(salt)}")

    key = hashlib.pbkdf2_hmac(
        PBKDF2_HASH,
        password.encode('utf-8'),
        salt,
        PBKDF2_ITERATIONS,
        dklen=KEY_LENGTH_BYTES
    )
    return AESGCM(key)


def encrypt(plaintext: str, password: str) -> str:
    """
    Encrypt plaintext using AES-256-GCM under a freshly salted password key.

    Every call draws a new salt and IV, so encrypting the same plaintext twice
    yields two different envelopes.

    Args:
        plaintext: String to encrypt
        password: The master password

    Returns:
        Envelope string ``salt.iv.ciphertext`` (each segment base64)
    """
    salt = os.urandom(SALT_LENGTH_BYTES)
    iv = os.urandom(IV_LENGTH_BYTES)

    aesgcm = derive_key(password, salt)
    ciphertext = aesgcm.encrypt(iv, plaintext.encode('utf-8'), None)

    return ENVELOPE_SEPARATOR.join(
        (_b64encode(salt), _b64encode(iv), _b64encode(ciphertext))
    )


def decrypt(envelope: str, password: str) -> str:
    """
    Decrypt an envelope produced by :func:`encrypt`.

    Args:
        envelope: ``salt.iv.ciphertext`` string
        password: The master password

    Returns:
        Decrypted plaintext string

    Raises:
        MalformedEnvelope: wrong segment count, bad base64 or bad sizes
        AuthenticationFailure: wrong password or tampered ciphertext
    """
    parts = envelope.split(ENVELOPE_SEPARATOR)
    if len(parts) != 3:
        raise MalformedEnvelope(f"Expected 3 envelope segments, got {len(parts)}")

    try:
        salt, iv, ciphertext = (_b64decode(part) for part in parts)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise MalformedEnvelope("Envelope segment is not valid base64") from e

    if len(salt) != SALT_LENGTH_BYTES or len(iv) != IV_LENGTH_BYTES:
        raise MalformedEnvelope("Envelope salt or IV has the wrong length")

    aesgcm = derive_key(password, salt)
    try:
        plaintext = aesgcm.decrypt(iv, ciphertext, None)
    except InvalidTag as e:
        raise AuthenticationFailure("Envelope failed authentication") from e

    try:
        return plaintext.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedEnvelope("Decrypted payload is not UTF-8") from e


def encrypt_object(data: Any, password: str) -> str:
    """
    Encrypt a Python object as compact JSON.

    Args:
        data: Object to encrypt (must be JSON-serializable)
        password: The master password

    Returns:
        Envelope string
    """
    json_str = json.dumps(data, separators=(',', ':'))
    return encrypt(json_str, password)


def decrypt_object(envelope: str, password: str) -> Any:
    """
    Decrypt and parse a JSON object.

    Raises:
        MalformedEnvelope: if the plaintext is not valid JSON
    """
    json_str = decrypt(envelope, password)
    try:
        return json.loads(json_str)
    except json.JSONDecodeError as e:
        raise MalformedEnvelope("Decrypted payload is not valid JSON") from e


def _password_hash(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac(
        PASSWORD_HASH_DIGEST,
        password.encode('utf-8'),
        salt,
        PBKDF2_ITERATIONS,
        dklen=KEY_LENGTH_BYTES
    )


def hash_password(password: str) -> str:
    """
    Hash a master password for local unlock gating.

    Returns:
        ``salt:hash`` record, both base64, with a fresh 16-byte salt
    """
    salt = os.urandom(SALT_LENGTH_BYTES)
    derived = _password_hash(password, salt)
    return f"{_b64encode(salt)}{RECORD_SEPARATOR}{_b64encode(derived)}"


def verify_password(password: str, record: str) -> bool:
    """
    Check a password against a ``salt:hash`` record.

    Never raises: a malformed record simply does not verify.
    """
    parts = record.split(RECORD_SEPARATOR) if isinstance(record, str) else []
    if len(parts) != 2 or not parts[0] or not parts[1]:
        logger.warning("Invalid stored password hash format")
        return False

    salt_b64, stored_hash_b64 = parts
    try:
        salt = _b64decode(salt_b64)
    except (binascii.Error, UnicodeEncodeError):
        logger.warning("Stored password hash has an invalid salt")
        return False
    if not salt:
        return False

    derived_b64 = _b64encode(_password_hash(password, salt))
    return hmac.compare_digest(derived_b64.encode('ascii'), stored_hash_b64.encode('utf-8'))
