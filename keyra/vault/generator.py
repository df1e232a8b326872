"""Secret generation and strength scoring for vault entries."""

import re
import secrets

LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
DIGITS = "0123456789"
SYMBOLS = "!@#$%^&*()_+~`|}{[]:;?><,./-="

# Used when no character class is requested
DEFAULT_CHARSET = LOWERCASE + UPPERCASE + DIGITS

DEFAULT_LENGTH = 12


def generate_secret(
    length: int = DEFAULT_LENGTH,
    *,
    uppercase: bool = True,
    lowercase: bool = True,
    digits: bool = True,
    symbols: bool = True,
) -> str:
    """Generate a random secret drawn uniformly from the requested classes.

    Falls back to an alphanumeric alphabet when every class is disabled.
    """
    if length < 0:
        raise ValueError("length must be non-negative")

    charset = ""
    if lowercase:
        charset += LOWERCASE
    if uppercase:
        charset += UPPERCASE
    if digits:
        charset += DIGITS
    if symbols:
        charset += SYMBOLS
    if not charset:
        charset = DEFAULT_CHARSET

    return "".join(secrets.choice(charset) for _ in range(length))


def strength_score(secret: str) -> int:
    """Score a secret from 0 to 100.

    Length contributes 4 points per character (max 40), each present class
    (upper, lower, digit, other) adds 10, and distinct characters add 2 each
    (max 20).
    """
    if not secret:
        return 0

    score = min(len(secret) * 4, 40)

    if re.search(r"[A-Z]", secret):
        score += 10
    if re.search(r"[a-z]", secret):
        score += 10
    if re.search(r"[0-9]", secret):
        score += 10
    if re.search(r"[^A-Za-z0-9]", secret):
        score += 10

    score += min(len(set(secret)) * 2, 20)

    return min(score, 100)
