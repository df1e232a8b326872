"""Signal-intent protocol: the memo envelope clients emit and the relay validates."""

from .model import (
    REQUIRED_FIELDS,
    IntentAction,
    SignalIntent,
    is_signal_payload,
)

__all__ = [
    "REQUIRED_FIELDS",
    "IntentAction",
    "SignalIntent",
    "is_signal_payload",
]
