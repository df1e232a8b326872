"""Signal relay: observes intents on the ledger and dispatches them to the ledger program."""

from .config import RelayConfig
from .cursor import RelayCursor
from .loop import relay_loop
from .monitor import CyclePhase, CycleReport, RelayMonitor, SkipReason

__all__ = [
    "CyclePhase",
    "CycleReport",
    "RelayConfig",
    "RelayCursor",
    "RelayMonitor",
    "SkipReason",
    "relay_loop",
]
