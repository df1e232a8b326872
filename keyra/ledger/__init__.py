"""Ledger access: transaction log reads, program entry points and the mutation facade."""

from .facade import LedgerFacade
from .models import MEMO_PROGRAM_ID, LedgerTransaction, UserRecord, extract_memos
from .program import LedgerProgram
from .rpc import LedgerClient

__all__ = [
    "MEMO_PROGRAM_ID",
    "LedgerClient",
    "LedgerFacade",
    "LedgerProgram",
    "LedgerTransaction",
    "UserRecord",
    "extract_memos",
]
