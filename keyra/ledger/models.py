"""Ledger-side data shapes: observed transactions and the per-owner record."""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("keyra.ledger.models")

MEMO_PROGRAM_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"


def extract_memos(result: dict[str, Any]) -> list[str]:
    """Pull memo texts out of a ``jsonParsed`` getTransaction result, in order."""
    message = (result.get("transaction") or {}).get("message") or {}
    memos = []
    for instruction in message.get("instructions") or []:
        if not isinstance(instruction, dict) or instruction.get("programId") != MEMO_PROGRAM_ID:
            continue

        parsed = instruction.get("parsed")
        if isinstance(parsed, str):
            memos.append(parsed)
            continue

        data = instruction.get("data")
        if not isinstance(data, str):
            continue
        try:
            memos.append(base64.b64decode(data, validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError):
            logger.debug("Skipping memo instruction with undecodable data")
    return memos


@dataclass(frozen=True)
class LedgerTransaction:
    """A signed transaction observed at the monitoring address."""

    signature: str
    block_time: Optional[int] = None
    memos: tuple[str, ...] = ()
    failed: bool = False

    @classmethod
    def from_rpc(cls, signature: str, result: dict[str, Any]) -> "LedgerTransaction":
        meta = result.get("meta") or {}
        return cls(
            signature=signature,
            block_time=result.get("blockTime"),
            memos=tuple(extract_memos(result)),
            failed=meta.get("err") is not None,
        )


class UserRecord(BaseModel):
    """Authoritative per-owner record held by the ledger program."""

    model_config = ConfigDict(populate_by_name=True)

    owner_identity: str = Field(alias="ownerIdentity")
    shielded_identity: str = Field(alias="shieldedIdentity")
    relayer_identity: str = Field(alias="relayerIdentity")
    cid_list: list[str] = Field(default_factory=list, alias="cidList")
