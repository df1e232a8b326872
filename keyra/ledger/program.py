"""Entry points of the ledger program that owns the per-user CID index."""

import logging
from typing import Optional

from .models import UserRecord
from .rpc import LedgerClient

logger = logging.getLogger("keyra.ledger.program")


class LedgerProgram:
    """Remote procedures exposed by the ledger program.

    Mutations are accepted only from the registered relay identity, passed as
    ``authority`` and backed by the relay credential on the request.
    """

    def __init__(self, ledger: LedgerClient, program_id: str):
        self.ledger = ledger
        self.program_id = program_id

    async def _mutate(self, method: str, authority: str, **fields) -> str:
        params = {"programId": self.program_id, "authority": authority, **fields}
        signature = await self.ledger.call(method, [params], authorized=True)
        logger.debug(f"{method} accepted: {signature}")
        return signature

    async def initialize_identity(
        self,
        owner_identity: str,
        shielded_identity: str,
        *,
        authority: str,
    ) -> str:
        return await self._mutate(
            "initializeIdentity",
            authority,
            ownerIdentity=owner_identity,
            shieldedIdentity=shielded_identity,
        )

    async def process_action(
        self,
        owner_identity: str,
        action: str,
        cid: Optional[str],
        old_cid: Optional[str],
        new_cid: Optional[str],
        *,
        authority: str,
    ) -> str:
        return await self._mutate(
            "processAction",
            authority,
            ownerIdentity=owner_identity,
            action=action,
            cid=cid,
            oldCid=old_cid,
            newCid=new_cid,
        )

    async def update_shielded_identity(
        self,
        owner_identity: str,
        new_shielded_identity: str,
        *,
        authority: str,
    ) -> str:
        return await self._mutate(
            "updateShieldedIdentity",
            authority,
            ownerIdentity=owner_identity,
            newShieldedIdentity=new_shielded_identity,
        )

    async def get_user_record(self, owner_identity: str) -> UserRecord | None:
        """Read the authoritative record for an owner, or None if not initialized."""
        result = await self.ledger.call(
            "getUserRecord",
            [{"programId": self.program_id, "ownerIdentity": owner_identity}],
        )
        if not result:
            return None
        return UserRecord.model_validate(result)
