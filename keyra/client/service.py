"""
Client-side vault operations.

Every mutation follows the same path: encrypt with the live master password,
upload the ciphertext, then hand a signal intent to the submitter (the wallet
that signs the memo transaction). The ledger index is only ever changed by the
relay, so a returned MutationResult means "intent submitted", not "applied".
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional

from ..errors import DecryptionError, MalformedEnvelope, NotFound
from ..intents import SignalIntent
from ..ledger import LedgerProgram
from ..store import StoreClient
from ..vault import StoredEntry, VaultEntry, VaultSession

logger = logging.getLogger("keyra.client.service")

# Signs and submits the memo transaction; returns its signature when known
IntentSubmitter = Callable[[SignalIntent], Awaitable[Optional[str]]]


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a client mutation once its intent has been submitted."""
    intent: SignalIntent
    cid: Optional[str] = None
    signature: Optional[str] = None


class VaultService:
    """Encrypts, uploads and submits intents on behalf of an unlocked session."""

    def __init__(
        self,
        session: VaultSession,
        store: StoreClient,
        submit: IntentSubmitter,
        program: LedgerProgram | None = None,
    ):
        self.session = session
        self.store = store
        self.submit = submit
        self.program = program

    async def _upload(self, entry: VaultEntry) -> str:
        envelope = entry.encrypt(self.session.password)
        return await self.store.upload(envelope)

    async def _submit(self, intent: SignalIntent, cid: Optional[str] = None) -> MutationResult:
        signature = await self.submit(intent)
        logger.info(f"Submitted {intent.action.value} intent for {intent.user_identity}: {signature}")
        return MutationResult(intent=intent, cid=cid, signature=signature)

    async def add_entry(self, entry: VaultEntry) -> MutationResult:
        """Store a new entry and request it be added to the owner's index."""
        cid = await self._upload(entry)
        intent = SignalIntent.add(self.session.user_identity, cid)
        return await self._submit(intent, cid)

    async def update_entry(self, old_cid: str, entry: VaultEntry) -> MutationResult:
        """Store the changed entry under a new CID and request old -> new."""
        new_cid = await self._upload(entry)
        intent = SignalIntent.update(self.session.user_identity, old_cid, new_cid)
        return await self._submit(intent, new_cid)

    async def delete_entry(self, cid: str) -> MutationResult:
        intent = SignalIntent.delete(self.session.user_identity, cid)
        return await self._submit(intent, cid)

    async def rekey(self, new_shielded_identity: str) -> MutationResult:
        intent = SignalIntent.rekey(self.session.user_identity, new_shielded_identity)
        return await self._submit(intent)

    async def load_entry(self, cid: str) -> VaultEntry:
        """Retrieve and decrypt one entry. Raises NotFound or DecryptionError."""
        data = await self.store.retrieve(cid)
        if data is None:
            raise NotFound(cid)
        try:
            envelope = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEnvelope(f"Stored content at {cid} is not UTF-8") from e
        return VaultEntry.decrypt(envelope, self.session.password)

    async def list_cids(self) -> list[str]:
        """The owner's authoritative CID list from the ledger program."""
        if self.program is None:
            raise ValueError("No ledger program configured to read the CID index")
        record = await self.program.get_user_record(self.session.user_identity)
        if record is None:
            logger.info(f"No ledger record for {self.session.user_identity}")
            return []
        return list(record.cid_list)

    async def load_entries(self, cids: list[str] | None = None) -> list[StoredEntry]:
        """Load every entry in ``cids`` (default: the ledger index).

        Entries that are missing or fail to decrypt are logged and skipped;
        an unreachable store still raises StoreUnavailable.
        """
        if cids is None:
            cids = await self.list_cids()

        entries = []
        for cid in cids:
            try:
                entry = await self.load_entry(cid)
            except NotFound:
                logger.warning(f"Entry {cid} is indexed but not in the store, skipping")
                continue
            except DecryptionError as e:
                logger.warning(f"Entry {cid} could not be decrypted, skipping: {type(e).__name__}")
                continue
            entries.append(StoredEntry(cid=cid, entry=entry))

        logger.info(f"Loaded {len(entries)}/{len(cids)} entries")
        return entries
