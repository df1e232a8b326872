"""Ledger mutation facade: one validated SignalIntent -> one ledger program call."""

import logging
from collections.abc import Awaitable

import httpx

from ..errors import DispatchFailure, LedgerError
from ..intents import IntentAction, SignalIntent
from .program import LedgerProgram

logger = logging.getLogger("keyra.ledger.facade")


class LedgerFacade:
    """Translates intents into ledger calls signed off by the relay identity.

    Holds no state and never retries; every failure surfaces as DispatchFailure.
    """

    def __init__(self, program: LedgerProgram, relay_identity: str):
        self.program = program
        self.relay_identity = relay_identity

    async def _invoke(self, description: str, call: Awaitable[str]) -> str:
        try:
            return await call
        except (LedgerError, httpx.HTTPError) as e:
            raise DispatchFailure(f"{description} failed: {e}") from e

    async def dispatch(self, intent: SignalIntent) -> str:
        """Invoke the entry point for ``intent.action``; returns the ledger signature."""
        handlers = {
            IntentAction.ADD: self.add,
            IntentAction.UPDATE: self.update,
            IntentAction.DELETE: self.delete,
            IntentAction.REKEY: self.rekey,
        }
        return await handlers[intent.action](intent)

    async def add(self, intent: SignalIntent) -> str:
        return await self._invoke(
            f"add {intent.cid} for {intent.user_identity}",
            self.program.process_action(
                intent.user_identity,
                IntentAction.ADD.value,
                intent.cid,
                None,
                None,
                authority=self.relay_identity,
            ),
        )

    async def update(self, intent: SignalIntent) -> str:
        return await self._invoke(
            f"update {intent.old_cid} -> {intent.new_cid} for {intent.user_identity}",
            self.program.process_action(
                intent.user_identity,
                IntentAction.UPDATE.value,
                None,
                intent.old_cid,
                intent.new_cid,
                authority=self.relay_identity,
            ),
        )

    async def delete(self, intent: SignalIntent) -> str:
        return await self._invoke(
            f"delete {intent.cid} for {intent.user_identity}",
            self.program.process_action(
                intent.user_identity,
                IntentAction.DELETE.value,
                intent.cid,
                None,
                None,
                authority=self.relay_identity,
            ),
        )

    async def rekey(self, intent: SignalIntent) -> str:
        return await self._invoke(
            f"rekey for {intent.user_identity}",
            self.program.update_shielded_identity(
                intent.user_identity,
                intent.new_shielded_identity,
                authority=self.relay_identity,
            ),
        )

    async def initialize_identity(self, owner_identity: str, shielded_identity: str) -> str:
        """Register an owner with the ledger program (relay-authorized)."""
        return await self._invoke(
            f"initialize identity {owner_identity}",
            self.program.initialize_identity(
                owner_identity,
                shielded_identity,
                authority=self.relay_identity,
            ),
        )
