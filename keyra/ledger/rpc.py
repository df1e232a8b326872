"""Thin async JSON-RPC 2.0 wrapper over the ledger endpoint."""

import itertools
import logging
from typing import Any

import httpx

from ..errors import LedgerError, LedgerRpcError, LedgerUnavailable
from .models import LedgerTransaction

logger = logging.getLogger("keyra.ledger.rpc")

# Ledger-side upper bound for getSignaturesForAddress
MAX_PAGE_SIZE = 1000


class LedgerClient:
    """Async JSON-RPC client for the ledger (transaction log reads and program calls)."""

    def __init__(
        self,
        rpc_url: str,
        *,
        credential: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rpc_url = rpc_url
        self._credential = credential
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    async def close(self):
        await self._client.aclose()

    async def call(self, method: str, params: list | None = None, *, authorized: bool = False) -> Any:
        """Send one JSON-RPC request and return its ``result``.

        With ``authorized``, the relay credential is sent as a bearer token.
        Transport failures and 5xx/429 responses raise LedgerUnavailable; a
        JSON-RPC error object raises LedgerRpcError.
        """
        headers = {}
        if authorized:
            if not self._credential:
                raise LedgerError(f"{method} requires a relay credential, none configured")
            headers["Authorization"] = f"Bearer {self._credential}"

        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }

        try:
            resp = await self._client.post(self.rpc_url, json=body, headers=headers)
        except httpx.TransportError as e:
            raise LedgerUnavailable(f"{method}: {type(e).__name__}: {e}") from e

        if resp.status_code >= 500 or resp.status_code == 429:
            raise LedgerUnavailable(f"{method}: ledger returned HTTP {resp.status_code}")
        if resp.is_error:
            raise LedgerError(f"{method}: ledger returned HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise LedgerError(f"{method}: response is not JSON") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            raise LedgerRpcError(method, error.get("code", 0), error.get("message", ""))
        return data.get("result") if isinstance(data, dict) else None

    async def get_health(self) -> bool:
        """Return True when the ledger node reports itself healthy."""
        try:
            return await self.call("getHealth") == "ok"
        except LedgerError as e:
            logger.warning(f"Ledger health check failed: {e}")
            return False

    async def get_signatures_for_address(
        self,
        address: str,
        limit: int = 10,
        until: str | None = None,
    ) -> list[dict]:
        """Newest-first signature infos for an address, stopping before ``until``."""
        options: dict[str, Any] = {"limit": max(1, min(limit, MAX_PAGE_SIZE))}
        if until:
            options["until"] = until
        return await self.call("getSignaturesForAddress", [address, options]) or []

    async def get_transaction(self, signature: str) -> LedgerTransaction | None:
        result = await self.call(
            "getTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}],
        )
        if not result:
            return None
        return LedgerTransaction.from_rpc(signature, result)

    async def fetch_recent_transactions(
        self,
        address: str,
        limit: int = 10,
        until: str | None = None,
    ) -> list[LedgerTransaction]:
        """Fetch up to ``limit`` transactions sent to ``address``, newest first.

        Any RPC failure propagates. A listed signature the node cannot resolve
        yet raises LedgerUnavailable, since skipping it would let a newer
        transaction move the caller's watermark past it.
        """
        infos = await self.get_signatures_for_address(address, limit=limit, until=until)
        transactions = []
        for info in infos:
            signature = info.get("signature")
            if not signature:
                continue
            tx = await self.get_transaction(signature)
            if tx is None:
                raise LedgerUnavailable(f"Transaction {signature} is listed but not available yet")
            if tx.block_time is None and info.get("blockTime") is not None:
                tx = LedgerTransaction(
                    signature=tx.signature,
                    block_time=info["blockTime"],
                    memos=tx.memos,
                    failed=tx.failed,
                )
            transactions.append(tx)
        return transactions
