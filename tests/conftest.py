"""Shared fixtures and in-memory fakes for the Keyra tests."""

import asyncio
from typing import Optional

import httpx
import pytest

from keyra.errors import LedgerRpcError, LedgerUnavailable
from keyra.ledger import LedgerTransaction, UserRecord

RELAY_IDENTITY = "RelayIdentity1111111111111111111111111111111"
MONITORING_ADDRESS = "Monitor11111111111111111111111111111111111"


def _uploaded_file(request: httpx.Request) -> bytes:
    """Body of the single file part in a multipart upload."""
    boundary = request.headers["content-type"].split("boundary=")[1].encode("ascii")
    part = request.content.split(b"--" + boundary)[1]
    return part.split(b"\r\n\r\n", 1)[1].rsplit(b"\r\n", 1)[0]


class FakeNode:
    """IPFS HTTP API double. Failure knobs are consumed one request at a time."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.calls: dict[str, int] = {}
        self.id_failures = 0
        self.add_failures = 0
        self.cat_failures = 0
        self.pin_status = 200
        self.id_delay = 0.0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.removeprefix("/api/v0/")
        self.calls[endpoint] = self.calls.get(endpoint, 0) + 1

        if endpoint == "id":
            if self.id_delay:
                await asyncio.sleep(self.id_delay)
            if self.id_failures:
                self.id_failures -= 1
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"ID": "node-1"})

        if endpoint == "add":
            if self.add_failures:
                self.add_failures -= 1
                raise httpx.ReadError("connection reset", request=request)
            data = _uploaded_file(request)
            cid = f"Qm{len(self.blobs) + 1}"
            self.blobs[cid] = data
            return httpx.Response(200, json={"Name": "blob", "Hash": cid, "Size": str(len(data))})

        if endpoint == "pin/add":
            return httpx.Response(self.pin_status, json={"Pins": [request.url.params["arg"]]})

        if endpoint == "cat":
            if self.cat_failures:
                self.cat_failures -= 1
                raise httpx.ConnectError("connection refused", request=request)
            cid = request.url.params["arg"]
            if cid not in self.blobs:
                return httpx.Response(500, json={"Message": "block not found", "Code": 0})
            return httpx.Response(200, content=self.blobs[cid])

        return httpx.Response(404)


def memo_tx(signature: str, memo: Optional[str] = None, failed: bool = False) -> LedgerTransaction:
    return LedgerTransaction(
        signature=signature,
        block_time=1_700_000_000,
        memos=(memo,) if memo is not None else (),
        failed=failed,
    )


class FakeLedger:
    """Stands in for LedgerClient.fetch_recent_transactions.

    ``history`` is kept oldest first; fetches return the newest ``limit``
    transactions strictly after ``until``, newest first.
    """

    def __init__(self, history: list[LedgerTransaction] | None = None):
        self.history = list(history or [])
        self.fetch_calls: list[dict] = []
        self.fail_next: Exception | None = None
        self.ignore_until = False

    async def fetch_recent_transactions(self, address, limit=10, until=None):
        self.fetch_calls.append({"address": address, "limit": limit, "until": until})
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

        newest_first = list(reversed(self.history))
        if until and not self.ignore_until:
            ids = [tx.signature for tx in newest_first]
            if until in ids:
                newest_first = newest_first[: ids.index(until)]
        return newest_first[:limit]


class FakeProgram:
    """Records ledger program calls; ``fail_for`` owners get a JSON-RPC error."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_for: set[str] = set()
        self.records: dict[str, UserRecord] = {}

    def _accept(self, call: tuple) -> str:
        self.calls.append(call)
        owner = call[1]
        if owner in self.fail_for:
            raise LedgerRpcError(call[0], -32002, "rejected by program")
        return f"sig-{len(self.calls)}"

    async def initialize_identity(self, owner_identity, shielded_identity, *, authority):
        return self._accept(("initialize_identity", owner_identity, shielded_identity, authority))

    async def process_action(self, owner_identity, action, cid, old_cid, new_cid, *, authority):
        return self._accept(("process_action", owner_identity, action, cid, old_cid, new_cid, authority))

    async def update_shielded_identity(self, owner_identity, new_shielded_identity, *, authority):
        return self._accept(("update_shielded_identity", owner_identity, new_shielded_identity, authority))

    async def get_user_record(self, owner_identity):
        return self.records.get(owner_identity)


class UnavailableLedger(FakeLedger):
    async def fetch_recent_transactions(self, address, limit=10, until=None):
        self.fetch_calls.append({"address": address, "limit": limit, "until": until})
        raise LedgerUnavailable("getSignaturesForAddress: ConnectError")


@pytest.fixture
def fake_program() -> FakeProgram:
    return FakeProgram()


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()
