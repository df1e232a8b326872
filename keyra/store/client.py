"""Async client for the content-addressed object store (IPFS HTTP API)."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import httpx

from ..errors import NotFound, StoreUnavailable

logger = logging.getLogger("keyra.store.client")

T = TypeVar("T")

MAX_CONNECT_ATTEMPTS = 3
RECONNECT_DELAY = 2.0  # seconds between connection attempts

# Transport-level failures (refused, reset, timeouts) mean the connection is gone
CONNECTION_ERRORS = (httpx.TransportError,)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class StoreClient:
    """Owns the shared HTTP handle to one store node.

    Only one (re)connect sequence runs at a time; concurrent callers await
    the attempt already in flight. Reads and writes are not serialized once
    connected.
    """

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = MAX_CONNECT_ATTEMPTS,
        reconnect_delay: float = RECONNECT_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.reconnect_delay = reconnect_delay
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._state = ConnectionState.DISCONNECTED
        self._connect_task: asyncio.Task | None = None
        self.node_id: str | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._http is not None

    def _new_http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def close(self):
        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        self._state = ConnectionState.DISCONNECTED

    # --- Connection state machine ---

    async def connect(self, force: bool = False) -> bool:
        """Run a connection sequence, or join the one already in progress.

        Returns True once connected. With ``force``, an existing connection is
        discarded and a fresh sequence starts (unless one is already running).
        """
        if self._connect_task is None or self._connect_task.done():
            if self.is_connected and not force:
                return True
            self._connect_task = asyncio.create_task(
                self._connect_sequence(),
                name="store-connect",
            )
        return await asyncio.shield(self._connect_task)

    async def _connect_sequence(self) -> bool:
        self._state = ConnectionState.CONNECTING
        previous, self._http = self._http, None

        try:
            for attempt in range(1, self.max_attempts + 1):
                client = self._new_http()
                try:
                    resp = await client.post("id")
                    resp.raise_for_status()
                    node_id = resp.json().get("ID")
                except (httpx.HTTPError, ValueError) as e:
                    await client.aclose()
                    logger.warning(
                        f"Store connection attempt {attempt}/{self.max_attempts} failed: {e}"
                    )
                    if attempt < self.max_attempts:
                        await asyncio.sleep(self.reconnect_delay)
                    continue

                self._http = client
                self.node_id = node_id
                self._state = ConnectionState.CONNECTED
                logger.info(f"Store connected at {self.api_url} (node {node_id})")
                return True

            self._state = ConnectionState.DISCONNECTED
            logger.error(
                f"Failed to connect to store at {self.api_url} after {self.max_attempts} attempts"
            )
            return False
        finally:
            if previous is not None:
                await previous.aclose()

    def _mark_disconnected(self):
        if self._state is ConnectionState.CONNECTED:
            logger.info("Store connection lost")
        self._state = ConnectionState.DISCONNECTED

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.is_connected and not await self.connect():
            raise StoreUnavailable(f"Store at {self.api_url} is not reachable")
        return self._http

    async def _reconnect_after(self, error: Exception, operation: str) -> httpx.AsyncClient:
        """Force one reconnect after a connection failure, or raise StoreUnavailable."""
        logger.warning(f"{operation} failed ({type(error).__name__}: {error}), forcing reconnect")
        self._mark_disconnected()
        if not await self.connect(force=True):
            raise StoreUnavailable(f"{operation} failed: store unreachable") from error
        return self._http

    async def _with_reconnect(
        self,
        operation: str,
        call: Callable[[httpx.AsyncClient], Awaitable[T]],
    ) -> T:
        client = await self._ensure_client()
        try:
            return await call(client)
        except CONNECTION_ERRORS as e:
            client = await self._reconnect_after(e, operation)

        logger.info(f"Retrying {operation} after reconnection")
        try:
            return await call(client)
        except CONNECTION_ERRORS as e:
            self._mark_disconnected()
            raise StoreUnavailable(f"{operation} failed after reconnect: {e}") from e

    # --- Store operations ---

    async def _add(self, client: httpx.AsyncClient, data: bytes) -> str:
        resp = await client.post(
            "add",
            params={"pin": "false"},
            files={"file": ("blob", data, "application/octet-stream")},
        )
        try:
            resp.raise_for_status()
            return resp.json()["Hash"]
        except (httpx.HTTPStatusError, ValueError, KeyError) as e:
            raise StoreUnavailable(f"Store rejected upload: {e}") from e

    async def _cat(self, client: httpx.AsyncClient, cid: str) -> bytes:
        resp = await client.post("cat", params={"arg": cid})
        if resp.is_error:
            raise NotFound(cid)
        return resp.content

    async def upload(self, data: bytes | str) -> str:
        """Upload a blob and return its CID, pinning it afterwards.

        A connection failure triggers exactly one forced reconnect and retry.
        A pin failure is logged and does not fail the upload.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        cid = await self._with_reconnect("Upload", lambda client: self._add(client, data))
        logger.info(f"Uploaded {len(data)} bytes to store: {cid}")

        await self.pin(cid)
        return cid

    async def pin(self, cid: str) -> bool:
        """Pin content so the node keeps it. Returns False on failure."""
        if not self.is_connected:
            logger.warning(f"Cannot pin {cid}: store not connected")
            return False
        try:
            resp = await self._http.post("pin/add", params={"arg": cid})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to pin {cid}, upload was still successful: {e}")
            if isinstance(e, CONNECTION_ERRORS):
                self._mark_disconnected()
            return False
        logger.debug(f"Pinned {cid}")
        return True

    async def retrieve(self, cid: str) -> bytes | None:
        """Fetch content by CID.

        Returns None when the content is absent. If the store cannot be reached
        at all, StoreUnavailable is raised instead.
        """
        client = await self._ensure_client()
        try:
            return await self._cat(client, cid)
        except NotFound:
            logger.error(f"Content not found in store: {cid}")
            return None
        except CONNECTION_ERRORS as e:
            client = await self._reconnect_after(e, f"Retrieve {cid}")

        logger.info(f"Retrying retrieve of {cid} after reconnection")
        try:
            return await self._cat(client, cid)
        except NotFound:
            logger.error(f"Content not found in store after reconnection: {cid}")
            return None
        except CONNECTION_ERRORS as e:
            self._mark_disconnected()
            raise StoreUnavailable(f"Retrieve {cid} failed after reconnect: {e}") from e

    async def check_connection(self) -> bool:
        """Lightweight liveness check; connects lazily if needed."""
        if not self.is_connected:
            return await self.connect()

        try:
            resp = await self._http.post("id")
            resp.raise_for_status()
            return True
        except CONNECTION_ERRORS as e:
            logger.warning(f"Store liveness check failed: {e}")
            self._mark_disconnected()
            return await self.connect(force=True)
        except httpx.HTTPStatusError as e:
            logger.warning(f"Store liveness check returned {e.response.status_code}")
            return False
