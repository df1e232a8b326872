"""
Relay monitor: one polling cycle over the monitoring address.

Each cycle runs Fetching -> Extracting -> Deduplicating -> Dispatching and
returns to Idle. Cycles never overlap, so the cursor always reflects a total
order of dispatch attempts.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import httpx

from ..errors import DispatchFailure, LedgerError, MalformedIntent
from ..intents import SignalIntent, is_signal_payload
from ..ledger import LedgerFacade, LedgerClient, LedgerTransaction
from .cursor import RelayCursor

logger = logging.getLogger("keyra.relay.monitor")

MEMO_LOG_LIMIT = 200


class CyclePhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DEDUPLICATING = "deduplicating"
    DISPATCHING = "dispatching"


class SkipReason(str, Enum):
    FAILED_TRANSACTION = "failed_transaction"
    NO_MEMO = "no_memo"
    MALFORMED_JSON = "malformed_json"
    NOT_A_SIGNAL = "not_a_signal"
    MALFORMED_INTENT = "malformed_intent"
    DUPLICATE = "duplicate"


@dataclass
class CycleReport:
    """Outcome of one polling cycle."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    cursor_before: Optional[str] = None
    cursor_after: Optional[str] = None
    fetched: int = 0
    dispatched: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: dict[str, int] = field(default_factory=dict)
    aborted: bool = False
    error: Optional[str] = None

    def skip(self, reason: SkipReason) -> None:
        self.skipped[reason.value] = self.skipped.get(reason.value, 0) + 1

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "cursor_before": self.cursor_before,
            "cursor_after": self.cursor_after,
            "fetched": self.fetched,
            "dispatched": list(self.dispatched),
            "failed": list(self.failed),
            "skipped": dict(self.skipped),
            "aborted": self.aborted,
            "error": self.error,
        }


@dataclass(frozen=True)
class PendingDispatch:
    transaction: LedgerTransaction
    intent: SignalIntent


def _truncate(memo: str) -> str:
    return memo if len(memo) <= MEMO_LOG_LIMIT else memo[:MEMO_LOG_LIMIT] + "..."


class RelayMonitor:
    """Observes signal intents at the monitoring address and dispatches them."""

    def __init__(
        self,
        ledger: LedgerClient,
        facade: LedgerFacade,
        monitoring_address: str,
        page_size: int = 10,
        cursor: RelayCursor | None = None,
    ):
        self.ledger = ledger
        self.facade = facade
        self.monitoring_address = monitoring_address
        self.page_size = page_size
        self.cursor = cursor or RelayCursor()
        self.phase = CyclePhase.IDLE
        self.last_report: CycleReport | None = None
        self.totals = {"cycles": 0, "aborted": 0, "dispatched": 0, "failed": 0, "skipped": 0}
        self._lock = asyncio.Lock()

    async def run_cycle(self) -> CycleReport:
        """Run one full cycle. Waits for any cycle already in progress to finish."""
        async with self._lock:
            report = CycleReport(
                started_at=datetime.now(timezone.utc),
                cursor_before=self.cursor.value,
            )
            logger.debug("Checking %s for new transactions", self.monitoring_address)
            try:
                self.phase = CyclePhase.FETCHING
                try:
                    page = await self._fetch()
                except (LedgerError, httpx.HTTPError) as e:
                    report.aborted = True
                    report.error = str(e)
                    logger.error(f"Fetch failed, cycle aborted without moving the cursor: {e}")
                    return report
                report.fetched = len(page)
                if not page:
                    logger.debug("No new transactions found")
                    return report

                self.phase = CyclePhase.EXTRACTING
                candidates = self._extract(page, report)

                self.phase = CyclePhase.DEDUPLICATING
                pending = self._deduplicate(candidates, report)

                self.phase = CyclePhase.DISPATCHING
                await self._dispatch(pending, report)

                logger.info(
                    "Cycle done: fetched=%d dispatched=%d failed=%d skipped=%d",
                    report.fetched,
                    len(report.dispatched),
                    len(report.failed),
                    sum(report.skipped.values()),
                )
                return report
            finally:
                self.phase = CyclePhase.IDLE
                report.finished_at = datetime.now(timezone.utc)
                report.cursor_after = self.cursor.value
                self._record(report)

    async def _fetch(self) -> list[LedgerTransaction]:
        """Most recent page newer than the cursor, oldest first."""
        newest_first = await self.ledger.fetch_recent_transactions(
            self.monitoring_address,
            limit=self.page_size,
            until=self.cursor.value,
        )
        return list(reversed(newest_first))

    def _extract(self, page: list[LedgerTransaction], report: CycleReport) -> list[PendingDispatch]:
        candidates = []
        for tx in page:
            if tx.failed:
                logger.debug(f"Transaction {tx.signature} failed on the ledger, skipping")
                report.skip(SkipReason.FAILED_TRANSACTION)
                continue
            if not tx.memos:
                logger.debug(f"Transaction {tx.signature} has no memo")
                report.skip(SkipReason.NO_MEMO)
                continue

            # Other JSON memos (wallet notes) may precede the signal memo
            payload = None
            undecodable = []
            for memo in tx.memos:
                try:
                    decoded = json.loads(memo)
                except json.JSONDecodeError:
                    undecodable.append(memo)
                    continue
                if is_signal_payload(decoded):
                    payload = decoded
                    break

            if payload is None:
                if undecodable:
                    logger.warning(
                        f"Transaction {tx.signature} has a non-JSON memo: {_truncate(undecodable[0])}",
                        extra={"tx_id": tx.signature},
                    )
                    report.skip(SkipReason.MALFORMED_JSON)
                else:
                    logger.debug(f"Transaction {tx.signature} carries no signal intent")
                    report.skip(SkipReason.NOT_A_SIGNAL)
                continue

            try:
                intent = SignalIntent.from_payload(payload)
            except MalformedIntent as e:
                logger.warning(f"Transaction {tx.signature} rejected: {e.reason}", extra={"tx_id": tx.signature})
                report.skip(SkipReason.MALFORMED_INTENT)
                continue

            candidates.append(PendingDispatch(transaction=tx, intent=intent))
        return candidates

    def _deduplicate(self, candidates: list[PendingDispatch], report: CycleReport) -> list[PendingDispatch]:
        """Drop the cursor transaction and everything older than it in this page."""
        position = next(
            (i for i, c in enumerate(candidates) if self.cursor.matches(c.transaction.signature)),
            None,
        )
        if position is None:
            return candidates

        for duplicate in candidates[: position + 1]:
            logger.debug(
                f"Skipping already processed transaction: {duplicate.transaction.signature}",
                extra={"tx_id": duplicate.transaction.signature},
            )
            report.skip(SkipReason.DUPLICATE)
        return candidates[position + 1:]

    async def _dispatch(self, pending: list[PendingDispatch], report: CycleReport) -> None:
        for item in pending:
            tx_id = item.transaction.signature
            intent = item.intent
            context = {"tx_id": tx_id}
            if intent.cid or intent.new_cid:
                context["cid"] = intent.cid or intent.new_cid
            try:
                signature = await self.facade.dispatch(intent)
            except DispatchFailure as e:
                logger.error(f"Dispatch of {intent.action.value} from {tx_id} failed: {e}", extra=context)
                report.failed.append(tx_id)
            except Exception as e:
                logger.exception(f"Unexpected error dispatching {tx_id}: {e}", extra=context)
                report.failed.append(tx_id)
            else:
                logger.info(
                    f"Dispatched {intent.action.value} for {intent.user_identity} "
                    f"(tx {tx_id}) -> ledger {signature}",
                    extra=context,
                )
                report.dispatched.append(tx_id)
            self.cursor.advance(tx_id)

    def _record(self, report: CycleReport) -> None:
        self.last_report = report
        self.totals["cycles"] += 1
        self.totals["aborted"] += int(report.aborted)
        self.totals["dispatched"] += len(report.dispatched)
        self.totals["failed"] += len(report.failed)
        self.totals["skipped"] += sum(report.skipped.values())

    def get_status(self) -> dict:
        return {
            "phase": self.phase.value,
            "monitoring_address": self.monitoring_address,
            "page_size": self.page_size,
            "cursor": self.cursor.to_dict(),
            "totals": dict(self.totals),
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }
