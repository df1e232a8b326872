"""Tests for the relay monitor's polling cycle."""

import asyncio
import json
import logging

import pytest

from keyra.errors import LedgerUnavailable
from keyra.ledger import LedgerFacade, LedgerTransaction
from keyra.relay import CyclePhase, RelayCursor, RelayMonitor, SkipReason

from tests.conftest import MONITORING_ADDRESS, RELAY_IDENTITY, FakeLedger, UnavailableLedger, memo_tx


def add_memo(user: str, cid: str) -> str:
    return json.dumps({"action": "add", "userIdentity": user, "cid": cid})


def make_monitor(ledger, program, **kwargs) -> RelayMonitor:
    return RelayMonitor(ledger, LedgerFacade(program, RELAY_IDENTITY), MONITORING_ADDRESS, **kwargs)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_dispatches_oldest_first(self, fake_program):
        ledger = FakeLedger([
            memo_tx("tx1", add_memo("U1", "A")),
            memo_tx("tx2", add_memo("U1", "B")),
            memo_tx("tx3", add_memo("U2", "C")),
        ])
        monitor = make_monitor(ledger, fake_program)

        report = await monitor.run_cycle()

        assert [call[3] for call in fake_program.calls] == ["A", "B", "C"]
        assert report.dispatched == ["tx1", "tx2", "tx3"]
        assert report.fetched == 3
        assert monitor.cursor.value == "tx3"
        assert report.cursor_before is None
        assert report.cursor_after == "tx3"

    @pytest.mark.asyncio
    async def test_fetch_uses_page_size_and_address(self, fake_program):
        ledger = FakeLedger()
        monitor = make_monitor(ledger, fake_program, page_size=25)
        await monitor.run_cycle()
        assert ledger.fetch_calls == [{"address": MONITORING_ADDRESS, "limit": 25, "until": None}]

    @pytest.mark.asyncio
    async def test_dispatch_failure_does_not_block_later_transactions(self, fake_program):
        fake_program.fail_for.add("U2")
        ledger = FakeLedger([
            memo_tx("tx1", add_memo("U1", "A")),
            memo_tx("tx2", add_memo("U2", "B")),
            memo_tx("tx3", add_memo("U3", "C")),
        ])
        monitor = make_monitor(ledger, fake_program)

        report = await monitor.run_cycle()

        assert report.dispatched == ["tx1", "tx3"]
        assert report.failed == ["tx2"]
        assert monitor.cursor.value == "tx3"
        assert len(fake_program.calls) == 3
        assert not report.aborted

    @pytest.mark.asyncio
    async def test_failed_dispatch_is_not_retried(self, fake_program):
        fake_program.fail_for.add("U1")
        ledger = FakeLedger([memo_tx("tx1", add_memo("U1", "A"))])
        monitor = make_monitor(ledger, fake_program)

        await monitor.run_cycle()
        await monitor.run_cycle()

        assert len(fake_program.calls) == 1
        assert monitor.cursor.value == "tx1"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, fake_program):
        class Exploding:
            async def dispatch(self, intent):
                if intent.cid == "A":
                    raise RuntimeError("boom")
                return "sig"

        ledger = FakeLedger([
            memo_tx("tx1", add_memo("U1", "A")),
            memo_tx("tx2", add_memo("U1", "B")),
        ])
        monitor = RelayMonitor(ledger, Exploding(), MONITORING_ADDRESS)

        report = await monitor.run_cycle()

        assert report.failed == ["tx1"]
        assert report.dispatched == ["tx2"]
        assert monitor.cursor.value == "tx2"


class TestDeduplication:
    @pytest.mark.asyncio
    async def test_cursor_transaction_never_redispatched(self, fake_program):
        ledger = FakeLedger([memo_tx("T", add_memo("U1", "X"))])
        ledger.ignore_until = True
        monitor = make_monitor(ledger, fake_program, cursor=RelayCursor("T"))

        report = await monitor.run_cycle()

        assert fake_program.calls == []
        assert report.skipped == {SkipReason.DUPLICATE.value: 1}

    @pytest.mark.asyncio
    async def test_repeated_pages_dispatch_once(self, fake_program):
        ledger = FakeLedger([
            memo_tx("tx1", add_memo("U1", "A")),
            memo_tx("tx2", add_memo("U1", "B")),
        ])
        ledger.ignore_until = True
        monitor = make_monitor(ledger, fake_program)

        await monitor.run_cycle()
        second = await monitor.run_cycle()

        assert len(fake_program.calls) == 2
        assert second.dispatched == []
        assert second.skipped == {SkipReason.DUPLICATE.value: 2}

    @pytest.mark.asyncio
    async def test_only_newer_transactions_dispatched(self, fake_program):
        ledger = FakeLedger([
            memo_tx("tx1", add_memo("U1", "A")),
            memo_tx("tx2", add_memo("U1", "B")),
        ])
        ledger.ignore_until = True
        monitor = make_monitor(ledger, fake_program)
        await monitor.run_cycle()

        ledger.history.append(memo_tx("tx3", add_memo("U1", "C")))
        report = await monitor.run_cycle()

        assert report.dispatched == ["tx3"]
        assert [call[3] for call in fake_program.calls] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_cursor_passed_as_until(self, fake_program):
        ledger = FakeLedger([memo_tx("tx1", add_memo("U1", "A"))])
        monitor = make_monitor(ledger, fake_program)

        await monitor.run_cycle()
        report = await monitor.run_cycle()

        assert ledger.fetch_calls[1]["until"] == "tx1"
        assert report.fetched == 0
        assert len(fake_program.calls) == 1


class TestExtraction:
    @pytest.mark.asyncio
    async def test_malformed_json_is_skipped(self, fake_program):
        ledger = FakeLedger([
            memo_tx("tx1", "{not json"),
            memo_tx("tx2", add_memo("U1", "A")),
        ])
        monitor = make_monitor(ledger, fake_program)

        report = await monitor.run_cycle()

        assert report.dispatched == ["tx2"]
        assert report.skipped == {SkipReason.MALFORMED_JSON.value: 1}

    @pytest.mark.asyncio
    async def test_invalid_intents_are_skipped(self, fake_program):
        ledger = FakeLedger([
            memo_tx("tx1", json.dumps({"action": "add", "userIdentity": "U1"})),
            memo_tx("tx2", json.dumps({"action": "update", "userIdentity": "U1", "oldCid": "A"})),
            memo_tx("tx3", json.dumps({"action": "rekey", "userIdentity": "U1", "cid": "X"})),
            memo_tx("tx4", json.dumps({"action": "explode", "userIdentity": "U1"})),
        ])
        monitor = make_monitor(ledger, fake_program)

        report = await monitor.run_cycle()

        assert fake_program.calls == []
        assert report.skipped == {SkipReason.MALFORMED_INTENT.value: 4}
        assert monitor.cursor.value is None

    @pytest.mark.asyncio
    async def test_non_signal_and_empty_transactions(self, fake_program):
        ledger = FakeLedger([
            memo_tx("tx1"),
            memo_tx("tx2", json.dumps({"note": "thanks"})),
            memo_tx("tx3", add_memo("U1", "A"), failed=True),
            memo_tx("tx4", "[1, 2, 3]"),
        ])
        monitor = make_monitor(ledger, fake_program)

        report = await monitor.run_cycle()

        assert fake_program.calls == []
        assert report.skipped == {
            SkipReason.NO_MEMO.value: 1,
            SkipReason.NOT_A_SIGNAL.value: 2,
            SkipReason.FAILED_TRANSACTION.value: 1,
        }

    @pytest.mark.asyncio
    async def test_signal_memo_after_other_memos(self, fake_program):
        tx = LedgerTransaction(
            signature="tx1",
            memos=(
                json.dumps({"note": "hi"}),
                "plain text note",
                add_memo("U1", "X"),
            ),
        )
        monitor = make_monitor(FakeLedger([tx]), fake_program)

        report = await monitor.run_cycle()

        assert fake_program.calls == [
            ("process_action", "U1", "add", "X", None, None, RELAY_IDENTITY)
        ]
        assert report.dispatched == ["tx1"]
        assert report.skipped == {}

    @pytest.mark.asyncio
    async def test_first_signal_memo_wins(self, fake_program):
        tx = LedgerTransaction(signature="tx1", memos=(add_memo("U1", "A"), add_memo("U1", "B")))
        monitor = make_monitor(FakeLedger([tx]), fake_program)

        await monitor.run_cycle()

        assert [call[3] for call in fake_program.calls] == ["A"]

    @pytest.mark.asyncio
    async def test_legacy_memo_names(self, fake_program):
        memo = json.dumps({"action": "update", "userMainPubkey": "U1", "old_cid": "A", "new_cid": "B"})
        ledger = FakeLedger([memo_tx("tx1", memo)])
        monitor = make_monitor(ledger, fake_program)

        await monitor.run_cycle()

        assert fake_program.calls == [
            ("process_action", "U1", "update", None, "A", "B", RELAY_IDENTITY)
        ]


class TestLogContext:
    @pytest.mark.asyncio
    async def test_dispatch_records_carry_tx_and_cid(self, fake_program, caplog):
        ledger = FakeLedger([memo_tx("tx1", add_memo("U1", "A"))])
        monitor = make_monitor(ledger, fake_program)

        with caplog.at_level(logging.INFO, logger="keyra.relay.monitor"):
            await monitor.run_cycle()

        [record] = [r for r in caplog.records if r.getMessage().startswith("Dispatched")]
        assert record.tx_id == "tx1"
        assert record.cid == "A"

    @pytest.mark.asyncio
    async def test_rejected_and_failed_records_carry_tx(self, fake_program, caplog):
        fake_program.fail_for.add("U2")
        ledger = FakeLedger([
            memo_tx("tx1", json.dumps({"action": "add", "userIdentity": "U1"})),
            memo_tx("tx2", add_memo("U2", "B")),
            memo_tx("tx3", json.dumps({"action": "rekey", "userIdentity": "U3", "newShieldedIdentity": "S3"})),
        ])
        monitor = make_monitor(ledger, fake_program)

        with caplog.at_level(logging.INFO, logger="keyra.relay.monitor"):
            await monitor.run_cycle()

        by_tx = {getattr(r, "tx_id", None): r for r in caplog.records if hasattr(r, "tx_id")}
        assert set(by_tx) == {"tx1", "tx2", "tx3"}
        assert by_tx["tx1"].levelno == logging.WARNING
        assert by_tx["tx2"].levelno == logging.ERROR
        assert by_tx["tx2"].cid == "B"
        assert not hasattr(by_tx["tx3"], "cid")

class TestFailureSemantics:
    @pytest.mark.asyncio
    async def test_fetch_error_aborts_without_moving_cursor(self, fake_program):
        ledger = UnavailableLedger()
        monitor = make_monitor(ledger, fake_program, cursor=RelayCursor("tx9"))

        report = await monitor.run_cycle()

        assert report.aborted
        assert "ConnectError" in report.error
        assert monitor.cursor.value == "tx9"
        assert fake_program.calls == []
        assert monitor.totals["aborted"] == 1

    @pytest.mark.asyncio
    async def test_next_cycle_retries_from_same_point(self, fake_program):
        ledger = FakeLedger([memo_tx("tx1", add_memo("U1", "A"))])
        ledger.fail_next = LedgerUnavailable("timeout")
        monitor = make_monitor(ledger, fake_program)

        first = await monitor.run_cycle()
        second = await monitor.run_cycle()

        assert first.aborted
        assert second.dispatched == ["tx1"]
        assert ledger.fetch_calls[0]["until"] == ledger.fetch_calls[1]["until"] is None


class TestCycleOrdering:
    @pytest.mark.asyncio
    async def test_cycles_do_not_overlap(self, fake_program):
        active = 0
        peak = 0

        class SlowFacade:
            async def dispatch(self, intent):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return "sig"

        ledger = FakeLedger([memo_tx(f"tx{i}", add_memo("U1", f"C{i}")) for i in range(3)])
        monitor = RelayMonitor(ledger, SlowFacade(), MONITORING_ADDRESS)

        reports = await asyncio.gather(monitor.run_cycle(), monitor.run_cycle())

        assert peak == 1
        assert sum(len(r.dispatched) for r in reports) == 3
        assert monitor.phase is CyclePhase.IDLE

    @pytest.mark.asyncio
    async def test_status_reflects_last_cycle(self, fake_program):
        ledger = FakeLedger([memo_tx("tx1", add_memo("U1", "A"))])
        monitor = make_monitor(ledger, fake_program)
        await monitor.run_cycle()

        status = monitor.get_status()

        assert status["phase"] == "idle"
        assert status["cursor"]["value"] == "tx1"
        assert status["totals"]["dispatched"] == 1
        assert status["last_cycle"]["dispatched"] == ["tx1"]
