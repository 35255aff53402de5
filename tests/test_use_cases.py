"""Windowed fetch orchestration against an in-memory explorer."""

import asyncio
import json
import logging

import pytest

from conftest import ADDRESS, TOPIC0, make_internal_tx, make_log
from scanfetch.adapters.manifest_jsonl import JSONLManifest
from scanfetch.domain.decoding import decode_event_log, decode_internal_transaction
from scanfetch.domain.errors import InvalidRangeError, LatestBlockError, RecordDecodeError
from scanfetch.domain.models import BlockRange, Empty, FatalError, Success
from scanfetch.domain.value_types import Address, Topic0
from scanfetch.application.use_cases import (
    fetch_internal_transactions_windowed, fetch_logs_windowed, resolve_range,
)

ADDR = Address(ADDRESS)
T0 = Topic0(TOPIC0)


def logs_at(*blocks):
    return Success(tuple(decode_event_log(make_log(b, i)) for i, b in enumerate(blocks)))


class FakeExplorer:
    """Answers per window start; records the windows it was asked for."""

    def __init__(self, outcomes=None, head=0, delays=None):
        self.outcomes = outcomes or {}
        self.head = head
        self.delays = delays or {}
        self.calls: list[BlockRange] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _answer(self, window):
        self.calls.append(window)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(window.start, 0))
            outcome = self.outcomes.get(window.start, Empty())
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1

    async def latest_block(self):
        if isinstance(self.head, Exception):
            raise self.head
        return self.head

    async def internal_transactions_outcome(self, address, window):
        return await self._answer(window)

    async def logs_outcome(self, address, topic0, window):
        return await self._answer(window)


class TestFetchLogsWindowed:

    @pytest.mark.asyncio
    async def test_empty_middle_window_does_not_stop_the_run(self):
        explorer = FakeExplorer({
            0: logs_at(0, 1, 2, 3, 4),
            1000: Empty("No records found"),
            2000: logs_at(2000, 2001, 2002, 2003, 2004),
        })
        logs = await fetch_logs_windowed(explorer, ADDR, T0, BlockRange(0, 2999), 1000)

        assert len(logs) == 10
        blocks = [int(ev.block_number, 16) for ev in logs]
        assert blocks == sorted(blocks)
        assert explorer.calls == [BlockRange(0, 999), BlockRange(1000, 1999), BlockRange(2000, 2999)]

    @pytest.mark.asyncio
    async def test_default_window_sizes(self):
        explorer = FakeExplorer()
        await fetch_logs_windowed(explorer, ADDR, T0, BlockRange(0, 2500))
        assert [w.span() for w in explorer.calls] == [1000, 1000, 501]

        explorer = FakeExplorer()
        await fetch_internal_transactions_windowed(explorer, ADDR, BlockRange(0, 25_000))
        assert [w.span() for w in explorer.calls] == [10_000, 10_000, 5_001]

    @pytest.mark.asyncio
    async def test_intra_window_order_is_kept(self):
        explorer = FakeExplorer({0: logs_at(9, 3, 5)})
        logs = await fetch_logs_windowed(explorer, ADDR, T0, BlockRange(0, 99), 100)
        assert [int(ev.block_number, 16) for ev in logs] == [9, 3, 5]

    @pytest.mark.asyncio
    async def test_failed_window_is_contained(self, caplog):
        explorer = FakeExplorer({
            0: logs_at(1),
            10: FatalError("ConnectError: refused"),
            20: logs_at(21),
        })
        with caplog.at_level(logging.WARNING, logger="scanfetch.application.use_cases"):
            logs = await fetch_logs_windowed(explorer, ADDR, T0, BlockRange(0, 29), 10)
        assert [int(ev.block_number, 16) for ev in logs] == [1, 21]
        assert "1 of 3 logs windows failed" in caplog.text

    @pytest.mark.asyncio
    async def test_decode_error_escaping_the_client_is_contained(self):
        explorer = FakeExplorer({0: RecordDecodeError("log", "broken"), 10: logs_at(11)})
        logs = await fetch_logs_windowed(explorer, ADDR, T0, BlockRange(0, 19), 10)
        assert len(logs) == 1

    @pytest.mark.asyncio
    async def test_sequential_by_default(self):
        explorer = FakeExplorer(delays={0: 0.01, 10: 0.01, 20: 0.01})
        await fetch_logs_windowed(explorer, ADDR, T0, BlockRange(0, 29), 10)
        assert explorer.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_concurrent_windows_keep_block_order(self):
        # later windows answer first
        explorer = FakeExplorer(
            {0: logs_at(0), 10: logs_at(10), 20: logs_at(20), 30: logs_at(30)},
            delays={0: 0.04, 10: 0.03, 20: 0.02, 30: 0.01},
        )
        logs = await fetch_logs_windowed(explorer, ADDR, T0, BlockRange(0, 39), 10, concurrency=4)
        assert [int(ev.block_number, 16) for ev in logs] == [0, 10, 20, 30]
        assert explorer.max_in_flight > 1

    @pytest.mark.asyncio
    async def test_window_callback_and_manifest(self, tmp_path):
        explorer = FakeExplorer({0: logs_at(1, 2), 10: FatalError("boom", attempts=4)})
        seen = []
        manifest = JSONLManifest(str(tmp_path / "runs" / "m.jsonl"))

        await fetch_logs_windowed(explorer, ADDR, T0, BlockRange(0, 25), 10,
                                  manifest=manifest, on_window=seen.append)

        assert [(r.from_block, r.to_block, r.status) for r in seen] == [
            (0, 9, "done"), (10, 19, "failed"), (20, 25, "empty"),
        ]
        lines = [json.loads(l) for l in (tmp_path / "runs" / "m.jsonl").read_text().splitlines()]
        assert [l["status"] for l in lines] == ["done", "failed", "empty"]
        assert lines[0]["kind"] == "logs"
        recs = manifest.records()
        assert recs[0].records == 2
        [failed] = manifest.failed()
        assert (failed.from_block, failed.attempts, failed.error) == (10, 4, "boom")


class TestFetchInternalTransactionsWindowed:

    @pytest.mark.asyncio
    async def test_concatenates_windows(self):
        txs = lambda *bs: Success(tuple(decode_internal_transaction(make_internal_tx(b)) for b in bs))
        explorer = FakeExplorer({0: txs(5), 10_000: txs(10_001, 19_999), 20_000: txs(20_000)})
        out = await fetch_internal_transactions_windowed(explorer, ADDR, BlockRange(0, 20_000))
        assert [t.block_number for t in out] == ["5", "10001", "19999", "20000"]
        assert explorer.calls[-1] == BlockRange(20_000, 20_000)


class TestResolveRange:

    @pytest.mark.asyncio
    async def test_end_is_chain_head(self):
        assert await resolve_range(FakeExplorer(head=1234), 1000) == BlockRange(1000, 1234)

    @pytest.mark.asyncio
    async def test_start_past_head_is_an_empty_run(self, caplog):
        with caplog.at_level(logging.WARNING, logger="scanfetch.application.use_cases"):
            assert await resolve_range(FakeExplorer(head=10), 11) is None
        assert "past the latest block 10" in caplog.text

    @pytest.mark.asyncio
    async def test_start_at_head_is_one_block(self):
        assert await resolve_range(FakeExplorer(head=10), 10) == BlockRange(10, 10)

    def test_block_range_still_rejects_inverted_bounds(self):
        with pytest.raises(InvalidRangeError):
            BlockRange(11, 10)

    @pytest.mark.asyncio
    async def test_latest_block_failure_propagates(self):
        with pytest.raises(LatestBlockError):
            await resolve_range(FakeExplorer(head=LatestBlockError("no result")), 0)
