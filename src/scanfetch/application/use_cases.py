from __future__ import annotations
import asyncio, logging, time
from typing import Awaitable, Callable, TypeVar

from ..domain.errors import RecordDecodeError
from ..domain.models import (
    BlockRange, Empty, EventLog, FatalError, FetchOutcome, InternalTransaction, Success, WindowRec,
)
from ..domain.value_types import Address, QueryKind, Topic0
from ..ports.explorer import ExplorerClient
from ..ports.storage import ManifestSink
from .planning import DEFAULT_INTERNAL_TX_WINDOW, DEFAULT_LOGS_WINDOW, plan_windows

log = logging.getLogger(__name__)

T = TypeVar("T")
WindowCallback = Callable[[WindowRec], None]


def _settle(kind: QueryKind, w: BlockRange, outcome: FetchOutcome[T]) -> tuple[list[T], WindowRec]:
    now = time.time()
    if isinstance(outcome, Success):
        items = list(outcome.items)
        return items, WindowRec(w.start, w.end, kind, "done", outcome.attempts, None, len(items), now)
    if isinstance(outcome, Empty):
        return [], WindowRec(w.start, w.end, kind, "empty", outcome.attempts, None, 0, now)
    # FatalError, or a TransientFailure an adapter let through
    return [], WindowRec(w.start, w.end, kind, "failed", outcome.attempts, outcome.message, 0, now)


async def fetch_windowed(
    fetch_one: Callable[[BlockRange], Awaitable[FetchOutcome[T]]],
    *,
    kind: QueryKind,
    rng: BlockRange,
    window_size: int,
    concurrency: int = 1,
    manifest: ManifestSink | None = None,
    on_window: WindowCallback | None = None,
) -> list[T]:
    """Fetch rng window by window and concatenate the results in block order.

    A window that comes back empty or failed contributes nothing and never
    stops the loop. With concurrency == 1 (the default) each window, retries
    included, finishes before the next one is sent.
    """
    windows = plan_windows(rng, window_size)
    failed = 0

    async def run_window(w: BlockRange) -> list[T]:
        nonlocal failed
        log.debug("Processing %s from %d to %d", kind, w.start, w.end)
        try:
            outcome = await fetch_one(w)
        except RecordDecodeError as e:
            log.warning("Could not decode %s [%d-%d]: %s", kind, w.start, w.end, e)
            outcome = FatalError(str(e))
        items, rec = _settle(kind, w, outcome)
        if rec.status == "failed":
            failed += 1
        if manifest is not None:
            await manifest.append(rec)
        if on_window is not None:
            on_window(rec)
        return items

    out: list[T] = []
    if concurrency <= 1:
        for w in windows:
            out.extend(await run_window(w))
    else:
        sem = asyncio.Semaphore(concurrency)

        async def bounded(w: BlockRange) -> list[T]:
            async with sem:
                return await run_window(w)

        # gather keeps input order, so block order survives parallel windows
        for chunk in await asyncio.gather(*(bounded(w) for w in windows)):
            out.extend(chunk)

    if failed:
        log.warning("%d of %d %s windows failed; output for %d-%d is incomplete",
                    failed, len(windows), kind, rng.start, rng.end)
    log.info("Fetched %d %s records over %d windows", len(out), kind, len(windows))
    return out


async def fetch_internal_transactions_windowed(
    explorer: ExplorerClient,
    address: Address,
    rng: BlockRange,
    window_size: int = DEFAULT_INTERNAL_TX_WINDOW,
    *,
    concurrency: int = 1,
    manifest: ManifestSink | None = None,
    on_window: WindowCallback | None = None,
) -> list[InternalTransaction]:
    return await fetch_windowed(
        lambda w: explorer.internal_transactions_outcome(address, w),
        kind="internal_txs", rng=rng, window_size=window_size,
        concurrency=concurrency, manifest=manifest, on_window=on_window,
    )


async def fetch_logs_windowed(
    explorer: ExplorerClient,
    address: Address,
    topic0: Topic0,
    rng: BlockRange,
    window_size: int = DEFAULT_LOGS_WINDOW,
    *,
    concurrency: int = 1,
    manifest: ManifestSink | None = None,
    on_window: WindowCallback | None = None,
) -> list[EventLog]:
    return await fetch_windowed(
        lambda w: explorer.logs_outcome(address, topic0, w),
        kind="logs", rng=rng, window_size=window_size,
        concurrency=concurrency, manifest=manifest, on_window=on_window,
    )


async def resolve_range(explorer: ExplorerClient, start_block: int) -> BlockRange | None:
    """[start_block, chain head], or None when start_block is past the head (nothing to fetch).

    LatestBlockError propagates and aborts the run.
    """
    end_block = await explorer.latest_block()
    if start_block > end_block:
        log.warning("Start block %d is past the latest block %d; nothing to fetch", start_block, end_block)
        return None
    return BlockRange(start_block, end_block)
