from __future__ import annotations
import asyncio, logging, time, httpx
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from ..domain.decoding import decode_block_number, decode_event_logs, decode_internal_transactions
from ..domain.errors import LatestBlockError, RecordDecodeError
from ..domain.models import (
    BlockRange, Empty, EventLog, FatalError, FetchOutcome, InternalTransaction, Success, TransientFailure,
)
from ..domain.value_types import Address, Topic0
from ..ports.explorer import ExplorerClient

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_URL = "https://api.etherscan.io/v2/api"
NOTOK = "NOTOK"   # rate limit / busy marker; "No records found" comes back as a plain status 0


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    backoff_s: float = 1.0
    max_attempts: int | None = None    # None -> retry for as long as the server says NOTOK
    deadline_s: float | None = None    # wall clock budget per window, None -> unbounded

    def exhausted(self, attempts: int, elapsed_s: float) -> bool:
        if self.max_attempts is not None and attempts >= self.max_attempts:
            return True
        if self.deadline_s is not None and elapsed_s + self.backoff_s > self.deadline_s:
            return True
        return False


def classify_response(body: Any) -> FetchOutcome[Any]:
    """Map an explorer JSON body onto Success / Empty / TransientFailure.

    Raises ValueError when the body is not an explorer envelope and
    RecordDecodeError when a success carries a non-list result.
    """
    if not isinstance(body, dict):
        raise ValueError(f"unexpected response body: {type(body).__name__}")
    status = str(body.get("status", ""))
    message = str(body.get("message") or "")
    if status == "0" and message.startswith(NOTOK):
        return TransientFailure(message)
    if status == "1":
        result = body.get("result")
        if not isinstance(result, list):
            raise RecordDecodeError("response", f"result is {type(result).__name__}, expected list", body)
        return Success(tuple(result))
    return Empty(message)


class HttpxExplorer(ExplorerClient):
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str = "",
        *,
        chain_id: int | None = 1,
        timeout_s: float = 20,
        max_conn: int = 8,
        retry: RetryPolicy = RetryPolicy(),
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.chain_id = chain_id
        self.retry = retry
        self._sleep = sleep
        self._clock = clock
        self.client = client or httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn//2)),
        )

    async def __aenter__(self) -> "HttpxExplorer":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _params(self, **query: str | int) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.chain_id is not None:
            params["chainid"] = str(self.chain_id)
        params.update({k: str(v) for k, v in query.items()})
        params["apikey"] = self.api_key
        return params

    async def _get(self, params: dict[str, str]) -> Any:
        r = await self.client.get(self.base_url, params=params)
        r.raise_for_status()
        return r.json()

    async def latest_block(self) -> int:
        try:
            body = await self._get(self._params(module="proxy", action="eth_blockNumber"))
        except (httpx.HTTPError, ValueError) as e:
            raise LatestBlockError(f"Error fetching latest block: {type(e).__name__}: {e}") from e
        result = body.get("result") if isinstance(body, dict) else None
        try:
            return decode_block_number(result)
        except ValueError as e:
            raise LatestBlockError(f"Failed to get latest block number (result={result!r})") from e

    async def _fetch_window(
        self,
        what: str,
        params: dict[str, str],
        decode: Callable[[Sequence[Any]], list[T]],
    ) -> FetchOutcome[T]:
        attempts = 0
        started = self._clock()
        while True:
            attempts += 1
            try:
                outcome = classify_response(await self._get(params))
            except (httpx.HTTPError, ValueError) as e:
                log.warning("Could not fetch %s: %s: %s", what, type(e).__name__, e)
                return FatalError(f"{type(e).__name__}: {e}", attempts)
            except RecordDecodeError as e:
                log.warning("Could not decode %s: %s", what, e)
                return FatalError(str(e), attempts)

            if isinstance(outcome, TransientFailure):
                if self.retry.exhausted(attempts, self._clock() - started):
                    log.warning("Giving up on %s after %d attempts (%s)", what, attempts, outcome.message)
                    return FatalError(f"retries exhausted after {attempts} attempts: {outcome.message}", attempts)
                log.info("%s: %s, wait for %.1fs and retry", what, outcome.message, self.retry.backoff_s)
                await self._sleep(self.retry.backoff_s)
                continue

            if isinstance(outcome, Success):
                try:
                    items = decode(outcome.items)
                except RecordDecodeError as e:
                    log.warning("Could not decode %s: %s", what, e)
                    return FatalError(str(e), attempts)
                return Success(tuple(items), attempts)

            return Empty(outcome.message, attempts)

    async def internal_transactions_outcome(
        self, address: Address, window: BlockRange,
    ) -> FetchOutcome[InternalTransaction]:
        params = self._params(
            module="account", action="txlistinternal", address=str(address),
            startblock=window.start, endblock=window.end, sort="asc",
        )
        what = f"internal transactions for {address} [{window.start}-{window.end}]"
        return await self._fetch_window(what, params, decode_internal_transactions)

    async def logs_outcome(
        self, address: Address, topic0: Topic0, window: BlockRange,
    ) -> FetchOutcome[EventLog]:
        params = self._params(
            module="logs", action="getLogs", address=str(address), topic0=str(topic0),
            fromBlock=window.start, toBlock=window.end,
        )
        what = f"logs for {address} [{window.start}-{window.end}]"
        return await self._fetch_window(what, params, decode_event_logs)

    async def get_internal_transactions(self, address: Address, window: BlockRange) -> list[InternalTransaction]:
        outcome = await self.internal_transactions_outcome(address, window)
        return list(outcome.items) if isinstance(outcome, Success) else []

    async def get_logs(self, address: Address, topic0: Topic0, window: BlockRange) -> list[EventLog]:
        outcome = await self.logs_outcome(address, topic0, window)
        return list(outcome.items) if isinstance(outcome, Success) else []
