"""Shared fixtures: explorer-shaped records and a fake clock for retry tests."""

import httpx
import pytest

from scanfetch.adapters.explorer_httpx import HttpxExplorer, RetryPolicy

ADDRESS = "0xa487e3c1d7880675f5578e24110ba138c2558c1e"
TOPIC0 = "0x" + "ab" * 32
BASE_URL = "https://api.test/v2/api"


def make_internal_tx(block: int, i: int = 0, value: str = "1000000000000000", tx_hash: str | None = None) -> dict:
    return {
        "blockNumber": str(block),
        "timeStamp": str(1_700_000_000 + block),
        "hash": tx_hash or f"0x{block:032x}{i:032x}",
        "from": ADDRESS,
        "to": "0x" + "11" * 20,
        "value": value,
        "contractAddress": "",
        "input": "",
        "type": "call",
        "gas": "2300",
        "gasUsed": "0",
        "traceId": f"0_{i}",
        "isError": "0",
        "errCode": "",
    }


def make_log(block: int, i: int = 0, topics: list[str] | None = None, data: str = "0x",
             tx_hash: str | None = None) -> dict:
    return {
        "address": ADDRESS,
        "topics": topics if topics is not None else [TOPIC0],
        "data": data,
        "blockNumber": hex(block),
        "blockHash": "0x" + "00" * 32,
        "timeStamp": hex(1_700_000_000 + block),
        "gasPrice": "0x3b9aca00",
        "gasUsed": "0x5208",
        "logIndex": hex(i),
        "transactionHash": tx_hash or f"0x{block:032x}{i:032x}",
        "transactionIndex": "0x0",
    }


def ok(result) -> dict:
    return {"status": "1", "message": "OK", "result": result}


def notok(result: str = "Max rate limit reached") -> dict:
    return {"status": "0", "message": "NOTOK", "result": result}


def no_records(message: str = "No records found") -> dict:
    return {"status": "0", "message": message, "result": []}


class FakeClock:
    """Monotonic clock that only moves when sleep() is awaited."""

    def __init__(self) -> None:
        self.now = 0.0
        self.delays: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_explorer(clock):
    """Build an HttpxExplorer whose HTTP layer is a handler function."""

    def _make(handler, retry: RetryPolicy = RetryPolicy()) -> HttpxExplorer:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpxExplorer(BASE_URL, "KEY", client=client, retry=retry,
                             sleep=clock.sleep, clock=clock)

    return _make


def scripted(*bodies):
    """Handler answering with the given JSON bodies in order; records every request."""
    requests: list[httpx.Request] = []
    queue = list(bodies)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        body = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(200, json=body)

    handler.requests = requests
    return handler
