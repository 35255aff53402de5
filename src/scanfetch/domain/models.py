from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Generic, TypeVar, Union

from .errors import InvalidRangeError
from .value_types import QueryKind, Status

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            raise InvalidRangeError(f"start block must be >= 0, got {self.start}")
        if self.start > self.end:
            raise InvalidRangeError(f"start block ({self.start}) must be <= end block ({self.end})")

    def span(self) -> int: return self.end - self.start + 1


# Records mirror the explorer's JSON. Numbers stay strings (wei values overflow float).

@dataclass(slots=True, frozen=True)
class InternalTransaction:
    block_number: str
    timestamp: str
    hash: str
    from_address: str
    to_address: str
    value: str                 # wei, decimal string
    contract_address: str
    input: str
    type: str                  # call | create | delegatecall ...
    gas: str
    gas_used: str
    trace_id: str
    is_error: str              # "0" | "1"
    err_code: str


@dataclass(slots=True, frozen=True)
class EventLog:
    address: str
    topics: tuple[str, ...]
    data: str                  # raw hex payload
    block_number: str          # hex, as returned by the logs module
    timestamp: str
    gas_price: str
    gas_used: str
    log_index: str
    transaction_hash: str
    transaction_index: str


# ──────────────────────────────
# Per-window outcomes
# ──────────────────────────────

@dataclass(slots=True, frozen=True)
class Success(Generic[T]):
    items: tuple[T, ...]
    attempts: int = 1


@dataclass(slots=True, frozen=True)
class Empty:
    message: str = ""
    attempts: int = 1


@dataclass(slots=True, frozen=True)
class TransientFailure:
    message: str
    attempts: int = 1


@dataclass(slots=True, frozen=True)
class FatalError:
    message: str
    attempts: int = 1


FetchOutcome = Union[Success[T], Empty, TransientFailure, FatalError]


@dataclass(slots=True, frozen=True)
class WindowRec:
    from_block: int
    to_block: int
    kind: QueryKind
    status: Status
    attempts: int = 0
    error: str | None = None
    records: int = 0
    updated_at: float = 0.0


@dataclass(slots=True, frozen=True)
class ProfitReport:
    max_input: int
    profit_by_input: dict[int, Decimal] = field(default_factory=dict)
    count_by_input: dict[int, int] = field(default_factory=dict)

    @property
    def matched(self) -> int: return sum(self.count_by_input.values())


