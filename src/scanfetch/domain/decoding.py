from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping

from eth_utils import is_hex, to_checksum_address

from .errors import RecordDecodeError
from .models import EventLog, InternalTransaction

# (dataclass field, explorer JSON key); output files keep the upstream key names
INTERNAL_TX_FIELDS: tuple[tuple[str, str], ...] = (
    ("block_number",     "blockNumber"),
    ("timestamp",        "timeStamp"),
    ("hash",             "hash"),
    ("from_address",     "from"),
    ("to_address",       "to"),
    ("value",            "value"),
    ("contract_address", "contractAddress"),
    ("input",            "input"),
    ("type",             "type"),
    ("gas",              "gas"),
    ("gas_used",         "gasUsed"),
    ("trace_id",         "traceId"),
    ("is_error",         "isError"),
    ("err_code",         "errCode"),
)

EVENT_LOG_FIELDS: tuple[tuple[str, str], ...] = (
    ("address",           "address"),
    ("topics",            "topics"),
    ("data",              "data"),
    ("block_number",      "blockNumber"),
    ("timestamp",         "timeStamp"),
    ("gas_price",         "gasPrice"),
    ("gas_used",          "gasUsed"),
    ("log_index",         "logIndex"),
    ("transaction_hash",  "transactionHash"),
    ("transaction_index", "transactionIndex"),
)

# ---------- scalar helpers ---------------------------------------------------

def parse_quantity(v: str | int) -> int:
    """Explorer quantity ("0x1a", "26" or 26) -> int. Arbitrary precision."""
    if isinstance(v, int):
        return v
    s = v.strip().lower()
    return int(s, 16) if s.startswith("0x") else int(s)

def decode_block_number(result: Any) -> int:
    """Hex block height from the proxy module ("0x10" -> 16)."""
    if not isinstance(result, str) or not result.lower().startswith("0x") or not is_hex(result):
        raise ValueError(f"not a hex quantity: {result!r}")
    return int(result, 16)

def word(data_hex: str, i: int) -> int:
    """i-th 32-byte word of an ABI-encoded hex payload, as an unsigned int."""
    h = data_hex[2:] if data_hex[:2].lower() == "0x" else data_hex
    chunk = h[i*64:(i+1)*64]
    if len(chunk) != 64:
        raise ValueError(f"payload has no word {i}")
    return int(chunk, 16)

def address_from_topic(topic: str) -> str:
    """Indexed address topic -> lowercase 0x address (last 20 bytes)."""
    return "0x" + topic[-40:].lower()

def checksum(addr: str) -> str: return to_checksum_address(addr)

def scale(amount: int, decimals: int) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** decimals)

# ---------- record decoding (API/JSON -> typed) ------------------------------

def _require_str(kind: str, raw: Mapping[str, Any], key: str) -> str:
    if key not in raw:
        raise RecordDecodeError(kind, f"missing field {key!r}", raw)
    v = raw[key]
    if v is None:
        return ""
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    if not isinstance(v, str):
        raise RecordDecodeError(kind, f"field {key!r} is {type(v).__name__}, expected string", raw)
    return v

def decode_internal_transaction(raw: Any) -> InternalTransaction:
    if not isinstance(raw, Mapping):
        raise RecordDecodeError("internal transaction", f"expected object, got {type(raw).__name__}", raw)
    return InternalTransaction(**{
        attr: _require_str("internal transaction", raw, key) for attr, key in INTERNAL_TX_FIELDS
    })

def decode_event_log(raw: Any) -> EventLog:
    if not isinstance(raw, Mapping):
        raise RecordDecodeError("log", f"expected object, got {type(raw).__name__}", raw)
    topics = raw.get("topics")
    if not isinstance(topics, (list, tuple)) or not all(isinstance(t, str) for t in topics):
        raise RecordDecodeError("log", "field 'topics' must be a list of strings", raw)
    values: dict[str, Any] = {"topics": tuple(topics)}
    for attr, key in EVENT_LOG_FIELDS:
        if attr != "topics":
            values[attr] = _require_str("log", raw, key)
    return EventLog(**values)

def decode_internal_transactions(rows: Iterable[Any]) -> list[InternalTransaction]:
    return [decode_internal_transaction(r) for r in rows]

def decode_event_logs(rows: Iterable[Any]) -> list[EventLog]:
    return [decode_event_log(r) for r in rows]

# ---------- record encoding (typed -> JSON-ready dict) -----------------------

def internal_transaction_to_dict(tx: InternalTransaction) -> dict[str, str]:
    return {key: getattr(tx, attr) for attr, key in INTERNAL_TX_FIELDS}

def event_log_to_dict(log: EventLog) -> dict[str, Any]:
    out: dict[str, Any] = {key: getattr(log, attr) for attr, key in EVENT_LOG_FIELDS}
    out["topics"] = list(log.topics)
    return out

def record_to_dict(rec: InternalTransaction | EventLog) -> dict[str, Any]:
    if isinstance(rec, EventLog):
        return event_log_to_dict(rec)
    return internal_transaction_to_dict(rec)
