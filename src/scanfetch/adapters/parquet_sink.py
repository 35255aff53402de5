from __future__ import annotations
import os, pyarrow as pa, pyarrow.parquet as pq
from typing import Sequence

from ..domain.decoding import EVENT_LOG_FIELDS, INTERNAL_TX_FIELDS
from ..domain.models import EventLog, InternalTransaction
from ..domain.value_types import QueryKind
from ..ports.storage import RecordSink

# numbers stay strings, same as the JSON output
_INTERNAL_TX_SCHEMA = pa.schema([(key, pa.string()) for _, key in INTERNAL_TX_FIELDS])
_EVENT_LOG_SCHEMA = pa.schema([
    (key, pa.list_(pa.string()) if attr == "topics" else pa.string()) for attr, key in EVENT_LOG_FIELDS
])
_LAYOUTS = {
    "internal_txs": (INTERNAL_TX_FIELDS, _INTERNAL_TX_SCHEMA),
    "logs": (EVENT_LOG_FIELDS, _EVENT_LOG_SCHEMA),
}

def _records_to_table(records: Sequence[InternalTransaction | EventLog], kind: QueryKind) -> pa.Table:
    fields, schema = _LAYOUTS[kind]
    columns = {
        key: pa.array(
            [list(getattr(r, attr)) if attr == "topics" else getattr(r, attr) for r in records],
            type=schema.field(key).type,
        )
        for attr, key in fields
    }
    return pa.Table.from_pydict(columns, schema=schema)

class ParquetRecordSink(RecordSink):
    """One Parquet file per run. The column layout comes from kind, so an empty run keeps its schema."""

    def __init__(self, path: str, kind: QueryKind, codec: str = "snappy") -> None:
        if kind not in _LAYOUTS:
            raise ValueError(f"unknown record kind: {kind}")
        self.path = path
        self.kind = kind
        self.codec = codec

    def write(self, records: Sequence[InternalTransaction | EventLog]) -> str:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        table = _records_to_table(records, self.kind)
        tmp = self.path + ".tmp"
        try:
            pq.write_table(table, tmp, compression=self.codec, use_dictionary=True)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        os.replace(tmp, self.path)
        return self.path
