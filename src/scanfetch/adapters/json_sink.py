from __future__ import annotations
import os, json
from typing import Any, Sequence

from ..domain.decoding import decode_event_logs, decode_internal_transactions, record_to_dict
from ..domain.errors import RecordDecodeError
from ..domain.models import EventLog, InternalTransaction
from ..ports.storage import RecordSink


class JSONRecordSink(RecordSink):
    """Whole result as one JSON array, explorer-shaped keys. Written via tmp + rename."""

    def __init__(self, path: str, indent: int | None = None) -> None:
        self.path = path
        self.indent = indent

    def write(self, records: Sequence[InternalTransaction | EventLog]) -> str:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump([record_to_dict(r) for r in records], f, indent=self.indent)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        os.replace(tmp, self.path)
        return self.path


def _load_array(path: str) -> list[Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise RecordDecodeError("file", f"{path} does not hold a JSON array", None)
    return data

def read_event_logs(path: str) -> list[EventLog]:
    return decode_event_logs(_load_array(path))

def read_internal_transactions(path: str) -> list[InternalTransaction]:
    return decode_internal_transactions(_load_array(path))
