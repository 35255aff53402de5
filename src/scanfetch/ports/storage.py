# scanfetch/ports/storage.py
from __future__ import annotations

from typing import Protocol, Sequence
from ..domain.models import EventLog, InternalTransaction, WindowRec


class RecordSink(Protocol):
    """Port for writing a whole fetched sequence in one go (no streaming)."""

    def write(self, records: Sequence[InternalTransaction | EventLog]) -> str:
        """Persist the records and return the path written."""


class ManifestSink(Protocol):
    """Port for appending per-window status records (e.g., JSONL manifest)."""

    async def append(self, rec: WindowRec) -> None:
        """Append a manifest record atomically (callers handle ordering/locking)."""
