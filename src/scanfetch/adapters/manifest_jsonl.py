from __future__ import annotations
import os, json, asyncio
from dataclasses import asdict
from ..ports.storage import ManifestSink
from ..domain.models import WindowRec

class JSONLManifest(ManifestSink):
    """Per-window audit trail of one run. Append-only; never consulted to skip windows."""

    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._lock = asyncio.Lock()

    async def append(self, rec: WindowRec) -> None:
        line = json.dumps(asdict(rec), separators=(",", ":")) + "\n"
        async with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line); f.flush(); os.fsync(f.fileno())

    def records(self) -> list[WindowRec]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            return [WindowRec(**json.loads(line)) for line in f if line.strip()]

    def failed(self) -> list[WindowRec]:
        return [r for r in self.records() if r.status == "failed"]
