from __future__ import annotations


class ScanfetchError(Exception):
    """Base class for every error raised by scanfetch."""


class ConfigError(ScanfetchError):
    pass


class ExplorerError(ScanfetchError):
    """Something went wrong talking to (or understanding) the explorer API."""


class LatestBlockError(ExplorerError):
    """The chain head could not be resolved. Nothing downstream can run without it."""


class RecordDecodeError(ExplorerError):
    def __init__(self, kind: str, reason: str, raw: object = None) -> None:
        super().__init__(f"cannot decode {kind} record: {reason}")
        self.kind = kind
        self.reason = reason
        self.raw = raw


class InvalidRangeError(ScanfetchError, ValueError):
    pass
