# scanfetch/ports/explorer.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import BlockRange, EventLog, FetchOutcome, InternalTransaction
from ..domain.value_types import Address, Topic0


class ExplorerClient(Protocol):
    """Port defining the contract for an Etherscan-style explorer client."""

    async def latest_block(self) -> int:
        """Return the chain head as an integer. Raises LatestBlockError; never retried."""

    async def internal_transactions_outcome(
        self, address: Address, window: BlockRange,
    ) -> FetchOutcome[InternalTransaction]:
        """Fetch one window and return its final outcome (retries already applied)."""

    async def logs_outcome(
        self, address: Address, topic0: Topic0, window: BlockRange,
    ) -> FetchOutcome[EventLog]:
        """Same as internal_transactions_outcome, filtered on topic0 (exact match)."""

    async def get_internal_transactions(self, address: Address, window: BlockRange) -> list[InternalTransaction]:
        """Records for [window.start, window.end]; [] when the window is empty or failed."""

    async def get_logs(self, address: Address, topic0: Topic0, window: BlockRange) -> list[EventLog]:
        """Logs for [window.start, window.end]; [] when the window is empty or failed."""
