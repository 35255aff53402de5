from __future__ import annotations
import logging, math
from decimal import Decimal
from typing import Iterable, Mapping

from eth_utils import from_wei

from ..domain.decoding import address_from_topic, parse_quantity, scale, word
from ..domain.models import EventLog, InternalTransaction, ProfitReport

log = logging.getLogger(__name__)

# default payer whose internal transactions are joined against clipper-logs.json
CLIPPER_ADDRESS = "0xa487e3c1d7880675f5578e24110ba138c2558c1e"
DEFAULT_ETH_PRICE = Decimal(3000)

WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
USDT = "0xdac17f958d2ee523a2206206994597c13d831ec7"
DAI  = "0x6b175474e89094c44da98b954eedeac495271d0f"

TOKEN_DECIMALS: dict[str, int] = {WETH: 18, USDC: 6, USDT: 6, DAI: 18}


def token_price(token: str, eth_price: Decimal) -> Decimal:
    # stables are taken at par
    return eth_price if token == WETH else Decimal(1)


def input_usd(ev: EventLog, eth_price: Decimal,
              decimals: Mapping[str, int] = TOKEN_DECIMALS) -> int | None:
    """Whole-dollar size of the swap input described by a log, None if it can't be priced."""
    if len(ev.topics) < 2:
        return None
    token = address_from_topic(ev.topics[1])
    if token not in decimals:
        log.debug("skipping %s: unknown input token %s", ev.transaction_hash, token)
        return None
    try:
        amount = word(ev.data, 0)
    except ValueError:
        return None
    return math.floor(scale(amount, decimals[token]) * token_price(token, eth_price))


def profit_usd(tx: InternalTransaction, eth_price: Decimal) -> Decimal | None:
    """USD value of the ETH paid out, None if the explorer sent no usable value."""
    try:
        wei = parse_quantity(tx.value)
    except ValueError:
        log.debug("skipping %s: unreadable value %r", tx.hash, tx.value)
        return None
    return Decimal(from_wei(wei, "ether")) * eth_price


def profit_distribution(
    logs: Iterable[EventLog],
    internal_txs: Iterable[InternalTransaction],
    eth_price: Decimal = DEFAULT_ETH_PRICE,
) -> ProfitReport:
    """Bucket internal-transaction profit (USD) by the USD size of the matching swap input."""
    by_hash: dict[str, EventLog] = {}
    for ev in logs:
        by_hash.setdefault(ev.transaction_hash.lower(), ev)

    profit: dict[int, Decimal] = {}
    count: dict[int, int] = {}
    max_input = 0
    for tx in internal_txs:
        ev = by_hash.get(tx.hash.lower())
        if ev is None:
            continue
        size = input_usd(ev, eth_price)
        paid = profit_usd(tx, eth_price)
        if size is None or paid is None:
            continue
        max_input = max(max_input, size)
        profit[size] = profit.get(size, Decimal(0)) + paid
        count[size] = count.get(size, 0) + 1

    log.info("Matched %d internal transactions against logs", sum(count.values()))
    return ProfitReport(
        max_input=max_input,
        profit_by_input=dict(sorted(profit.items())),
        count_by_input=dict(sorted(count.items())),
    )
