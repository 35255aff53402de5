import asyncio, json, logging
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Awaitable, TypeVar

import click
import typer
from eth_utils import is_address, is_hex
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    Progress, BarColumn, TextColumn, TimeElapsedColumn,
    TimeRemainingColumn, MofNCompleteColumn, SpinnerColumn
)
from rich.table import Table

from ..adapters.explorer_httpx import HttpxExplorer
from ..adapters.json_sink import JSONRecordSink, read_event_logs
from ..adapters.manifest_jsonl import JSONLManifest
from ..adapters.parquet_sink import ParquetRecordSink
from ..application.analysis import CLIPPER_ADDRESS, DEFAULT_ETH_PRICE, profit_distribution
from ..application.planning import DEFAULT_INTERNAL_TX_WINDOW, DEFAULT_LOGS_WINDOW, window_count
from ..application.use_cases import fetch_internal_transactions_windowed, fetch_logs_windowed, resolve_range
from ..application.utils import _now_ts_str
from ..config import load_settings
from ..domain.decoding import checksum
from ..domain.errors import ScanfetchError
from ..domain.models import BlockRange
from ..domain.value_types import Address, QueryKind, Topic0
from ..ports.storage import RecordSink

app = typer.Typer(help="scanfetch: windowed Etherscan log / internal transaction fetcher.",
                  no_args_is_help=True)
console = Console(stderr=True)
log = logging.getLogger("scanfetch")

T = TypeVar("T")


class OutputFormat(str, Enum):
    json = "json"
    parquet = "parquet"


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # one line per request otherwise
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _address(value: str) -> Address:
    if not is_address(value):
        raise typer.BadParameter(f"not an address: {value}")
    return Address(value.lower())

def _topic(value: str) -> Topic0:
    if not (is_hex(value) and value.startswith("0x") and len(value) == 66):
        raise typer.BadParameter(f"not a 32-byte topic hash: {value}")
    return Topic0(value.lower())

def _explorer() -> HttpxExplorer:
    s = load_settings()
    return HttpxExplorer(s.base_url, s.api_key, chain_id=s.chain_id,
                         timeout_s=s.timeout_s, retry=s.retry_policy())

def _sink(out: str, fmt: OutputFormat, kind: QueryKind) -> RecordSink:
    return ParquetRecordSink(out, kind) if fmt is OutputFormat.parquet else JSONRecordSink(out)

def _manifest(path: str, kind: str, rng: BlockRange) -> JSONLManifest | None:
    if not path:
        return None
    if path.endswith("/"):
        path += f"run_{_now_ts_str()}_{kind}_{rng.start}_{rng.end}.jsonl"
    return JSONLManifest(path)

def _progress() -> Progress:
    return Progress(SpinnerColumn(),
                    TextColumn("[bold]collecting data[/]"),
                    BarColumn(),
                    MofNCompleteColumn(),
                    TextColumn("•"),
                    TimeElapsedColumn(),
                    TextColumn("→"),
                    TimeRemainingColumn(),
                    TextColumn(" • {task.description}"),
                    console=console,
                    transient=False,
                    expand=True,
                    )

def _report_failed(manifest: JSONLManifest | None) -> None:
    if manifest is None:
        return
    failed = manifest.failed()
    if failed:
        spans = ", ".join(f"{r.from_block}-{r.to_block}" for r in failed)
        console.print(f"[yellow]{len(failed)} window(s) returned nothing because of errors[/]: {spans} (see {manifest.path})")

def _run(coro: Awaitable[T]) -> T:
    try:
        return asyncio.run(coro)
    except ScanfetchError as e:
        raise click.ClickException(str(e))


@app.command("latest-block")
def latest_block():
    """Print the chain head block number."""
    async def run() -> int:
        async with _explorer() as explorer:
            return await explorer.latest_block()
    typer.echo(_run(run()))


@app.command("get-logs")
def get_logs(
    address: str = typer.Option(..., "--address", "-a", help="Address to get logs for"),
    topic: str = typer.Option(..., "--topic", "-t", help="topic0 to filter logs"),
    start: int = typer.Option(..., "--start", "-s", help="Start block number"),
    out: str = typer.Option("", "--out", "-o", help="Output file [default: data/logs.<format>]"),
    window: int = typer.Option(DEFAULT_LOGS_WINDOW, "--window", help="Blocks per request"),
    concurrency: int = typer.Option(1, "--concurrency", help="Max windows in flight"),
    fmt: OutputFormat = typer.Option(OutputFormat.json, "--format"),
    manifest_path: str = typer.Option("", "--manifest", help="JSONL per-window report (file, or dir/)"),
):
    """Fetch logs for an address + topic0 from --start up to the latest block."""
    addr, t0 = _address(address), _topic(topic)

    async def run():
        async with _explorer() as explorer:
            rng = await resolve_range(explorer, start)
            if rng is None:
                return [], None
            log.info("Getting logs from block %d to %d", rng.start, rng.end)
            manifest = _manifest(manifest_path, "logs", rng)
            with _progress() as progress:
                task = progress.add_task(f"{rng.start:,}-{rng.end:,}", total=window_count(rng, window))
                logs = await fetch_logs_windowed(
                    explorer, addr, t0, rng, window,
                    concurrency=concurrency,
                    manifest=manifest,
                    on_window=lambda _: progress.advance(task, 1),
                )
            return logs, manifest

    logs, manifest = _run(run())
    path = _sink(out or f"data/logs.{fmt.value}", fmt, "logs").write(logs)
    console.print(f"[bold]done[/]: found {len(logs)} logs → {path}")
    _report_failed(manifest)


@app.command("internal-txs")
def internal_txs(
    address: str = typer.Option(..., "--address", "-a", help="Address to get internal transactions for"),
    start: int = typer.Option(..., "--start", "-s", help="Start block number"),
    out: str = typer.Option("", "--out", "-o", help="Output file [default: data/internal-txs.<format>]"),
    window: int = typer.Option(DEFAULT_INTERNAL_TX_WINDOW, "--window", help="Blocks per request"),
    concurrency: int = typer.Option(1, "--concurrency", help="Max windows in flight"),
    fmt: OutputFormat = typer.Option(OutputFormat.json, "--format"),
    manifest_path: str = typer.Option("", "--manifest", help="JSONL per-window report (file, or dir/)"),
):
    """Fetch internal transactions of an address from --start up to the latest block."""
    addr = _address(address)

    async def run():
        async with _explorer() as explorer:
            rng = await resolve_range(explorer, start)
            if rng is None:
                return [], None
            log.info("Getting internal transactions from block %d to %d", rng.start, rng.end)
            manifest = _manifest(manifest_path, "internal_txs", rng)
            with _progress() as progress:
                task = progress.add_task(f"{rng.start:,}-{rng.end:,}", total=window_count(rng, window))
                txs = await fetch_internal_transactions_windowed(
                    explorer, addr, rng, window,
                    concurrency=concurrency,
                    manifest=manifest,
                    on_window=lambda _: progress.advance(task, 1),
                )
            return txs, manifest

    txs, manifest = _run(run())
    path = _sink(out or f"data/internal-txs.{fmt.value}", fmt, "internal_txs").write(txs)
    console.print(f"[bold]done[/]: found {len(txs)} internal transactions → {path}")
    _report_failed(manifest)


@app.command("analyze-rfq")
def analyze_rfq(
    start: int = typer.Option(..., "--start", "-s", help="Start block number"),
    logs_path: str = typer.Option("data/clipper-logs.json", "--logs", help="Logs previously saved by get-logs"),
    address: str = typer.Option(CLIPPER_ADDRESS, "--address", "-a", help="Address paying out the profit"),
    eth_price: str = typer.Option(str(DEFAULT_ETH_PRICE), "--eth-price", help="USD per ETH"),
    window: int = typer.Option(DEFAULT_INTERNAL_TX_WINDOW, "--window", help="Blocks per request"),
):
    """Profit (USD) and trade count per input size, joining saved logs with live internal transactions."""
    addr = _address(address)
    try:
        price = Decimal(eth_price)
    except InvalidOperation:
        raise typer.BadParameter(f"not a number: {eth_price}", param_hint="--eth-price")

    try:
        logs = read_event_logs(logs_path)
    except (OSError, ValueError, ScanfetchError) as e:
        raise click.ClickException(f"cannot read {logs_path}: {e}")

    async def run():
        async with _explorer() as explorer:
            rng = await resolve_range(explorer, start)
            if rng is None:
                return []
            with _progress() as progress:
                task = progress.add_task(f"{rng.start:,}-{rng.end:,}", total=window_count(rng, window))
                return await fetch_internal_transactions_windowed(
                    explorer, addr, rng, window,
                    on_window=lambda _: progress.advance(task, 1),
                )

    report = profit_distribution(logs, _run(run()), price)

    table = Table(title=f"RFQ profit for {checksum(addr)}")
    table.add_column("input (USD)", justify="right")
    table.add_column("count", justify="right")
    table.add_column("profit (USD)", justify="right")
    for size, profit in report.profit_by_input.items():
        table.add_row(f"{size:,}", str(report.count_by_input[size]), f"{profit:,.2f}")
    Console().print(table)

    profit_json = json.dumps({k: f"{v:.2f}" for k, v in report.profit_by_input.items()})
    typer.echo(f"Max Input: {report.max_input}")
    typer.echo(f"Profit Result: {profit_json}")
    typer.echo(f"Count Result: {json.dumps(report.count_by_input)}")


if __name__ == "__main__":
    app()
