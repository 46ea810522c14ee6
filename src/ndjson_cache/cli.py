"""Command line entry point for ndjson-cache.

Provides a Typer-based CLI to put, get and flush cached record arrays.
Settings are read from the environment once, when a command starts.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import ndjson
import typer
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.table import Table

from ndjson_cache import __version__
from ndjson_cache.cache import ObjectCache
from ndjson_cache.codec import JSON_DUMPS_KWARGS
from ndjson_cache.errors import CacheError
from ndjson_cache.logging_config import setup_logging

console = Console()
err_console = Console(stderr=True)

NDJSON_SUFFIXES = (".ndjson", ".jsonl")

app = typer.Typer(
    name="ndjson-cache",
    help="Store and fetch JSON record arrays cached in S3 as NDJSON",
    rich_markup_mode="rich",
)

BucketOption = typer.Option(None, "--bucket", "-b", help="Bucket name (default: $NDJSON_CACHE_BUCKET)")
RegionOption = typer.Option(None, "--region", "-r", help="Region (default: $AWS_REGION or eu-west-1)")
EndpointOption = typer.Option(None, "--endpoint-url", help="S3-compatible endpoint URL")


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"ndjson-cache version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """ndjson-cache: a key-value cache of JSON records in S3.

    ## Commands

    * [bold cyan]put[/bold cyan] - Store a JSON or NDJSON file under a key
    * [bold cyan]get[/bold cyan] - Print the records cached under a key
    * [bold cyan]exists[/bold cyan] - Check whether a key is cached
    * [bold cyan]flush[/bold cyan] - Delete a cached key
    * [bold cyan]options[/bold cyan] - Show the resolved configuration
    """
    setup_logging()


def build_cache(
    bucket: Optional[str],
    region: Optional[str],
    endpoint_url: Optional[str],
) -> ObjectCache:
    """Build a cache from command line options.

    Args:
        bucket: Bucket name, or None for the environment default
        region: Region override
        endpoint_url: Endpoint override

    Returns:
        ObjectCache instance
    """
    config = {}
    if region:
        config["region_name"] = region
    if endpoint_url:
        config["endpoint_url"] = endpoint_url
    return ObjectCache(bucket, config)


def load_records(path: Path) -> Any:
    """Load records from a JSON or NDJSON file.

    Args:
        path: File ending in .ndjson/.jsonl (one record per line), or any
            other file holding a single JSON array or object

    Returns:
        Loaded records
    """
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix.lower() in NDJSON_SUFFIXES:
            return list(ndjson.reader(f))
        return json.load(f)


def _fail(message: str) -> None:
    err_console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _open_cache(bucket: Optional[str], region: Optional[str], endpoint_url: Optional[str]) -> ObjectCache:
    try:
        return build_cache(bucket, region, endpoint_url)
    except CacheError as exc:
        _fail(f"Error: {exc}")


def _run(coro):
    try:
        return asyncio.run(coro)
    except (CacheError, ClientError, BotoCoreError) as exc:
        _fail(f"Error: {exc}")


@app.command("put")
def put(
    key: str = typer.Argument(..., help="Object key"),
    path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON or NDJSON file to cache",
    ),
    bucket: Optional[str] = BucketOption,
    region: Optional[str] = RegionOption,
    endpoint_url: Optional[str] = EndpointOption,
) -> None:
    """Store the records of a file under KEY."""
    try:
        records = load_records(path)
    except ValueError as exc:
        _fail(f"Cannot read {path}: {exc}")

    cache = _open_cache(bucket, region, endpoint_url)
    _run(cache.store(key, records))
    count = len(records) if hasattr(records, "__len__") else "?"
    console.print(f"[green]Stored {count} records at {cache.bucket}/{key}[/green]")


@app.command("get")
def get(
    key: str = typer.Argument(..., help="Object key"),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write NDJSON to this file instead of stdout",
    ),
    bucket: Optional[str] = BucketOption,
    region: Optional[str] = RegionOption,
    endpoint_url: Optional[str] = EndpointOption,
) -> None:
    """Print the records cached under KEY as NDJSON."""
    cache = _open_cache(bucket, region, endpoint_url)
    records = _run(cache.retrieve(key))

    if output is None:
        writer = ndjson.writer(sys.stdout, **JSON_DUMPS_KWARGS)
        for record in records:
            writer.writerow(record)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        writer = ndjson.writer(f, **JSON_DUMPS_KWARGS)
        for record in records:
            writer.writerow(record)
    err_console.print(f"[green]Wrote {len(records)} records to {output}[/green]")


@app.command("exists")
def exists(
    key: str = typer.Argument(..., help="Object key"),
    bucket: Optional[str] = BucketOption,
    region: Optional[str] = RegionOption,
    endpoint_url: Optional[str] = EndpointOption,
) -> None:
    """Check whether KEY is cached; exits with code 1 if it is not."""
    cache = _open_cache(bucket, region, endpoint_url)
    if _run(cache.exists(key)):
        console.print(f"[green]{cache.bucket}/{key} exists[/green]")
        return
    console.print(f"[yellow]{cache.bucket}/{key} not found[/yellow]")
    raise typer.Exit(1)


@app.command("flush")
def flush(
    key: str = typer.Argument(..., help="Object key"),
    bucket: Optional[str] = BucketOption,
    region: Optional[str] = RegionOption,
    endpoint_url: Optional[str] = EndpointOption,
) -> None:
    """Delete the object cached under KEY."""
    cache = _open_cache(bucket, region, endpoint_url)
    _run(cache.flush(key))
    console.print(f"[green]Flushed {cache.bucket}/{key}[/green]")


@app.command("options")
def options(
    bucket: Optional[str] = BucketOption,
    region: Optional[str] = RegionOption,
    endpoint_url: Optional[str] = EndpointOption,
) -> None:
    """Show the bucket, client config and verbosity a cache would use."""
    cache = _open_cache(bucket, region, endpoint_url)
    resolved = cache.get_options()

    table = Table(title="ndjson-cache options")
    table.add_column("Option", style="cyan")
    table.add_column("Value")
    table.add_row("bucket", resolved["bucket"])
    table.add_row("verbosity", resolved["verbosity"].value)
    for name, value in resolved["config"].items():
        if name in ("aws_secret_access_key", "aws_session_token"):
            value = "***"
        table.add_row(f"config.{name}", str(value))
    console.print(table)


if __name__ == "__main__":
    app()
