"""CLI entry point — Click group over the storage facade."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from filekit.core import Storage, StorageConfigError, StorageError, get_storage, reset_storage
from filekit.core.types import PutOptions

console = Console()

T = TypeVar("T")


def _run(work: Callable[[Storage], Awaitable[T]]) -> T:
    """Run *work* against the environment-configured storage, then tear down."""

    async def runner() -> T:
        try:
            return await work(get_storage())
        finally:
            await reset_storage()

    try:
        return asyncio.run(runner())
    except (StorageError, StorageConfigError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}", soft_wrap=True)
        raise SystemExit(1) from e


def _human_size(n: int) -> str:
    for unit in ("B", "KB", "MB"):
        if n < 1024:
            return f"{n} {unit}" if unit == "B" else f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} GB"


def _print_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
@click.option("--debug", is_flag=True, help="Debug output (per-operation logging)")
def main(debug: bool) -> None:
    """filekit — unified file storage (local, S3-compatible, Cloudflare R2)."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(name)s: %(message)s",
    )


@main.command()
@click.argument("src", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("key")
@click.option("--content-type", default=None, help="Override detected content type")
def put(src: Path, key: str, content_type: str | None) -> None:
    """Upload a local file under KEY."""
    data = src.read_bytes()

    async def work(storage: Storage) -> str:
        stored = await storage.put(key, data, PutOptions(content_type=content_type))
        return storage.url(stored)

    url = _run(work)
    console.print(f"[green]Stored[/green] {escape(key)} ({_human_size(len(data))})")
    console.print(f"  [dim]{escape(url)}[/dim]")


@main.command()
@click.argument("key")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Write to file instead of stdout")
def get(key: str, output: Path | None) -> None:
    """Download KEY."""

    async def work(storage: Storage) -> bytes:
        return await storage.get(key)

    data = _run(work)
    if output is None:
        click.get_binary_stream("stdout").write(data)
        return
    output.write_bytes(data)
    console.print(f"[green]Saved[/green] {escape(key)} -> {escape(str(output))}")


@main.command()
@click.argument("key")
def rm(key: str) -> None:
    """Delete KEY."""

    async def work(storage: Storage) -> bool:
        return await storage.delete(key)

    if _run(work):
        console.print(f"[green]Deleted[/green] {escape(key)}")
    else:
        console.print(f"[yellow]Not found[/yellow] {escape(key)}")


@main.command(name="ls")
@click.argument("prefix", default="")
@click.option("--limit", type=int, default=None, help="Maximum number of entries")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def ls_cmd(prefix: str, limit: int | None, json_output: bool) -> None:
    """List stored objects, optionally under PREFIX."""

    async def work(storage: Storage):
        return await storage.list(prefix, limit=limit)

    files = _run(work)
    if json_output:
        _print_json([f.to_dict() for f in files])
        return
    if not files:
        console.print("[dim]No files.[/dim]")
        return

    table = Table(box=box.SIMPLE, header_style="bold cyan", padding=(0, 2))
    table.add_column("Key", style="bold yellow", no_wrap=True)
    table.add_column("Size", justify="right")
    table.add_column("Type", style="magenta")
    table.add_column("Modified", style="dim")
    for f in files:
        table.add_row(
            escape(f.key),
            _human_size(f.size),
            f.content_type or "-",
            f.last_modified.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)
    console.print(f"[dim]{len(files)} file(s)[/dim]")


@main.command()
@click.argument("key")
def url(key: str) -> None:
    """Print the public URL of KEY (no I/O)."""

    async def work(storage: Storage) -> str:
        return storage.url(key)

    click.echo(_run(work))


@main.command()
@click.argument("key")
@click.option("--expires", type=int, default=None, help="Validity in seconds (60..604800)")
def sign(key: str, expires: int | None) -> None:
    """Print a time-limited download URL for KEY (cloud strategies only)."""

    async def work(storage: Storage) -> str:
        return await storage.signed_url(key, expires)

    try:
        click.echo(_run(work))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--expires") from e


@main.command()
@click.argument("src")
@click.argument("dest")
def cp(src: str, dest: str) -> None:
    """Copy SRC to DEST within the store."""

    async def work(storage: Storage) -> str:
        return await storage.copy(src, dest)

    _run(work)
    console.print(f"[green]Copied[/green] {escape(src)} -> {escape(dest)}")


@main.command()
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def info(json_output: bool) -> None:
    """Show the active storage configuration (never credentials)."""

    async def work(storage: Storage) -> dict[str, Any]:
        details = storage.get_config()
        details.update(storage.get_stats())
        details["max_file_size_bytes"] = storage.config.max_file_size
        return details

    details = _run(work)
    if json_output:
        _print_json(details)
        return

    table = Table(title="Storage", box=box.SIMPLE, header_style="bold cyan", padding=(0, 2))
    table.add_column("Setting", style="bold yellow", no_wrap=True)
    table.add_column("Value")
    table.add_row("Strategy", details["strategy"])
    table.add_row("Environment", details["environment"])
    table.add_row("Max file size", details["max_file_size"])
    table.add_row("Allowed types", escape(", ".join(details["allowed_types"])))
    console.print(table)
