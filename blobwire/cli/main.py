"""blobwire CLI - Main commands."""
import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

app = typer.Typer(
    name="blobwire",
    help="Media blob transport CLI",
    add_completion=False
)
console = Console()

SERVER_OPTION = typer.Option(
    "http://localhost:3000", "--server", "-s", envvar="BLOBWIRE_SERVER", help="Server origin"
)
COOKIE_OPTION = typer.Option(
    None, "--cookie", "-c", envvar="BLOBWIRE_COOKIE", help="Session cookie as NAME=VALUE"
)
TIMEOUT_OPTION = typer.Option(10.0, "--timeout", help="Seconds to wait for server replies")


def run_async(coro):
    """Run async function."""
    return asyncio.run(coro)


def parse_pairs(values: Optional[List[str]], option: str) -> Dict[str, str]:
    """Parse repeated NAME=VALUE options."""
    pairs = {}
    for value in values or []:
        key, sep, item = value.partition("=")
        if not sep or not key:
            console.print(f"[red]Invalid {option} value (expected NAME=VALUE): {value}[/red]")
            raise typer.Exit(1)
        pairs[key] = item
    return pairs


def build_config(server: str, cookie: Optional[str], verbose: bool = False, **kwargs):
    """Client configuration for one CLI run: no auto reconnect, no auto listing."""
    from blobwire import ClientConfig, ConfigurationError

    try:
        config = ClientConfig.for_server(
            server,
            auto_list_blobs=False,
            log_level='debug' if verbose else 'info',
            **kwargs
        )
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1)
    config.connection.reconnect.enabled = False
    if cookie:
        cookies = parse_pairs([cookie], "--cookie")
        config.bulk.cookies.update(cookies)
        config.connection.headers['Cookie'] = '; '.join(f"{k}={v}" for k, v in cookies.items())
    return config


async def wait_for_event(client, event: str, timeout: float, *fail_events: str):
    """Wait for the first ``event`` payload; None on timeout or a failure event."""
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def resolve(payload=None):
        if not future.done():
            future.set_result(payload)

    def reject(payload=None):
        if not future.done():
            future.set_result(None)

    client.once(event, resolve)
    for name in fail_events:
        client.once(name, reject)
    try:
        return await asyncio.wait_for(future, timeout)
    except asyncio.TimeoutError:
        return None
    finally:
        client.off(event, resolve)
        for name in fail_events:
            client.off(name, reject)


@app.command()
def upload(
    files: List[Path] = typer.Argument(..., help="Files to upload", exists=True, dir_okay=False),
    server: str = SERVER_OPTION,
    cookie: Optional[str] = COOKIE_OPTION,
    meta: Optional[List[str]] = typer.Option(None, "--meta", "-m", help="Metadata as NAME=VALUE"),
    threshold: Optional[int] = typer.Option(None, "--threshold", help="Bulk threshold in bytes"),
    client_id: str = typer.Option("cli-client", "--client-id", help="Source client id"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Upload files; small ones over the channel, large ones over HTTP."""
    from blobwire import MediaClient, ConnectionFailedError, UploadStatus
    from blobwire.core.api.config import DEFAULT_SIZE_THRESHOLD

    metadata = parse_pairs(meta, "--meta")
    config = build_config(server, cookie, verbose, size_threshold=threshold or DEFAULT_SIZE_THRESHOLD)
    config.channel.client_id = client_id

    async def do_upload():
        client = MediaClient(config)
        try:
            if any(f.stat().st_size < config.size_threshold for f in files):
                try:
                    await client.connect()
                except ConnectionFailedError as e:
                    console.print(f"[yellow]Channel unavailable: {e}[/yellow]")

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console
            ) as progress:
                bars = {}

                def on_created(task):
                    bars[task.id] = progress.add_task(
                        f"{task.file_name} [dim]({task.transport.value})[/dim]", total=100
                    )

                def on_progress(event):
                    bar = bars.get(event['task'].id)
                    if bar is not None:
                        progress.update(bar, completed=event['progress'].progress)

                client.on('task-created', on_created)
                client.on('task-progress', on_progress)
                task_ids = client.upload_files(files, metadata)
                tasks = await client.wait_for_uploads(task_ids)

            failed = 0
            for task in tasks:
                if task.status == UploadStatus.COMPLETED:
                    blob_id = task.result if isinstance(task.result, str) else task.result.id
                    console.print(f"[green]Uploaded:[/green] {task.file_name} -> {blob_id}")
                else:
                    failed += 1
                    console.print(
                        f"[red]Failed:[/red] {task.file_name} "
                        f"[{task.error.kind.value}] {task.error.message}"
                    )
        finally:
            await client.close()
        if failed:
            raise typer.Exit(1)

    run_async(do_upload())


@app.command("list")
def list_blobs(
    server: str = SERVER_OPTION,
    cookie: Optional[str] = COOKIE_OPTION,
    limit: int = typer.Option(10, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    timeout: float = TIMEOUT_OPTION,
):
    """List blob summaries over the channel."""
    from blobwire import MediaClient, ConnectionFailedError

    config = build_config(server, cookie)

    async def do_list():
        async with MediaClient(config) as client:
            pending = wait_for_event(client, 'blobs-updated', timeout, 'server-error')
            waiter = asyncio.ensure_future(pending)
            await client.get_media_blobs(limit, offset)
            result = await waiter
            if result is None:
                console.print("[red]No blob list received[/red]")
                raise typer.Exit(1)

            table = Table()
            table.add_column("ID", style="dim")
            table.add_column("Name")
            table.add_column("Type", style="cyan")
            table.add_column("Size", justify="right")
            table.add_column("Created")
            for blob in result['blobs']:
                info = client.display_info(blob)
                table.add_row(info['id'], info['path'], info['mime'], info['size'], info['created_at'])
            console.print(table)

    try:
        run_async(do_list())
    except ConnectionFailedError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def fetch(
    blob_id: str = typer.Argument(..., help="Blob id"),
    output: Path = typer.Option(Path("."), "--output", "-o", help="Target file or directory"),
    server: str = SERVER_OPTION,
    cookie: Optional[str] = COOKIE_OPTION,
    timeout: float = TIMEOUT_OPTION,
):
    """Download a blob's payload over the channel."""
    from blobwire import MediaClient, ConnectionFailedError

    config = build_config(server, cookie)

    async def do_fetch():
        async with MediaClient(config) as client:
            summary = asyncio.ensure_future(
                wait_for_event(client, 'blob-updated', timeout, 'server-error')
            )
            await client.get_media_blob(blob_id)
            if await summary is None:
                console.print(f"[red]Blob not found: {blob_id}[/red]")
                raise typer.Exit(1)

            cached = asyncio.ensure_future(
                wait_for_event(client, 'blob-data-cached', timeout, 'integrity-error', 'server-error')
            )
            client.load_blob_data(blob_id)
            if await cached is None:
                console.print(f"[red]Could not fetch blob {blob_id}[/red]")
                raise typer.Exit(1)

            await client.download_blob(blob_id, output)
            console.print(f"[green]Downloaded:[/green] {blob_id}")

    try:
        run_async(do_fetch())
    except ConnectionFailedError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def uploads(
    server: str = SERVER_OPTION,
    cookie: Optional[str] = COOKIE_OPTION,
    limit: Optional[int] = typer.Option(None, "--limit", "-n"),
    offset: Optional[int] = typer.Option(None, "--offset"),
):
    """List bulk uploads stored by the server."""
    from blobwire import BulkUploadPipeline, BulkRequestError
    from blobwire.core.cache import format_file_size

    config = build_config(server, cookie)

    async def do_list():
        async with BulkUploadPipeline(config.bulk_config()) as bulk:
            try:
                page = await bulk.list_uploads(limit=limit, offset=offset)
            except BulkRequestError as e:
                console.print(f"[red]{e.kind.value}: {e.message}[/red]")
                raise typer.Exit(1)

        table = Table(title=f"{page.total_count} upload(s)")
        table.add_column("ID", style="dim")
        table.add_column("Path")
        table.add_column("Type", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Created")
        for item in page.uploads:
            table.add_row(
                item.id,
                item.local_path or "-",
                item.mime or "-",
                format_file_size(item.size),
                item.created_at.isoformat(),
            )
        console.print(table)

    run_async(do_list())


@app.command()
def delete(
    upload_id: str = typer.Argument(..., help="Upload id"),
    server: str = SERVER_OPTION,
    cookie: Optional[str] = COOKIE_OPTION,
):
    """Delete a bulk upload."""
    from blobwire import BulkUploadPipeline, BulkRequestError

    config = build_config(server, cookie)

    async def do_delete():
        async with BulkUploadPipeline(config.bulk_config()) as bulk:
            try:
                await bulk.delete_upload(upload_id)
            except BulkRequestError as e:
                console.print(f"[red]{e.kind.value}: {e.message}[/red]")
                raise typer.Exit(1)
        console.print(f"[green]Deleted:[/green] {upload_id}")

    run_async(do_delete())


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
