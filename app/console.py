#!/usr/bin/env python3
"""
Console interface for running batch imports from a CSV file.

Shows a live progress panel while batches are sent to the remote processor.
Ctrl+C requests a soft stop (the batch in flight still finishes); on POSIX
systems ``kill -USR1 <pid>`` toggles pause / resume.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table

from .core.config import settings
from .core.logging_config import configure_logging
from .domain.imports.errors import BatchImportError
from .domain.imports.normalizer import HEADER_MODES, header_detector_for, preview_input
from .domain.imports.profiles import get_profile, list_profiles
from .domain.imports.progress import ImportStatus, ProgressSnapshot
from .domain.imports.scheduler import BatchImporter
from .integrations.batch_processor import HttpBatchProcessor, create_http_client

STATUS_STYLES = {
    ImportStatus.IDLE: "dim",
    ImportStatus.RUNNING: "green",
    ImportStatus.PAUSED: "yellow",
    ImportStatus.COMPLETED: "bold green",
    ImportStatus.STOPPED: "bold red",
}

FILE_ENCODINGS = ("utf-8", "utf-8-sig", "cp932", "cp1252", "latin-1")


def read_input_file(path: Path) -> str:
    """Read a CSV file as text, trying the encodings legacy exports commonly use."""
    raw = path.read_bytes()
    for encoding in FILE_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ValueError(f"Could not decode {path.name} with any known encoding")


def render_progress(snapshot: ProgressSnapshot, title: str) -> Panel:
    """Build the live progress panel for one snapshot."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan", no_wrap=True)
    table.add_column()

    style = STATUS_STYLES.get(snapshot.status, "white")
    table.add_row("Status", f"[{style}]{snapshot.status.value}[/{style}]")
    table.add_row("Batch", f"{snapshot.current_batch} / {snapshot.total_batches}")
    table.add_row(
        "Records",
        f"{snapshot.processed_records:,} / {snapshot.total_records:,} ({snapshot.progress_percent}%)",
    )
    table.add_row("", ProgressBar(total=max(snapshot.total_records, 1), completed=snapshot.processed_records, width=40))
    table.add_row("Inserted", f"[green]{snapshot.inserted:,}[/green]")
    table.add_row("Skipped", f"{snapshot.skipped:,}")
    for name, value in sorted(snapshot.domain_counters.items()):
        table.add_row(name, f"{value:,}")
    table.add_row("Errors", f"[red]{snapshot.error_count}[/red]" if snapshot.error_count else "0")
    for message in snapshot.recent_errors:
        table.add_row("", f"[red]{message}[/red]")

    return Panel(table, title=title, border_style=style)


def print_preview(console: Console, text: str, batch_size: int, header_mode: str) -> None:
    preview = preview_input(text, batch_size, header_detector_for(header_mode))
    console.print(
        f"[bold]{preview.total_records:,}[/bold] records, "
        f"{batch_size} per batch -> [bold]{preview.estimated_batches}[/bold] batches"
        f" ({'header detected' if preview.has_header else 'no header'})"
    )
    table = Table(show_header=False)
    for row in preview.rows:
        table.add_row(*row)
    console.print(table)


async def run_import(
    console: Console,
    profile_name: str,
    tenant_id: str,
    text: str,
    batch_size: int,
    header_mode: str,
    base_url: Optional[str] = None,
) -> int:
    profile = get_profile(profile_name)
    client = create_http_client(base_url=base_url)
    importer = BatchImporter(
        HttpBatchProcessor(client, profile.name),
        batch_size=batch_size,
        header_detector=header_detector_for(header_mode),
        name=f"{profile.name}:{tenant_id}",
    )

    loop = asyncio.get_running_loop()

    def toggle_pause() -> None:
        if importer.control.paused:
            importer.resume()
        else:
            importer.pause()

    handled_signals = []
    try:
        loop.add_signal_handler(signal.SIGINT, importer.stop)
        handled_signals.append(signal.SIGINT)
        if hasattr(signal, "SIGUSR1"):
            loop.add_signal_handler(signal.SIGUSR1, toggle_pause)
            handled_signals.append(signal.SIGUSR1)
    except NotImplementedError:
        # Windows event loops have no signal handler support; Ctrl+C cancels the task instead.
        pass

    try:
        with Live(render_progress(importer.snapshot(), profile.title), console=console, refresh_per_second=4) as live:
            importer.subscribe(lambda snap: live.update(render_progress(snap, profile.title)))
            summary = await importer.start(text, tenant_id)
    except BatchImportError as e:
        console.print(f"[red]Import not started:[/red] {e}")
        return 2
    finally:
        for sig in handled_signals:
            loop.remove_signal_handler(sig)
        await client.aclose()

    if summary is None:
        console.print("[yellow]Import stopped before all batches were sent.[/yellow]")
        return 1

    console.print(f"[green]Import completed:[/green] {summary.describe()}")
    return 0 if summary.error_count == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a batch CSV import against the remote processor")
    parser.add_argument("profile", nargs="?", help="Importer profile (remote function name)")
    parser.add_argument("tenant_id", nargs="?", help="Tenant to import into")
    parser.add_argument("file", nargs="?", type=Path, help="CSV file to import")
    parser.add_argument("--batch-size", type=int, default=settings.default_batch_size)
    parser.add_argument("--header-mode", choices=HEADER_MODES, default=None,
                        help="Header detection mode (defaults to the profile's)")
    parser.add_argument("--base-url", default=None, help="Processor base URL override")
    parser.add_argument("--preview", action="store_true", help="Only show what would be imported")
    parser.add_argument("--list", action="store_true", help="List importer profiles and exit")
    parser.add_argument("--log-level", default="WARNING")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console()
    configure_logging(args.log_level)

    if args.list:
        table = Table(title="Importers")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Title")
        table.add_column("Header mode")
        for profile in list_profiles():
            table.add_row(profile.name, profile.title, profile.header_mode)
        console.print(table)
        return 0

    if not (args.profile and args.tenant_id and args.file):
        parser.error("profile, tenant_id and file are required")

    profile = get_profile(args.profile)
    if not profile:
        parser.error(f"unknown importer '{args.profile}' (use --list)")
    if args.batch_size <= 0:
        parser.error("--batch-size must be positive")

    text = read_input_file(args.file)
    header_mode = args.header_mode or profile.header_mode

    if args.preview:
        print_preview(console, text, args.batch_size, header_mode)
        return 0

    return asyncio.run(
        run_import(console, profile.name, args.tenant_id, text, args.batch_size, header_mode, args.base_url)
    )


if __name__ == "__main__":
    sys.exit(main())
