#!/usr/bin/env python3
"""
FeedPipe - Resumable Feed Import Pipeline
=========================================

Main application entry point with CLI interface for managing importers
and running imports.

Usage:
    python main.py --help                              # Show all commands
    python main.py check-config                        # Validate configuration
    python main.py init-db                             # Initialize database
    python main.py create-importer products --fetcher file --parser csv
    python main.py configure products parser -s delimiter=";" -s encoding=latin-1
    python main.py import products data/products.csv   # Run import to completion
    python main.py status                              # Show import progress
    python main.py reset products                      # Restart an import
"""

import sys
import json
import logging
from pathlib import Path
from typing import Dict, Tuple

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from feedpipe.config.settings import get_settings
from feedpipe.database.schema import DatabaseSchema
from feedpipe.database.connection import get_db_manager
from feedpipe.database.models import ImportStatus
from feedpipe.plugins.configurable import submit_form
from feedpipe.plugins.registry import STAGES
from feedpipe.processing.pipeline import ImportPipeline
from feedpipe.utils.logging import configure_application_logging
from feedpipe.utils.exceptions import FeedPipeError, get_user_friendly_message
from feedpipe.utils.validators import ConfigValidator

console = Console()
logger = logging.getLogger(__name__)

STATUS_STYLES = {
    ImportStatus.IDLE: "yellow",
    ImportStatus.FETCHING: "blue",
    ImportStatus.PARSING: "blue",
    ImportStatus.PROCESSING: "blue",
    ImportStatus.COMPLETE: "green",
    ImportStatus.FAILED: "red",
}


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """FeedPipe - resumable CSV and RSS/Atom imports."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        # Show help if no subcommand provided
        click.echo(ctx.get_help())


def _pipeline(ctx) -> ImportPipeline:
    """Configure logging, ensure the schema and build the pipeline."""
    settings = get_settings()
    configure_application_logging(
        settings.logging,
        level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
    )

    DatabaseSchema(settings.database.path).create_tables()
    db_manager = get_db_manager(settings.database.path, settings.database.pool_size)
    return ImportPipeline(db_manager, settings=settings)


def _parse_assignments(assignments: Tuple[str, ...]) -> Dict[str, object]:
    """Turn key=value pairs into a dict; values are JSON when they parse as JSON."""
    values = {}
    for assignment in assignments:
        if "=" not in assignment:
            raise click.BadParameter(f"Expected key=value, got '{assignment}'")
        key, raw = assignment.split("=", 1)
        try:
            values[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            values[key.strip()] = raw
    return values


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking FeedPipe Configuration[/bold blue]")

    try:
        settings = get_settings()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Details")

        checks = [
            ("Database", _check_database_config),
            ("Logging", _check_logging_config),
            ("Fetching", _check_fetch_config),
            ("Processing", _check_processing_config),
        ]

        all_passed = True
        for name, check_func in checks:
            status, details = check_func(settings)
            table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
            if not status:
                all_passed = False

        console.print(table)

        if all_passed:
            console.print("[bold green]✅ All configuration checks passed![/bold green]")
        else:
            console.print("[bold red]❌ Configuration validation failed[/bold red]")
            sys.exit(1)

    except FeedPipeError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
def init_db():
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing FeedPipe Database[/bold blue]")

    try:
        settings = get_settings()
        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        info = get_db_manager(settings.database.path).get_database_info()
        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")

        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        for table_name, count in info["table_counts"].items():
            info_table.add_row(f"Rows in {table_name}", str(count))

        console.print(info_table)

    except FeedPipeError as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('importer_id')
@click.option('--name', default='', help='Human readable name')
@click.option('--fetcher', default='http', help='Fetcher plugin key (default: http)')
@click.option('--parser', default='csv', help='Parser plugin key (default: csv)')
@click.option('--processor', default='entity', help='Processor plugin key (default: entity)')
@click.option('--process-limit', default=0, type=int, help='Rows per tick (default: application setting)')
@click.pass_context
def create_importer(ctx, importer_id, name, fetcher, parser, processor, process_limit):
    """Create or update an importer and its stage chain."""
    try:
        ConfigValidator.validate_identifier(importer_id, field_name="importer_id")
        pipeline = _pipeline(ctx)

        for stage, key in (("fetcher", fetcher), ("parser", parser), ("processor", processor)):
            pipeline.registry.resolve_plugin(key, stage)

        importer = pipeline.importer(importer_id)
        errors = submit_form(importer, {
            "name": name,
            "fetcher": fetcher,
            "parser": parser,
            "processor": processor,
            "process_limit": process_limit,
        })
        if errors:
            _print_field_errors(errors)
            sys.exit(1)

        console.print(f"[bold green]✅ Importer '{importer_id}' saved[/bold green]")
        _print_config(importer.get_config(), f"Importer {importer_id}")

    except FeedPipeError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('importer_id')
@click.argument('stage', type=click.Choice(("importer",) + STAGES))
@click.option('--set', '-s', 'assignments', multiple=True, help='Option as key=value (repeatable)')
@click.pass_context
def configure(ctx, importer_id, stage, assignments):
    """Show or change the options of an importer or one of its stages."""
    try:
        pipeline = _pipeline(ctx)
        importer = pipeline.importer(importer_id)

        if stage == "importer":
            target = importer
        else:
            chain = pipeline.registry.stage_chain(importer)
            target = getattr(chain, stage)

        if assignments:
            errors = submit_form(target, _parse_assignments(assignments))
            if errors:
                _print_field_errors(errors)
                sys.exit(1)
            console.print(f"[bold green]✅ Saved {target.storage_key()} options for '{importer_id}'[/bold green]")

        _print_config(target.get_config(), f"{target.storage_key()} ({stage}) for {importer_id}")

    except FeedPipeError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)


@cli.command(name="import")
@click.argument('importer_id')
@click.argument('source', required=False)
@click.option('--ticks', type=int, default=None, help='Stop after this many ticks')
@click.pass_context
def run_import(ctx, importer_id, source, ticks):
    """Run an import until it completes, fails or reaches --ticks."""
    console.print(f"[bold blue]📥 Importing {importer_id}[/bold blue]")

    try:
        pipeline = _pipeline(ctx)
        results = pipeline.run(importer_id, source, max_ticks=ticks)

        table = Table(title=f"Ticks for {importer_id}")
        table.add_column("#", style="cyan")
        table.add_column("Status")
        table.add_column("Rows")
        table.add_column("Created", style="green")
        table.add_column("Updated", style="yellow")
        table.add_column("Skipped")
        table.add_column("Failed", style="red")
        table.add_column("Progress")

        for number, result in enumerate(results, 1):
            style = STATUS_STYLES.get(result.status, "white")
            table.add_row(
                str(number),
                f"[{style}]{result.status.value}[/{style}]",
                str(result.rows),
                str(result.created),
                str(result.updated),
                str(result.skipped),
                str(result.failed),
                f"{result.progress:.0%}",
            )

        console.print(table)

        last = results[-1] if results else None
        if last and last.error:
            console.print(f"[bold red]❌ Import failed: {get_user_friendly_message(last.error)}[/bold red]")
            sys.exit(1)
        if last and last.status == ImportStatus.COMPLETE:
            console.print("[bold green]✅ Import complete[/bold green]")
        else:
            console.print("[yellow]⏸️ Import paused; run again to continue[/yellow]")

    except FeedPipeError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('importer_id', required=False)
@click.pass_context
def status(ctx, importer_id):
    """Show import progress for one or all importers."""
    try:
        pipeline = _pipeline(ctx)
        states = [pipeline.status(importer_id)] if importer_id else pipeline.statuses()

        if not states:
            console.print("[yellow]⚠️ No imports have run yet[/yellow]")
            return

        table = Table(title="Import Status")
        table.add_column("Importer", style="cyan")
        table.add_column("Status")
        table.add_column("Source", style="blue")
        table.add_column("Progress")
        table.add_column("Created / Updated / Skipped / Failed")
        table.add_column("Last Error", style="red")

        for state in states:
            style = STATUS_STYLES.get(state.status, "white")
            source = state.source or "-"
            if len(source) > 40:
                source = source[:37] + "..."
            table.add_row(
                state.importer_id,
                f"[{style}]{state.status.value}[/{style}]",
                source,
                f"{state.progress:.0%}",
                f"{state.created} / {state.updated} / {state.skipped} / {state.failed}",
                state.last_error or "",
            )

        console.print(table)

    except FeedPipeError as e:
        console.print(f"[bold red]❌ Error showing status: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('importer_id')
@click.pass_context
def reset(ctx, importer_id):
    """Restart an import from the beginning of its source."""
    try:
        pipeline = _pipeline(ctx)
        pipeline.reset(importer_id)
        console.print(f"[bold green]✅ Import '{importer_id}' reset[/bold green]")

    except FeedPipeError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)


def _print_config(config: Dict[str, object], title: str) -> None:
    table = Table(title=title)
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="green")
    for key, value in config.items():
        table.add_row(key, json.dumps(value) if not isinstance(value, str) else repr(value))
    console.print(table)


def _print_field_errors(errors: Dict[str, str]) -> None:
    table = Table(title="Invalid Options")
    table.add_column("Field", style="cyan")
    table.add_column("Problem", style="red")
    for field, message in errors.items():
        table.add_row(field, message)
    console.print(table)


# Helper functions for configuration checks
def _check_database_config(settings) -> Tuple[bool, str]:
    """Check database configuration."""
    try:
        db_path = Path(settings.database.path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}, Pool: {settings.database.pool_size}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> Tuple[bool, str]:
    """Check logging configuration."""
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_fetch_config(settings) -> Tuple[bool, str]:
    """Check download directory and network limits."""
    try:
        Path(settings.fetch.download_dir).mkdir(parents=True, exist_ok=True)
        return True, (
            f"Downloads: {settings.fetch.download_dir}, "
            f"Timeout: {settings.limits.request_timeout}s, Retries: {settings.limits.max_retries}"
        )
    except OSError as e:
        return False, str(e)


def _check_processing_config(settings) -> Tuple[bool, str]:
    """Check processing configuration."""
    return True, (
        f"Batch: {settings.processing.process_limit} rows, "
        f"Max ticks per run: {settings.processing.max_ticks_per_run}"
    )


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 FeedPipe interrupted by user[/yellow]")
        sys.exit(130)
