"""
Command-line interface for schema generation.

Provides ``schemagen generate`` to run a generation pass over an exported
type graph, ``schemagen inspect`` to query a schema database and
``schemagen delete`` to remove one.
"""

import argparse
import logging
import sys
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .core.config import ConfigError, ConfigManager, GeneratorConfig
from .core.database import SchemaDatabase, SchemaDatabaseStore
from .core.errors import DatabaseVersionMismatch, SchemaIOError
from .core.orchestrator import GenerationOrchestrator, PassResult, PassState
from .logging_config import get_logger, setup_logging
from .utils import JsonTypeGraphReflector, TypeGraphLoaderError

logger = get_logger(__name__)


class CLIError(Exception):
    """Exception raised for CLI-related errors."""

    pass


# Initialize rich console
console = Console()


def create_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog="schemagen",
        description="Generate wire-format schema with stable component IDs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  schemagen generate typegraph.json
  schemagen generate --config schemagen.json --skip-compile typegraph.json
  schemagen inspect --database schema/SchemaDatabase.json --component-id 10004
  schemagen delete --database schema/SchemaDatabase.json
        """.strip(),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")
    _create_generate_subparser(subparsers)
    _create_inspect_subparser(subparsers)
    _create_delete_subparser(subparsers)
    return parser


def _create_generate_subparser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "generate",
        help="Run a schema generation pass",
        description="Generate schema for an exported type graph and compile it",
    )
    parser.add_argument("file", help="Type graph JSON file exported by the reflector")
    parser.add_argument("--config", help="Configuration file path (JSON)")

    output_group = parser.add_argument_group("output")
    output_group.add_argument("--schema-dir", help="Directory receiving generated schema")
    output_group.add_argument("--database", help="Schema database file")
    output_group.add_argument("--package-prefix", help="Schema package prefix")

    compiler_group = parser.add_argument_group("schema compiler")
    compiler_group.add_argument("--compiler", help="Schema compiler executable")
    compiler_group.add_argument(
        "--additional-compiler-args",
        metavar="ARGS",
        help="Extra arguments passed to the schema compiler",
    )
    compiler_group.add_argument(
        "--skip-compile", action="store_true", default=None, help="Don't run the schema compiler"
    )

    behavior_group = parser.add_argument_group("generation")
    behavior_group.add_argument("--batch-size", type=int, help="Classes per batch (default: 100)")
    behavior_group.add_argument(
        "--reset",
        action="store_true",
        help="Ignore the schema database and regenerate every ID",
    )

    log_group = parser.add_argument_group("logging")
    log_group.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    log_group.add_argument("--log-file", help="Write a full debug log to this file")

    parser.set_defaults(func=_handle_generate)
    return parser


def _create_inspect_subparser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "inspect",
        help="Query a schema database",
        description="Show a schema database summary or look up a component ID / class",
    )
    parser.add_argument("--database", help="Schema database file")
    parser.add_argument("--config", help="Configuration file path (JSON)")

    lookup_group = parser.add_mutually_exclusive_group()
    lookup_group.add_argument("--component-id", type=int, help="Look up a component ID")
    lookup_group.add_argument("--class-path", help="Look up a class path")

    parser.set_defaults(func=_handle_inspect)
    return parser


def _create_delete_subparser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "delete",
        help="Delete a schema database",
        description="Delete the schema database so the next pass assigns fresh IDs",
    )
    parser.add_argument("--database", help="Schema database file")
    parser.add_argument("--config", help="Configuration file path (JSON)")
    parser.set_defaults(func=_handle_delete)
    return parser


def _build_config(args: argparse.Namespace) -> GeneratorConfig:
    """Merge config file, environment and command line options."""
    overrides = {
        "schema_output_dir": getattr(args, "schema_dir", None),
        "database_path": getattr(args, "database", None),
        "package_prefix": getattr(args, "package_prefix", None),
        "compiler_executable": getattr(args, "compiler", None),
        "additional_compiler_args": getattr(args, "additional_compiler_args", None),
        "skip_compile": getattr(args, "skip_compile", None),
        "batch_size": getattr(args, "batch_size", None),
    }

    manager = ConfigManager()
    try:
        config = manager.get_config(overrides, config_file=args.config)
    except ConfigError as e:
        raise CLIError(str(e)) from e

    problems = manager.validate_config(config)
    if problems:
        raise CLIError("Invalid configuration: " + "; ".join(problems))
    return config


# generate


def _handle_generate(args: argparse.Namespace) -> int:
    """Handle the generate subcommand."""
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file)

    config = _build_config(args)

    try:
        reflector = JsonTypeGraphReflector.from_file(args.file)
    except (FileNotFoundError, TypeGraphLoaderError) as e:
        raise CLIError(str(e)) from e

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting schema generation...", total=None)

        def show_state(state: PassState):
            progress.update(task, description=f"Schema generation: {state.value}...")

        orchestrator = GenerationOrchestrator(config, reflector, on_state_change=show_state)
        result = orchestrator.run(reset=args.reset)

    _print_result(result)
    return 0 if result.success else 1


def _print_result(result: PassResult):
    for warning in result.warnings:
        console.print(f"[yellow]⚠️ {escape(warning)}[/yellow]")

    if not result.success:
        failed_in = result.metadata.get("failed_state", "unknown")
        console.print(
            Panel(
                escape("\n".join(result.errors)) or "Unknown error",
                title=f"✗ Schema generation failed while {failed_in}",
                border_style="red",
            )
        )
        return

    table = Table(title="📊 Schema Generation", box=box.SIMPLE, show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in (
        "class_count",
        "level_count",
        "files_written",
        "next_available_component_id",
        "schema_descriptor_hash",
        "schema_dir",
        "database_path",
        "duration_seconds",
    ):
        value = result.metadata.get(key)
        table.add_row(key.replace("_", " ").title(), "[dim]none[/dim]" if value is None else str(value))

    console.print()
    console.print(table)
    console.print("[green]✓ Schema generation succeeded[/green]")


# delete


def _handle_delete(args: argparse.Namespace) -> int:
    """Handle the delete subcommand."""
    store = SchemaDatabaseStore(args.database or _build_config(args).database_path)
    if not store.exists():
        console.print(f"[yellow]No schema database at {escape(str(store.path))}[/yellow]")
        return 0

    try:
        store.delete()
    except SchemaIOError as e:
        raise CLIError(str(e)) from e

    console.print(f"[green]✓ Deleted schema database {escape(str(store.path))}[/green]")
    return 0


# inspect


def _handle_inspect(args: argparse.Namespace) -> int:
    """Handle the inspect subcommand."""
    database_path = args.database or _build_config(args).database_path
    store = SchemaDatabaseStore(database_path)

    try:
        database = store.load()
    except FileNotFoundError as e:
        raise CLIError(str(e)) from e
    except (SchemaIOError, DatabaseVersionMismatch) as e:
        raise CLIError(f"Cannot read schema database: {e}") from e

    if args.component_id is not None:
        return _show_component(database, args.component_id)
    if args.class_path:
        return _show_class(database, args.class_path)
    return _show_summary(database, str(store.path))


def _show_summary(database: SchemaDatabase, path: str) -> int:
    info_text = f"""[bold]Root classes:[/bold] {len(database.root_classes)}
[bold]Subobject classes:[/bold] {len(database.subobject_classes)}
[bold]Levels:[/bold] {len(database.level_path_to_component_id)}
[bold]Distance buckets:[/bold] {len(database.net_cull_distance_to_component_id)}
[bold]Next component ID:[/bold] {database.next_available_component_id}
[bold]Descriptor hash:[/bold] {database.schema_descriptor_hash or 'none'}"""
    console.print(Panel(info_text, title=f"🗄️  {path}", border_style="blue"))

    table = Table(title="Classes", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Schema Name", style="bold green", no_wrap=True)
    table.add_column("Class Path", style="dim")
    for identity in database.identities():
        table.add_row(identity.schema_name, identity.class_path)
    console.print(table)
    return 0


def _show_component(database: SchemaDatabase, component_id: int) -> int:
    owner = database.component_id_to_class_path().get(component_id)
    if owner is not None:
        category = database.category_of(component_id)
        assignment = next(
            (a for a in database.assignments() if a.component_id == component_id), None
        )
        table = Table(box=box.SIMPLE, show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        table.add_row("Component ID", str(component_id))
        table.add_row("Class", owner)
        table.add_row("Schema Name", database.schema_name_for(owner) or "")
        table.add_row("Category", category.value if category else "unknown")
        if assignment is not None:
            table.add_row("Path", assignment.path)
        console.print(table)
        return 0

    for level, level_id in database.level_path_to_component_id.items():
        if level_id == component_id:
            console.print(f"Component {component_id}: streaming level [bold]{level}[/bold]")
            return 0

    for distance, distance_id in database.net_cull_distance_to_component_id.items():
        if distance_id == component_id:
            console.print(f"Component {component_id}: net cull distance [bold]{int(distance)}[/bold]")
            return 0

    console.print(f"[red]✗[/red] Component ID {component_id} is not assigned")
    return 1


def _show_class(database: SchemaDatabase, class_path: str) -> int:
    schema_name = database.schema_name_for(class_path)
    if schema_name is None:
        console.print(f"[red]✗[/red] Class {class_path} has no schema")
        return 1

    table = Table(
        title=f"{schema_name} ({class_path})", box=box.ROUNDED, header_style="bold cyan"
    )
    table.add_column("Component ID", style="bold green", justify="right")
    table.add_column("Category", style="cyan")
    table.add_column("Path", style="dim")

    # Subobject instances and dynamic slots sit below the class path
    for assignment in database.assignments():
        if assignment.path == class_path or assignment.path.startswith(class_path + ":"):
            table.add_row(
                str(assignment.component_id), assignment.category.value, assignment.path
            )
    console.print(table)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``schemagen`` command."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    logger.debug("Running %s command", args.command)
    try:
        return args.func(args)
    except CLIError as e:
        console.print(f"[red]✗ Error:[/red] {e}")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
