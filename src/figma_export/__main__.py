"""CLI entry point for figma_export."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich import box

from figma_export.assembler import get_file_size_str
from figma_export.config import Settings, resolve_settings
from figma_export.errors import FigmaExportError
from figma_export.fetcher import RemoteFetcher
from figma_export.pipeline import export_file, export_project

console = Console()

COMMANDS = ("file", "project")


def build_parser() -> argparse.ArgumentParser:
    # Options shared by both commands
    common = argparse.ArgumentParser(add_help=False)
    auth = common.add_argument_group("Authentication")
    auth.add_argument(
        "--token", "--access-token",
        dest="token",
        default=None,
        help="The Figma API access token (env: FIGMA_TOKEN).",
    )
    output = common.add_argument_group("Output")
    output.add_argument(
        "--directory", "--dir",
        dest="directory",
        default=None,
        help="The export directory (default: current directory).",
    )
    output.add_argument(
        "--format",
        default=None,
        help="The export format: pdf, png, jpg or svg (default: pdf).",
    )
    output.add_argument(
        "--scale",
        type=float,
        default=None,
        help="The export scale (between 0.01 and 4).",
    )
    output.add_argument(
        "--first-page-only",
        action="store_true",
        default=None,
        help="Export only the first page of each file.",
    )
    output.add_argument(
        "--no-fallback",
        action="store_true",
        help="Disable PyMuPDF fallback (use only pypdf, useful for testing).",
    )
    common.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds (default: none).",
    )
    common.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file (default: figma-export.json lookup).",
    )
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging.",
    )

    parser = argparse.ArgumentParser(
        prog="figma-export",
        description="Figma Export – Export Figma files as PDF, PNG, JPG or SVG",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    file_cmd = subparsers.add_parser("file", parents=[common], help="Export file")
    file_cmd.add_argument("key", help="Key of the Figma file.")

    project_cmd = subparsers.add_parser(
        "project", parents=[common], help="Export all files in a project"
    )
    project_cmd.add_argument("id", help="Id of the Figma project.")

    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def print_outputs(outputs: List[Path], settings: Settings) -> None:
    """Print one line per exported file and a summary table."""
    label = settings.format.upper()
    for output in outputs:
        console.print(f"[green]✔[/green] Figma {label} exported to [bold]{output}[/bold].")

    console.print()
    if not outputs:
        console.print("[yellow]⚠[/yellow] Nothing was exported.")
        return

    table = Table(box=box.ROUNDED, border_style="green")
    table.add_column("File", style="cyan")
    table.add_column("Size", style="white", justify="right")
    for output in outputs:
        table.add_row(output.name, get_file_size_str(output))
    console.print(table)


async def run_export(args: argparse.Namespace, settings: Settings) -> List[Path]:
    """Run the selected command with a fetcher honoring the timeout."""
    options = settings.export_options()
    use_fitz_fallback = not args.no_fallback
    async with RemoteFetcher(timeout=settings.timeout) as fetcher:
        if args.command == "project":
            return await export_project(
                args.id, options, settings.token,
                fetcher=fetcher, use_fitz_fallback=use_fitz_fallback,
            )
        return await export_file(
            args.key, options, settings.token,
            fetcher=fetcher, use_fitz_fallback=use_fitz_fallback,
        )


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)

    # Default to 'file' if no command specified
    if argv and argv[0] not in COMMANDS and not argv[0].startswith("-"):
        argv = ["file"] + argv
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(2)

    configure_logging(args.verbose)

    try:
        settings = resolve_settings(
            overrides={
                "token": args.token,
                "directory": args.directory,
                "format": args.format,
                "scale": args.scale,
                "first_page_only": args.first_page_only,
                "timeout": args.timeout,
            },
            config_path=Path(args.config) if args.config else None,
        )
    except FigmaExportError as e:
        console.print(f"[red]✘[/red] {e}")
        sys.exit(1)

    if not settings.token:
        console.print("[red]✘[/red] No access token given. Use --token or set FIGMA_TOKEN.")
        sys.exit(2)

    target = args.id if args.command == "project" else args.key
    console.print()
    console.print(Panel.fit(
        f"[bold cyan]Figma Export[/bold cyan]\n"
        f"[dim]Exporting {args.command} {target} as {settings.format}[/dim]",
        border_style="cyan",
    ))
    console.print()

    try:
        with console.status("[cyan]Exporting...", spinner="dots"):
            outputs = asyncio.run(run_export(args, settings))
    except (FigmaExportError, OSError) as e:
        console.print(f"[red]✘[/red] Export failed: {e}")
        sys.exit(1)

    print_outputs(outputs, settings)
    console.print()
    console.print("[green]✔[/green] [bold green]Done![/bold green]")
    console.print()


if __name__ == "__main__":
    main()
