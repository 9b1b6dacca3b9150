"""Wrap Studio: entry point.

Usage:
    # Generate a wrap from a local template image
    python main.py generate --template template.png --prompt "neon synthwave sunset"

    # Generate from a catalog vehicle (template is downloaded first)
    python main.py generate --vehicle modely --prompt "carbon fiber with red pinstripes"

    # Force a single provider
    python main.py generate --vehicle cybertruck --prompt "desert camo" --provider huggingface

    # List catalog vehicles / configured providers
    python main.py vehicles --category model3
    python main.py providers
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

import config
from schemas.wrap_generation import AggregateFailure, Artifact, ProviderId, TemplateImage, parse_mode
from wrapgen.service import generate
from wrapgen.templates import TemplateError, fetch_template_image, get_vehicle, list_vehicles

console = Console()

_EXTENSIONS = {"image/png": ".png", "image/jpeg": ".jpg", "image/webp": ".webp", "image/gif": ".gif"}


def setup_logging():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _default_output_path(artifact: Artifact) -> Path:
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    suffix = _EXTENSIONS.get(artifact.mime_type, ".png")
    return config.OUTPUT_DIR / f"wrap_{artifact.provider.value}_{stamp}{suffix}"


async def _load_template(args: argparse.Namespace, http_client: httpx.AsyncClient) -> TemplateImage:
    if args.vehicle:
        vehicle = get_vehicle(args.vehicle)
        console.print(f"  [dim]Template:[/dim] {vehicle.name} ({vehicle.template_url})")
        return await fetch_template_image(vehicle, http_client)

    path = Path(args.template)
    if not path.exists():
        raise FileNotFoundError(f"Template file not found: {path}")
    console.print(f"  [dim]Template:[/dim] {path}")
    return TemplateImage(data=path.read_bytes())


async def _generate_async(args: argparse.Namespace):
    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS) as http_client:
        template = await _load_template(args, http_client)
        return await generate(
            template.data,
            template.mime_type,
            args.prompt,
            args.provider,
            http_client=http_client,
            timeout_seconds=args.timeout,
        )


def run_generate(args: argparse.Namespace):
    try:
        parse_mode(args.provider)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(2)

    console.print(
        Panel(
            f"[bold cyan]GENERATE WRAP[/bold cyan]\n"
            f"Theme: {args.prompt}\n"
            f"Provider: {args.provider}",
            border_style="bright_blue",
        )
    )

    try:
        result = asyncio.run(_generate_async(args))
    except (KeyError, FileNotFoundError, TemplateError, ValueError) as exc:
        # KeyError str() wraps the message in quotes
        message = exc.args[0] if isinstance(exc, KeyError) and exc.args else str(exc)
        console.print(f"[red]{message}[/red]")
        sys.exit(1)

    if isinstance(result, AggregateFailure):
        if not result.reasons:
            console.print(f"[red]{result.message}[/red]")
            sys.exit(1)
        console.print("[red]All image generation providers failed:[/red]")
        for row in result.reasons:
            console.print(f"  [red]{row.provider.value}:[/red] {row.reason}")
        sys.exit(1)

    output_path = Path(args.output) if args.output else _default_output_path(result)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.data)
    console.print(f"  [green]Provider:[/green] {result.provider.value} ({result.model or 'default model'})")
    console.print(f"  [green]Output saved:[/green] {output_path}")


def run_vehicles(args: argparse.Namespace):
    table = Table(title="Vehicle templates")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Year")
    for vehicle in list_vehicles(args.category):
        table.add_row(vehicle.id, vehicle.name, vehicle.category, vehicle.year or "-")
    console.print(table)


def run_providers(_args: argparse.Namespace):
    credentials = config.PROVIDER_CREDENTIALS
    priority = config.PROVIDER_PRIORITY

    table = Table(title="Image generation providers")
    table.add_column("Priority", justify="right")
    table.add_column("Provider", style="cyan")
    table.add_column("Configured")
    table.add_column("Env var(s)", style="dim")
    ordered = priority + [p for p in ProviderId if p not in priority]
    for idx, provider in enumerate(ordered, start=1):
        in_plan = provider in priority
        configured = "[green]yes[/green]" if provider in credentials else "[red]no[/red]"
        table.add_row(
            str(idx) if in_plan else "-",
            provider.value,
            configured,
            ", ".join(config.CREDENTIAL_ENV_VARS[provider]),
        )
    console.print(table)
    if not credentials:
        console.print("[yellow]No provider API key found; generation will fail until one is set.[/yellow]")


def main():
    parser = argparse.ArgumentParser(
        description="Wrap Studio: AI vehicle wrap designs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # -- generate command --
    gen = subparsers.add_parser("generate", help="Generate a wrap design from a template and theme")
    source = gen.add_mutually_exclusive_group(required=True)
    source.add_argument("--template", "-t", help="Path to a local template image")
    source.add_argument("--vehicle", "-v", help="Catalog vehicle id (see `vehicles`)")
    gen.add_argument("--prompt", "-p", required=True, help="Design theme, e.g. 'matte black with gold flames'")
    gen.add_argument(
        "--provider",
        default="auto",
        help="auto (default) or one of: " + ", ".join(p.value for p in ProviderId),
    )
    gen.add_argument("--output", "-o", help="Output file (default: outputs/wrap_<provider>_<timestamp>.<ext>)")
    gen.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall timeout in seconds (default: GENERATION_TIMEOUT_SECONDS or none)",
    )

    # -- vehicles command --
    veh = subparsers.add_parser("vehicles", help="List catalog vehicle templates")
    veh.add_argument("--category", "-c", choices=["cybertruck", "model3", "modely"], help="Filter by category")

    # -- providers command --
    subparsers.add_parser("providers", help="Show provider priority and which keys are configured")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging()

    console.print(
        Panel(
            "[bold]WRAP STUDIO[/bold]\n"
            "AI Vehicle Wrap Designs",
            border_style="bright_magenta",
        )
    )

    if args.command == "generate":
        run_generate(args)
    elif args.command == "vehicles":
        run_vehicles(args)
    elif args.command == "providers":
        run_providers(args)


if __name__ == "__main__":
    main()
