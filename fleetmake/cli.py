#!/usr/bin/env python3
"""
fleetmake command line

Build, start, stop and check the service fleet.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from .build import run_build
from .config import FleetConfig
from .descriptor import read_descriptor
from .errors import CompileFailure, FleetError, ProcessNotStopped
from .platforms import platforms_from_env
from .status import show_ports, show_status, status_json
from .supervisor import Supervisor

console = Console()
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def load_supervisor(config: FleetConfig) -> Supervisor:
    descriptor = read_descriptor(config.descriptor_path)
    return Supervisor(config, descriptor)


def cmd_build(config: FleetConfig, names: List[str]) -> int:
    platforms = platforms_from_env()
    targets = " ".join(p.token for p in platforms)
    console.print(f"🔨 [bold]Building {'all binaries' if not names else ', '.join(names)} for {targets}[/bold]")

    try:
        report = run_build(config, names, platforms)
    except CompileFailure as e:
        console.print("[red]❌ Compilation aborted[/red]")
        console.print(f"  [dim]{e}[/dim]")
        return 1

    for name in report.resolution.unresolved:
        console.print(f"[yellow]⚠️  Binary {name} not found in cmd or tools directories, skipped[/yellow]")
    for error in report.scan_errors:
        console.print(f"[yellow]⚠️  {error}[/yellow]")
    if report.stale_entries:
        console.print(
            f"[yellow]⚠️  {config.descriptor_name} lists binaries that no longer exist: "
            f"{', '.join(report.stale_entries)}[/yellow]"
        )

    if report.resolution.is_empty:
        console.print("[yellow]⚠️  Nothing to build[/yellow]")
        return 0

    if report.descriptor_written:
        console.print(f"[green]✅ {config.descriptor_name} created[/green]")
    else:
        console.print(f"[dim]{config.descriptor_name} already exists, left unchanged[/dim]")

    console.print(
        f"[green]🎉 Compiled {len(report.compiled_services)} services and "
        f"{len(report.compiled_tools)} tools[/green]"
    )
    return 0


def cmd_start(config: FleetConfig) -> int:
    supervisor = load_supervisor(config)
    console.print("🚀 [bold]Running tools (component checks and preparation)...[/bold]")
    try:
        report = supervisor.start()
    except FleetError as e:
        console.print("[red]❌ Start aborted[/red]")
        console.print(f"  [dim]{e}[/dim]")
        return 1

    console.print("[green]✅ All services are running[/green]")
    show_ports(console, report)
    return 0


def cmd_stop(config: FleetConfig) -> int:
    supervisor = load_supervisor(config)
    console.print(f"🛑 [bold]Stopping {len(supervisor.service_names)} services...[/bold]")
    try:
        supervisor.stop()
    except ProcessNotStopped as e:
        console.print(f"[yellow]⚠️  {e}[/yellow]")
        return 1

    console.print("[green]✅ All services have been stopped[/green]")
    return 0


def cmd_check(config: FleetConfig) -> int:
    supervisor = load_supervisor(config)
    try:
        report = supervisor.check()
    except FleetError as e:
        console.print("[red]❌ Some services are not running properly:[/red]")
        console.print(f"  [dim]{e}[/dim]")
        return 1

    console.print("[green]✅ All services are running normally[/green]")
    show_ports(console, report)
    return 0


def cmd_status(config: FleetConfig, as_json: bool = False) -> int:
    rows = load_supervisor(config).status()
    if as_json:
        print(status_json(rows))
    else:
        show_status(console, rows)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fleetmake", description="Build and run the service fleet")
    parser.add_argument("--root", type=Path, default=None, help="Project root (default: current directory)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    build_cmd = subparsers.add_parser("build", help="Compile binaries under cmd/ and tools/")
    build_cmd.add_argument(
        "names", nargs="*", help="Binaries to build (default: everything discovered)"
    )

    subparsers.add_parser("start", help="Run tools, then (re)start all services")
    subparsers.add_parser("stop", help="Stop all services")
    subparsers.add_parser("check", help="Verify all services are running")

    status_parser = subparsers.add_parser("status", help="Show per-service status")
    status_parser.add_argument("--json", "-j", action="store_true", help="Output status in JSON format")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = FleetConfig.from_env(args.root)
    except ValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        return 1
    setup_logging("DEBUG" if args.verbose else config.log_level)

    try:
        if args.command == "build":
            return cmd_build(config, args.names)
        if args.command == "start":
            return cmd_start(config)
        if args.command == "stop":
            return cmd_stop(config)
        if args.command == "check":
            return cmd_check(config)
        if args.command == "status":
            return cmd_status(config, args.json)
    except FleetError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return 1

    parser.error(f"unknown command {args.command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
