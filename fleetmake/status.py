"""
Fleet status rendering.

Tables for the ``check``, ``start`` and ``status`` commands, plus a JSON
form for scripts.
"""

import json
from typing import List

from rich.console import Console
from rich.table import Table

from .supervisor import FleetReport, ServiceStatus


def format_ports(ports: List[int]) -> str:
    return ", ".join(str(port) for port in ports) if ports else "-"


def ports_table(report: FleetReport) -> Table:
    table = Table(title="Listening Ports")
    table.add_column("Service", style="cyan", no_wrap=True)
    table.add_column("Ports", style="green")

    for name, ports in report.ports.items():
        table.add_row(name, format_ports(ports))
    return table


def status_table(rows: List[ServiceStatus]) -> Table:
    table = Table(title="Service Status Overview")
    table.add_column("Service", style="cyan", no_wrap=True)
    table.add_column("State", justify="center")
    table.add_column("Replicas", justify="center")
    table.add_column("PIDs", style="dim")
    table.add_column("Ports", style="green")

    for row in rows:
        if row.expected == 0 and row.running == 0:
            state = "⚪"
        elif row.running == 0:
            state = "🔴"
        elif row.healthy:
            state = "🟢"
        else:
            state = "🟡"

        table.add_row(
            row.name,
            state,
            f"{row.running}/{row.expected}",
            ", ".join(str(pid) for pid in row.pids) or "-",
            format_ports(row.ports),
        )
    return table


def show_ports(console: Console, report: FleetReport) -> None:
    console.print("[blue]Ports listened to by each service:[/blue]")
    console.print(ports_table(report))


def show_status(console: Console, rows: List[ServiceStatus]) -> None:
    console.print(status_table(rows))
    console.print("\n[dim]Legend:[/dim]")
    console.print(
        "[dim]  State: 🟢 All replicas | 🟡 Partial | 🔴 Stopped | ⚪ Disabled (0 replicas)[/dim]"
    )


def status_json(rows: List[ServiceStatus]) -> str:
    """Status in JSON format for programmatic consumption"""
    data = {
        row.name: {
            "expected": row.expected,
            "running": row.running,
            "healthy": row.healthy,
            "pids": row.pids,
            "ports": row.ports,
        }
        for row in rows
    }
    return json.dumps(data, indent=2)
