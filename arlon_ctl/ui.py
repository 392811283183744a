"""Console output for arlon-ctl commands.

Thin wrapper around :mod:`rich`.  Human-facing status lines go through
this module; ``logger.*`` calls stay for the controller's log stream.
"""

from __future__ import annotations

from typing import Iterable, Optional

from rich.console import Console
from rich.table import Table

# Shared console; rich decides whether stdout is a terminal.
console = Console(stderr=False, force_terminal=None)

# ── Symbols ────────────────────────────────────────────────────────────────

_PASS = "[bold green]✓[/]"
_FAIL = "[bold red]✗[/]"
_WARN = "[bold yellow]⚠[/]"
_ARROW = "[bold cyan]›[/]"

# ── Status lines ───────────────────────────────────────────────────────────


def phase(title: str) -> None:
    """Bold section header (e.g. ``CONTROLLER``)."""
    console.print()
    console.print(f"[bold blue]── {title} ──[/]")


def ok(msg: str) -> None:
    console.print(f"  {_PASS} {msg}")


def fail(msg: str) -> None:
    console.print(f"  {_FAIL} [red]{msg}[/]")


def warn(msg: str) -> None:
    console.print(f"  {_WARN} [yellow]{msg}[/]")


def step(msg: str) -> None:
    console.print(f"  {_ARROW} {msg}")


def detail(key: str, value: str) -> None:
    """Key-value pair, indented."""
    console.print(f"    [bold]{key}[/]: {value}")


# ── Tables ─────────────────────────────────────────────────────────────────


def repo_table(repos: Iterable, current: Optional[str] = None) -> Table:
    """Build the ``gitrepo list`` table; the current alias is starred."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("")
    table.add_column("ALIAS")
    table.add_column("URL")
    for repo in repos:
        marker = "*" if current and repo.alias == current else ""
        table.add_row(marker, repo.alias, repo.url)
    return table
