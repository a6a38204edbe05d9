"""
Window Restore CLI

Talks to the running daemon over its JSON-RPC socket.

Usage:
    window-restore status [--json]
    window-restore save [SLOT]
    window-restore restore [SLOT]
    window-restore clear [SLOT] [--all]
    window-restore select SLOT
    window-restore pause [--duration SECONDS]
    window-restore resume
    window-restore privacy on|off
    window-restore sleep-hook pre|post
"""

import json
import socket
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from .constants import SOCKET_PATH


class DaemonClient:
    """JSON-RPC client for daemon communication."""

    def __init__(self, socket_path: Optional[Path] = None, timeout: float = 15.0):
        """
        Args:
            socket_path: Path to daemon socket
            timeout: Socket timeout in seconds (restores can take a moment)
        """
        self.socket_path = socket_path or SOCKET_PATH
        self.timeout = timeout
        self.request_id = 0

    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call JSON-RPC method on daemon.

        Raises:
            RuntimeError: If daemon is not running or returns error
        """
        self.request_id += 1
        request = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or {},
            "id": self.request_id
        }

        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.settimeout(self.timeout)
                sock.connect(str(self.socket_path))
                sock.sendall(json.dumps(request).encode() + b"\n")

                response_data = b""
                while b"\n" not in response_data:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    response_data += chunk
        except socket.timeout:
            raise RuntimeError(
                f"Timeout talking to daemon ({self.timeout:.0f}s). Check daemon status:\n"
                "  systemctl --user status window-restore-daemon"
            )
        except FileNotFoundError:
            raise RuntimeError(
                f"Daemon socket not found: {self.socket_path}\n"
                "Start daemon with: systemctl --user start window-restore-daemon"
            )
        except ConnectionRefusedError:
            raise RuntimeError(
                "Daemon not running. Start with:\n"
                "  systemctl --user start window-restore-daemon"
            )

        response = json.loads(response_data.decode())
        if "error" in response:
            error = response["error"]
            message = error.get("message", "Unknown error")
            if error.get("suggestion"):
                message = f"{message}\n  {error['suggestion']}"
            raise RuntimeError(message)

        return response.get("result")


def _run(method: str, params: Optional[Dict[str, Any]] = None) -> Any:
    console = Console()
    try:
        return DaemonClient().call(method, params)
    except RuntimeError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def display_status(status: Dict[str, Any], console: Console) -> None:
    paused = "[yellow]paused[/yellow]" if status.get("paused") else "[green]active[/green]"
    if status.get("monitoring_suspended"):
        paused += " [dim](suspended for sleep)[/dim]"
    privacy = "[yellow]on[/yellow]" if status.get("privacy_mode") else "off"
    detector = status.get("detector", {})

    console.print(f"\n[bold cyan]Window Restore[/bold cyan]  {paused}")
    console.print(f"Privacy mode: {privacy}   Stabilization: {detector.get('state', 'unknown')}\n")

    table = Table(title="Slots")
    table.add_column("Slot", justify="right")
    table.add_column("Windows", justify="right")
    table.add_column("Updated")

    active = status.get("active_slot")
    for slot in status.get("slots", []):
        label = "auto" if slot["id"] == 0 else str(slot["id"])
        if slot["id"] == active:
            label = f"[bold]{label} *[/bold]"
        table.add_row(label, str(slot["windows"]), slot.get("updated_at") or "[dim]never[/dim]")

    console.print(table)

    last = detector.get("last_outcome")
    if last:
        console.print(
            f"\nLast restore: {last['restored']}/{last['saved']} windows "
            f"({last['skipped']} skipped, {last['failed']} failed)"
        )


@click.group()
def cli():
    """Save and restore window layouts across display changes."""
    pass


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output JSON instead of a table")
def status(output_json: bool):
    """Show slots, pause state and the stabilization cycle."""
    console = Console()
    data = _run("status")
    if output_json:
        console.print_json(json.dumps(data))
    else:
        display_status(data, console)


@cli.command()
@click.argument("slot", type=int, required=False)
def save(slot: Optional[int]):
    """Save the current layout to SLOT (default: active slot)."""
    console = Console()
    result = _run("save", {"slot": slot} if slot is not None else {})
    if result.get("saved"):
        console.print(f"[green]Saved {result['windows']} windows to slot {result['slot']}[/green]")
    else:
        console.print(f"[yellow]Not saved: {result.get('reason', 'unknown')}[/yellow]")


@cli.command()
@click.argument("slot", type=int, required=False)
def restore(slot: Optional[int]):
    """Restore windows from SLOT (default: active slot)."""
    console = Console()
    result = _run("restore", {"slot": slot} if slot is not None else {})
    if not result.get("ran"):
        console.print(f"[yellow]Nothing restored from slot {result['slot']}[/yellow]")
        return
    console.print(f"Restored {result['restored']}/{result['saved']} windows from slot {result['slot']}")


@cli.command()
@click.argument("slot", type=int, required=False)
@click.option("--all", "clear_all", is_flag=True, help="Clear every slot")
def clear(slot: Optional[int], clear_all: bool):
    """Clear SLOT (default: active slot)."""
    params: Dict[str, Any] = {"all": True} if clear_all else ({"slot": slot} if slot is not None else {})
    result = _run("clear", params)
    Console().print(f"Cleared {result['cleared']}")


@cli.command()
@click.argument("slot", type=int)
def select(slot: int):
    """Make SLOT the active slot."""
    result = _run("select_slot", {"slot": slot})
    Console().print(f"Active slot: {result['active_slot']}")


@cli.command()
@click.option("--duration", type=float, help="Resume automatically after this many seconds")
def pause(duration: Optional[float]):
    """Pause automatic capture and restoration."""
    _run("pause", {"duration": duration} if duration is not None else {})
    Console().print("[yellow]Paused[/yellow]")


@cli.command()
def resume():
    """Resume automatic capture and restoration."""
    _run("resume")
    Console().print("[green]Resumed[/green]")


@cli.command()
@click.argument("state", type=click.Choice(["on", "off"]))
def privacy(state: str):
    """Turn privacy mode on (purge and stop persisting) or off."""
    result = _run("privacy", {"enabled": state == "on"})
    Console().print(f"Privacy mode: {'on' if result['privacy_mode'] else 'off'}")


@cli.command("sleep-hook")
@click.argument("phase", type=click.Choice(["pre", "post"]))
def sleep_hook(phase: str):
    """Forward a system sleep/wake transition (for systemd-sleep hooks)."""
    _run("sleep" if phase == "pre" else "wake")


if __name__ == "__main__":
    cli()
