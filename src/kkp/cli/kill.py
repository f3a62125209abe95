"""The kkp command flows: list, kill by port, by name, by PID, interactively."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass

import click
from rich.console import Console
from rich.markup import escape

from kkp.cli.targets import PortTarget
from kkp.finder import Finder, get_finder
from kkp.models import DEFAULT_TIMEOUT_MS, PROTOCOLS, FindOptions, Listener, dedupe_listeners
from kkp.platform import Platform, current_platform, is_root, is_windows_admin
from kkp.reaper import Outcome, Reaper, match_process_names
from kkp.renderer import (
    ERR,
    OK,
    err_line,
    info_line,
    listener_table,
    ok_line,
    summary_line,
)
from kkp.safety import refusal_message
from kkp.tui import select_listeners

logger = logging.getLogger(__name__)

# Status, errors and hints go to stderr; results go to stdout.
console = Console(stderr=True)
out = Console()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

_WINDOWS_ADMIN_DENIED = (
    "Access denied (even as Administrator). The process may be protected "
    "or owned by another security context."
)
_WINDOWS_NOT_ADMIN = (
    "Access denied. Try running in an elevated terminal (Run as Administrator)."
)


@dataclass
class KillSettings:
    protocols: tuple[str, ...] = PROTOCOLS
    force: bool = False
    dry_run: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    tree: bool = False


class KillCommand:
    """Runs one kkp invocation and returns its exit code."""

    def __init__(
        self,
        settings: KillSettings,
        finder: Finder | None = None,
        reaper: Reaper | None = None,
        platform: Platform | None = None,
        protected_names: Sequence[str] = (),
    ) -> None:
        self.settings = settings
        self.platform = platform or current_platform()
        self._finder = finder
        self.reaper = reaper or Reaper(platform=self.platform, protected_names=protected_names)

    @property
    def finder(self) -> Finder:
        if self._finder is None:
            self._finder = get_finder(self.platform)
        return self._finder

    async def list_listeners(self, as_json: bool) -> int:
        with console.status("Scanning listeners"):
            listeners = await self.finder.list_all()
        listeners = [item for item in listeners if item.protocol in self.settings.protocols]

        if as_json:
            click.echo(json.dumps([item.to_dict() for item in listeners], indent=2))
            return EXIT_OK

        if not listeners:
            out.print(info_line("No listeners found."))
            return EXIT_OK

        out.print(listener_table(listeners))
        out.print(f"\n[dim]{summary_line(listeners)}[/dim]")
        return EXIT_OK

    async def interactive(self) -> int:
        if not (sys.stdin.isatty() and sys.stdout.isatty()):
            console.print("[red]Interactive mode requires a TTY.[/red]")
            console.print(info_line("Try [bold]kkp --list[/bold] or [bold]kkp <port>[/bold]."))
            return EXIT_FAILURE

        with console.status("Scanning listeners"):
            listeners = await self.finder.list_all()
        listeners = [item for item in listeners if item.protocol in self.settings.protocols]
        if not listeners:
            out.print(info_line("No listeners found."))
            return EXIT_OK

        result = await select_listeners(listeners)
        if result.interrupted:
            return EXIT_INTERRUPTED
        if result.cancelled:
            return EXIT_OK
        return await self.kill_resolved(result.selected, self.settings.protocols)

    async def kill_pid(self, pid: int) -> int:
        settings = self.settings
        with console.status(f"Killing #{pid}"):
            outcome = await self.reaper.kill_pid(
                pid,
                force=settings.force,
                dry_run=settings.dry_run,
                timeout_ms=settings.timeout_ms,
                tree=settings.tree,
            )
        result = outcome.result

        if outcome.refused:
            message = refusal_message(outcome.listener, result.message or "protected")
            console.print(f"[red]{escape(message)}[/red]")
            console.print(info_line("Re-run with [bold]--force[/bold] to override."))
            return EXIT_FAILURE
        if result.ok and result.method == "dry-run":
            out.print(f"[green]{OK} would kill [bold]#{pid}[/bold][/green]")
            return EXIT_OK
        if result.ok:
            out.print(
                f"[green]{OK} killed [bold]#{pid}[/bold][/green] [dim]{escape(result.method)}[/dim]"
            )
            return EXIT_OK

        message = escape(result.message or "unknown error")
        console.print(f"[red]{ERR} failed to kill [bold]#{pid}[/bold]: {message}[/red]")
        if result.permission_denied:
            console.print(info_line(await self.elevation_hint(None)))
        return EXIT_FAILURE

    async def kill_names(self, names: Sequence[str]) -> int:
        with console.status("Scanning listeners"):
            listeners = await self.finder.list_all()

        matched, missing = match_process_names(listeners, names)
        for raw in missing:
            console.print(
                f"[red]{ERR} [bold]{escape(raw)}[/bold][/red] [dim]no matching process found[/dim]"
            )
        if not matched:
            return EXIT_FAILURE

        code = await self.kill_resolved(matched, self.settings.protocols)
        return max(code, EXIT_FAILURE if missing else EXIT_OK)

    async def kill_ports(self, targets: Sequence[PortTarget]) -> int:
        allowed = self.settings.protocols
        found_all: list[Listener] = []
        code = EXIT_OK

        for target in targets:
            protocols = tuple(p for p in (target.protocols or allowed) if p in allowed)
            if not protocols:
                logger.debug("Skipping :%d, %s excluded by protocol flags", target.port, target.raw)
                continue
            with console.status(f"Looking up :{target.port}"):
                found = await self.finder.find_by_port(target.port, FindOptions(protocols=protocols))
            if not found:
                console.print(f"[red]{ERR} [bold]{target.port}[/bold][/red] [dim]no listener found[/dim]")
                code = EXIT_FAILURE
            found_all.extend(found)

        if not found_all:
            return EXIT_FAILURE
        # Per-target protocol filtering already happened above.
        return max(code, await self.kill_resolved(dedupe_listeners(found_all), PROTOCOLS))

    async def kill_resolved(self, listeners: Sequence[Listener], allowed: Sequence[str]) -> int:
        actionable = [item for item in listeners if item.protocol in allowed]
        if not actionable:
            out.print(info_line("No actionable listeners."))
            return EXIT_OK

        settings = self.settings
        with console.status(f"Killing {len({item.pid for item in actionable})} process(es)"):
            outcomes = await self.reaper.kill_listeners(
                actionable,
                allowed_protocols=allowed,
                force=settings.force,
                dry_run=settings.dry_run,
                timeout_ms=settings.timeout_ms,
                tree=settings.tree,
            )
        return await self.report(outcomes)

    async def report(self, outcomes: Sequence[Outcome]) -> int:
        """Print one line per outcome plus at most one hint of each kind."""
        code = EXIT_OK
        denied: Listener | None = None
        any_refused = False

        for outcome in outcomes:
            result = outcome.result
            if result.ok:
                out.print(ok_line(outcome.listener, result.method))
                continue

            code = EXIT_FAILURE
            console.print(err_line(outcome.listener, result.message))
            if outcome.refused:
                any_refused = True
            elif result.permission_denied and denied is None:
                denied = outcome.listener

        if denied is not None:
            console.print(info_line(await self.elevation_hint(denied.port or None)))
        if any_refused:
            console.print(info_line("Re-run with [bold]--force[/bold] to override protected checks."))
        return code

    async def elevation_hint(self, port: int | None) -> str:
        if self.platform is Platform.WINDOWS:
            return _WINDOWS_ADMIN_DENIED if await is_windows_admin() else _WINDOWS_NOT_ADMIN
        if is_root():
            return "Permission denied even as root. The process may be protected by the system."
        if port:
            return f"Permission denied. Try: sudo kkp {port}"
        return "Permission denied. Try re-running with sudo."
