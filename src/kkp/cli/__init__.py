"""CLI entry point — kill processes by port."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
import yaml
from rich.markup import escape

from kkp import __version__
from kkp.cli.kill import EXIT_FAILURE, KillCommand, KillSettings, console
from kkp.cli.targets import Targets, parse_targets, resolve_protocols
from kkp.config import KkpConfig
from kkp.errors import KkpError

# Largest value os.kill accepts for a pid (a C int).
MAX_PID = 2**31 - 1


@click.command(
    context_settings={"help_option_names": ["-h", "--help"]},
    epilog=(
        "\b\nExamples:\n"
        "  kkp 3000           kill process on port 3000\n"
        "  kkp 3000 5173      kill multiple ports\n"
        "  kkp 3000/tcp       TCP only\n"
        "  kkp node           kill listeners named node\n"
        "  kkp --list --json  JSON output"
    ),
)
@click.version_option(version=__version__, prog_name="kkp")
@click.argument("targets", nargs=-1)
@click.option("--list", "-l", "list_", is_flag=True, help="List listeners.")
@click.option("--json", "-j", "as_json", is_flag=True, help="JSON output (with --list).")
@click.option("--force", "-f", is_flag=True, help="Kill protected processes.")
@click.option("--dry-run", is_flag=True, help="Preview without killing.")
@click.option("--tcp", is_flag=True, help="Only TCP listeners.")
@click.option("--udp", is_flag=True, help="Only UDP listeners.")
@click.option(
    "--timeout",
    "timeout_ms",
    type=click.IntRange(min=0),
    default=None,
    metavar="MS",
    help="Grace period before force-killing, in milliseconds.",
)
@click.option(
    "--pid", type=click.IntRange(min=1, max=MAX_PID), default=None, help="Kill by PID directly."
)
@click.option("--tree", is_flag=True, help="Also kill the process's descendants.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
def main(
    targets: tuple[str, ...],
    list_: bool,
    as_json: bool,
    force: bool,
    dry_run: bool,
    tcp: bool,
    udp: bool,
    timeout_ms: int | None,
    pid: int | None,
    tree: bool,
    verbose: bool,
) -> None:
    """kkp — kill processes by port.

    TARGETS are ports (3000), ports with a protocol (3000/udp) or process
    names (node). With no targets an interactive picker opens.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if as_json and not list_:
        raise click.UsageError("--json can only be used with --list.")

    parsed = parse_targets(targets)
    if parsed.unknown:
        raise click.UsageError(f"Unknown arguments: {' '.join(parsed.unknown)}")

    try:
        config = KkpConfig.load()
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc

    settings = KillSettings(
        protocols=resolve_protocols(tcp, udp),
        force=force,
        dry_run=dry_run,
        timeout_ms=config.timeout_ms if timeout_ms is None else timeout_ms,
        tree=tree or config.tree,
    )
    command = KillCommand(settings, protected_names=config.protected_names)

    try:
        code = asyncio.run(_run(command, parsed, list_, as_json, pid))
    except KkpError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        sys.exit(EXIT_FAILURE)
    sys.exit(code)


async def _run(command: KillCommand, parsed: Targets, list_: bool, as_json: bool, pid: int | None) -> int:
    if list_:
        return await command.list_listeners(as_json)
    if pid is not None:
        # Ports and names are ignored when a PID is given.
        return await command.kill_pid(pid)
    if parsed.empty:
        return await command.interactive()

    code = 0
    if parsed.names:
        code = max(code, await command.kill_names(parsed.names))
    if parsed.ports:
        code = max(code, await command.kill_ports(parsed.ports))
    return code
