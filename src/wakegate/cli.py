"""Command-line interface for wakegate."""

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Optional

import click

from wakegate import __version__
from wakegate.core.wait import ProgressReporter

DEFAULT_CONFIG = Path.home() / ".config" / "wakegate" / "config.yaml"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    # one-shot jobs would log every execution at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def _load_cfg(config: str) -> dict[str, Any]:
    from wakegate.config.loader import ConfigError, load_settings

    path = Path(config).expanduser()
    if not path.exists():
        # no settings file: defaults, feature on so the CLI is useful out of the box
        return {"settings": {"enabled": True}}
    try:
        return load_settings(path)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        for e in exc.errors:
            click.echo(f"  • {e}", err=True)
        sys.exit(1)


class ConsoleProgress(ProgressReporter):
    """
    Terminal progress display for a blocking wake sequence.

    Ctrl-C cancels the sequence instead of killing the process while the
    display is open (main thread only).
    """

    BAR_WIDTH = 30

    def __init__(self) -> None:
        self._canceled = False
        self._percent = -1
        self._previous_handler: Any = None

    def start(self, heading: str) -> None:
        click.echo(heading)
        if threading.current_thread() is threading.main_thread():
            self._previous_handler = signal.signal(signal.SIGINT, self._on_sigint)

    def set_label(self, text: str) -> None:
        if self._percent >= 0:
            click.echo("")
        self._percent = -1
        click.echo(f"  {text}")

    def set_percent(self, percent: int) -> None:
        if percent == self._percent:
            return
        self._percent = percent
        filled = self.BAR_WIDTH * percent // 100
        bar = "#" * filled + "-" * (self.BAR_WIDTH - filled)
        click.echo(f"\r  [{bar}] {percent:3d}%", nl=False)

    def is_canceled(self) -> bool:
        return self._canceled

    def close(self) -> None:
        if self._percent >= 0:
            click.echo("")
        if self._previous_handler is not None:
            signal.signal(signal.SIGINT, self._previous_handler)
            self._previous_handler = None

    def _on_sigint(self, signum: int, frame: Any) -> None:
        self._canceled = True


def _find_entry(ctx: click.Context, host: str) -> Any:
    service = ctx.obj["service"]
    entry = service.registry.get(host)
    if entry is None:
        click.echo(f"Host '{host}' is not in the wake registry.", err=True)
        sys.exit(1)
    return entry


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="wakegate")
@click.option(
    "--config",
    "-c",
    default=str(DEFAULT_CONFIG),
    envvar="WAKEGATE_CONFIG",
    show_default=True,
    help="Path to wakegate config.yaml",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config: str, verbose: bool) -> None:
    """wakegate: wake sleeping hosts before they are accessed."""
    from wakegate.core.gate import create_service

    _setup_logging(verbose)
    ctx.ensure_object(dict)
    raw = _load_cfg(config)
    service = create_service(raw)
    service.registry.load()
    ctx.obj["config"] = raw
    ctx.obj["service"] = service


# ── hosts group ───────────────────────────────────────────────────────────────


@main.group()
def hosts() -> None:
    """Inspect the wake registry."""


@hosts.command("list")
@click.pass_context
def hosts_list(ctx: click.Context) -> None:
    """List all registered wakeable hosts."""
    entries = ctx.obj["service"].registry.entries()
    if not entries:
        click.echo("No hosts registered.")
        return
    click.echo(f"{'HOST':<28} {'MAC':<18} {'PING':<6} {'THROTTLE':<9} {'WAIT (s)'}")
    click.echo("─" * 80)
    for e in entries:
        ping = str(e.ping_port) if e.ping_port else "icmp"
        click.echo(
            f"{e.host:<28} {e.mac:<18} {ping:<6} {e.timeout:<9} "
            f"{e.wait_online}+{e.wait_online2}+{e.wait_services}"
        )


# ── access command ────────────────────────────────────────────────────────────


@main.command()
@click.argument("target")
@click.option("--quiet", "-q", is_flag=True, help="Do not show progress")
@click.pass_context
def access(ctx: click.Context, target: str, quiet: bool) -> None:
    """Access a host (or resource URL) and wake it first if needed."""
    service = ctx.obj["service"]
    if not service.enabled:
        click.echo("Wake on access is disabled in the config.", err=True)
        sys.exit(1)

    progress: Optional[ConsoleProgress] = None if quiet else ConsoleProgress()
    service.start()
    try:
        if "://" in target:
            result = service.on_access_url(target, progress=progress)
        else:
            result = service.on_access(target, "command line", progress=progress)
    finally:
        service.shutdown()

    if result is None:
        click.echo(f"No wake needed for {target}.")
    elif result.success:
        click.echo(f"✓  {result.host}: {result.outcome.value} ({result.duration_seconds:.1f}s)")
    else:
        click.echo(f"✗  {result.host}: {result.outcome.value}: {result.error}", err=True)
        sys.exit(2)


# ── wake command ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("host")
@click.pass_context
def wake(ctx: click.Context, host: str) -> None:
    """Send a Wake-on-LAN packet to a registered host, without waiting."""
    from wakegate.core.network import Network

    entry = _find_entry(ctx, host)
    settings = ctx.obj["config"].get("settings", {}) or {}
    network = Network(
        broadcast=settings.get("wol_broadcast", "255.255.255.255"),
        wol_port=int(settings.get("wol_port", 9)),
    )
    if not network.send_wake_signal(entry.mac):
        click.echo(f"Failed to send WOL packet to {entry.mac}", err=True)
        sys.exit(2)
    click.echo(f"WOL packet sent to {entry.mac} ({entry.host})")


# ── probe command ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("host")
@click.pass_context
def probe(ctx: click.Context, host: str) -> None:
    """Check whether a registered host answers its liveness probe."""
    from wakegate.core.network import Network
    from wakegate.core.wait import probe_host

    entry = _find_entry(ctx, host)
    if probe_host(Network(), entry):
        click.echo(f"{entry.host} is up")
    else:
        click.echo(f"{entry.host} is not responding", err=True)
        sys.exit(2)


# ── discover command ──────────────────────────────────────────────────────────


@main.command()
@click.argument("host", required=False)
@click.option("--all", "all_hosts", is_flag=True, help="Discover every remote host in the config")
@click.pass_context
def discover(ctx: click.Context, host: Optional[str], all_hosts: bool) -> None:
    """Discover the MAC address of a reachable host and register it."""
    from wakegate.core.discovery import DiscoveryError, candidate_hosts, discover_mac
    from wakegate.core.network import AddressResolutionError, Network

    if all_hosts:
        targets = candidate_hosts(ctx.obj["config"].get("settings", {}) or {})
    elif host:
        targets = [host]
    else:
        click.echo("Give a HOST or --all.", err=True)
        sys.exit(1)

    if not targets:
        click.echo("No remote hosts found in the config.")
        return

    registry = ctx.obj["service"].registry
    failed = 0
    for target in targets:
        try:
            mac = discover_mac(target, Network())
        except (AddressResolutionError, DiscoveryError) as exc:
            click.echo(f"✗  {target}: {exc}", err=True)
            failed += 1
            continue
        result = registry.upsert_discovered(target, mac)
        click.echo(f"✓  {target}: {mac} ({result.value})")

    if failed:
        sys.exit(2)


if __name__ == "__main__":
    main()
