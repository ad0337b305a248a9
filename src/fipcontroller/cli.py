"""fip-controller command line interface."""

import asyncio
import json
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from fipcontroller.config import Config, load_config
from fipcontroller.errors import ClientInitializationError, ConfigurationError
from fipcontroller.logging import configure_logging, get_logger

app = typer.Typer(
    name="fip-controller",
    help="Keeps Hetzner Cloud floating IPs on ready Kubernetes nodes",
    no_args_is_help=True,
)
console = Console()
logger = get_logger(__name__, component="cli")

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="YAML config file (defaults to $FIPCONTROLLER_CONFIG)",
)


def _load(config_path: Optional[Path], log_level: Optional[str] = None) -> Config:
    """Load config and set up logging, exiting 1 on invalid configuration."""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        configure_logging(log_level or "INFO")
        logger.error("configuration_invalid", **e.to_dict())
        console.print(f"[red]Configuration error: {e.message}[/red]")
        for error in e.details.get("errors", []):
            console.print(f"  [dim]{error['field']}:[/dim] {error['error']}")
        raise typer.Exit(1)

    configure_logging(log_level or config.log_level, config.log_format)
    return config


def _install_signal_handlers(shutdown: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support.
            pass


@app.command()
def version():
    """Show version information."""
    from fipcontroller import __version__

    console.print(f"fip-controller version {__version__}")


@app.command("check-config")
def check_config(
    config_path: Optional[Path] = ConfigOption,
    as_json: bool = typer.Option(False, "--json", help="Print the configuration as JSON"),
):
    """Validate the configuration and print it with secrets masked."""
    config = _load(config_path)
    data = config.redacted()

    if as_json:
        console.print_json(json.dumps(data))
        return

    table = Table(title="fip-controller configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, "" if value is None else escape(str(value)))
    console.print(table)
    console.print("[green]✓ Configuration is valid[/green]")


@app.command()
def run(
    config_path: Optional[Path] = ConfigOption,
    leader_election: bool = typer.Option(
        True,
        "--leader-election/--no-leader-election",
        help="Gate the control loop behind a Kubernetes lease",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-l", help="Override the configured log level"
    ),
):
    """Run the controller until SIGINT or SIGTERM."""
    from fipcontroller.controller import ControllerContext, run_controller
    from fipcontroller.metrics import start_metrics_server

    config = _load(config_path, log_level)

    try:
        context = ControllerContext.from_config(config, leader_election=leader_election)
    except ClientInitializationError as e:
        logger.error("client_initialization_failed", **e.to_dict())
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    if config.metrics_port:
        try:
            start_metrics_server(config.metrics_port)
        except OSError as e:
            logger.warning("metrics_server_failed", port=config.metrics_port, error=str(e))

    logger.info(
        "controller_starting",
        identity=config.pod_name,
        leader_election=leader_election,
        interval=config.reconcile_interval,
    )

    async def _run():
        shutdown = asyncio.Event()
        _install_signal_handlers(shutdown)
        try:
            await run_controller(context, shutdown)
        finally:
            await context.close()

    asyncio.run(_run())
    logger.info("controller_stopped")


@app.command()
def reconcile(
    config_path: Optional[Path] = ConfigOption,
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Plan assignments without changing anything"
    ),
):
    """Run a single reconciliation pass without leader election."""
    from fipcontroller.controller import ControllerContext, Reconciler
    from fipcontroller.errors import ReconciliationError

    config = _load(config_path)

    try:
        context = ControllerContext.from_config(config, leader_election=False)
    except ClientInitializationError as e:
        logger.error("client_initialization_failed", **e.to_dict())
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    async def _reconcile():
        try:
            return await Reconciler(context).reconcile(dry_run=dry_run)
        finally:
            await context.close()

    try:
        report = asyncio.run(_reconcile())
    except ReconciliationError as e:
        logger.error("reconciliation_failed", **e.to_dict())
        console.print(f"[red]Reconciliation failed: {escape(e.message)}[/red]")
        raise typer.Exit(2)

    console.print(
        f"[dim]Running servers: {', '.join(s.name for s in report.running_servers)}[/dim]"
    )
    console.print(f"[dim]Floating IPs: {len(report.floating_ips)}[/dim]\n")

    if not report.planned:
        console.print("[green]✓ All floating IPs are on running servers[/green]")
        return

    applied = {a.floating_ip.ip for a in report.applied}
    table = Table(title="Planned assignments" if dry_run else "Assignments")
    table.add_column("Floating IP", style="cyan")
    table.add_column("From")
    table.add_column("To", style="green")
    table.add_column("Result")
    for assignment in report.planned:
        ip = assignment.floating_ip.ip
        if dry_run:
            result = "[dim]planned[/dim]"
        elif ip in applied:
            result = "[green]assigned[/green]"
        elif ip in report.failures:
            result = f"[red]{escape(report.failures[ip])}[/red]"
        else:
            result = "[yellow]skipped[/yellow]"
        previous = assignment.previous_server_id
        table.add_row(
            ip,
            "-" if previous is None else str(previous),
            assignment.server.name,
            result,
        )
    console.print(table)

    if report.partial:
        console.print(
            f"[yellow]⚠ {len(report.failures)} floating IP(s) could not be assigned; "
            "the next pass will retry them[/yellow]"
        )


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
