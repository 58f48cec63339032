import asyncio
import signal
from typing import Optional

import typer
from prometheus_client import start_http_server
from rich.console import Console
from rich.table import Table

from kubexec import __version__
from kubexec.cluster.client import load_k8s_config
from kubexec.config import settings
from kubexec.context import ControllerContext
from kubexec.errors import KubexecError
from kubexec.logging import get_logger, setup_logging
from kubexec.models import ExecutionStatus, ReconcileOutcome, ResourceKey
from kubexec.reconcile.aggregator import split_report

app = typer.Typer(
    name="kubexec",
    help="Controller that runs a declared command in every matching container.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()
log = get_logger("cli")

STATUS_STYLES = {
    ExecutionStatus.SUCCEEDED: "green",
    ExecutionStatus.FAILED: "red",
    ExecutionStatus.TIMED_OUT: "yellow",
    ExecutionStatus.ERROR: "magenta",
}


async def _run_controller() -> None:
    await load_k8s_config()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    async with ControllerContext(settings) as ctx:
        controller = ctx.build_controller()
        await controller.start()
        try:
            await stop_event.wait()
            log.info("Shutdown signal received")
        finally:
            await controller.stop()


@app.command()
def run(
    metrics_port: int = typer.Option(
        settings.metrics_port, "--metrics-port", help="Prometheus metrics port (0 disables it)."
    ),
):
    """
    Run the controller until interrupted.
    """
    setup_logging()
    log.info(f"kubexec {__version__} starting")
    if metrics_port:
        start_http_server(metrics_port)
        log.info(f"Serving metrics on :{metrics_port}")
    asyncio.run(_run_controller())


@app.command()
def reconcile(
    namespace: str = typer.Argument(..., help="Namespace of the Executor."),
    name: str = typer.Argument(..., help="Name of the Executor."),
):
    """
    Run a single reconciliation pass for one Executor and print the outcome.
    """
    setup_logging()
    key = ResourceKey(namespace=namespace, name=name)

    async def runner():
        await load_k8s_config()
        async with ControllerContext(settings) as ctx:
            return await ctx.build_reconciler().reconcile(key)

    result = asyncio.run(runner())
    style = {"done": "green", "noop": "cyan", "retry": "yellow"}[result.outcome.value]
    console.print(f"[bold {style}]{key}: {result.outcome.value}[/bold {style}]")
    if result.reason:
        console.print(f"[dim]{result.reason}[/dim]")
    if result.outcome == ReconcileOutcome.RETRY:
        raise typer.Exit(code=1)


@app.command()
def show(
    namespace: str = typer.Argument(..., help="Namespace of the Executor."),
    name: str = typer.Argument(..., help="Name of the Executor."),
    raw: bool = typer.Option(False, "--raw", help="Print the stored report unchanged."),
):
    """
    Display the observed output stored on an Executor.
    """
    setup_logging(level="WARNING")
    key = ResourceKey(namespace=namespace, name=name)

    async def fetcher():
        await load_k8s_config()
        async with ControllerContext(settings) as ctx:
            return await ctx.store.get(key)

    try:
        executor = asyncio.run(fetcher())
    except KubexecError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(code=1)

    report = executor.status.observed_output
    if report is None:
        console.print(f"[yellow]{key} has not been reconciled yet.[/yellow]")
        return
    if raw:
        console.print(report, markup=False, highlight=False, end="")
        return

    try:
        entries = split_report(report)
    except ValueError:
        console.print(report, markup=False, highlight=False, end="")
        return
    if not entries:
        console.print("[yellow]No containers matched.[/yellow]")
        return

    table = Table(
        title=f"{key}  pattern={executor.spec.container_name_pattern!r}  command={executor.spec.command!r}",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Container")
    table.add_column("Status")
    table.add_column("Output", overflow="fold")
    for entry in entries:
        style = STATUS_STYLES.get(entry.status, "white")
        output = entry.output.rstrip("\n")
        if entry.error:
            output = f"{entry.error}\n{output}" if output else entry.error
        table.add_row(
            str(entry.index),
            entry.container,
            f"[{style}]{entry.status.value}[/{style}]",
            output,
        )
    console.print(table)


@app.command()
def config():
    """
    Display the effective controller configuration.
    """
    table = Table(title="kubexec configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")
    for field_name, value in settings.model_dump().items():
        table.add_row(field_name, "-" if value is None else str(value))
    console.print(table)


def main(argv: Optional[list] = None) -> None:
    app(args=argv)


if __name__ == "__main__":
    main()
