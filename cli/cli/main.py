"""Main CLI entry point for image-watcher.

This module defines the Typer application and main commands.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

from . import __version__

if TYPE_CHECKING:
    from watcher import CycleSummary, UpdateEngine, VersionBuckets, WatcherSettings
    from watcher.version import ParsedVersion

# Create the main Typer app
app = typer.Typer(
    name="image-watcher",
    help="Container image watcher - upgrade workloads when new versions are published.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Create console for rich output
console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to the configuration file.",
        dir_okay=False,
    ),
]

OUTCOME_STYLES = {
    "skip": "[dim]skip[/dim]",
    "no_update": "[dim]no update[/dim]",
    "auto_upgrade": "[green]auto upgrade[/green]",
    "notify_pending": "[yellow]notify pending[/yellow]",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]image-watcher[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Image-Watcher: container image watcher.

    Classifies newly published image tags of Kubernetes workloads and upgrades
    them automatically or after a confirmed notification.
    """


def _load_settings(config: Path | None) -> WatcherSettings:
    """Load settings and configure logging, exiting on invalid settings."""
    from watcher import ConfigManager, SettingsError
    from watcher.logging import configure_logging

    try:
        settings = ConfigManager(config).load()
    except SettingsError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    configure_logging(settings.log_level.value, settings.log_json)
    return settings


def _get_engine(settings: WatcherSettings) -> UpdateEngine:
    """Get an engine wired to the configured providers."""
    from providers import build_services
    from watcher import UpdateEngine

    return UpdateEngine(build_services(settings), settings)


@app.command()
def run(config: ConfigOption = None) -> None:
    """Run one decision cycle over the watched workloads."""
    from watcher import ProviderError

    settings = _load_settings(config)
    engine = _get_engine(settings)

    try:
        summary = asyncio.run(engine.run_cycle())
    except ProviderError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    _print_summary(summary)
    if summary.failed:
        raise typer.Exit(1)


def _print_summary(summary: CycleSummary) -> None:
    """Print a summary of a decision cycle."""
    from watcher import DecisionOutcome

    console.print()

    table = Table(title=f"Cycle {summary.run_id}", show_header=True)
    table.add_column("Workload", style="cyan")
    table.add_column("Decision", style="bold")
    table.add_column("Current")
    table.add_column("Next")
    table.add_column("Notes")

    for decision in summary.decisions:
        if decision.error:
            notes = f"[red]{decision.error}[/red]"
        elif decision.upgraded is False:
            notes = "[red]upgrade failed[/red]"
        elif decision.candidates:
            notes = f"{len(decision.candidates)} candidate(s)"
        else:
            notes = ""
        table.add_row(
            f"{decision.namespace}/{decision.name}",
            OUTCOME_STYLES.get(decision.outcome.value, decision.outcome.value),
            decision.current_version or "[dim]-[/dim]",
            decision.next_version or "[dim]-[/dim]",
            notes,
        )

    if summary.decisions:
        console.print(table)
    else:
        console.print("[dim]No watched workloads.[/dim]")

    console.print()
    console.print(f"[bold]Total:[/bold] {len(summary.decisions)} workloads")
    upgraded = summary.count(DecisionOutcome.AUTO_UPGRADE)
    notified = summary.count(DecisionOutcome.NOTIFY_PENDING)
    console.print(f"  [green]Upgraded:[/green] {upgraded}")
    console.print(f"  [yellow]Notified:[/yellow] {notified}")
    console.print(f"  [red]Failed:[/red] {summary.failed}")


@app.command()
def serve(config: ConfigOption = None) -> None:
    """Serve the confirmation API and run cycles on the cron schedule."""
    settings = _load_settings(config)

    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")


async def _serve(settings: WatcherSettings) -> None:
    """Run the HTTP API and the scheduler in one event loop."""
    from aiohttp import web

    from watcher import ConfirmationGate
    from watcher.api import create_app
    from watcher.schedule import CycleScheduler

    engine = _get_engine(settings)
    gate = ConfirmationGate(engine)
    scheduler = CycleScheduler(engine.run_cycle, settings.cron, settings.timezone)

    runner = web.AppRunner(create_app(gate))
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)
    await site.start()
    console.print(
        f"[bold blue]image-watcher[/bold blue] listening on {settings.host}:{settings.port}"
        f" (cron: {settings.cron})"
    )

    try:
        if settings.run_on_boot:
            scheduler.trigger()
        await scheduler.run_forever()
    finally:
        await runner.cleanup()


@app.command()
def check(
    namespace: Annotated[str, typer.Argument(help="Namespace of the workload.")],
    name: Annotated[str, typer.Argument(help="Name of the workload.")],
    config: ConfigOption = None,
) -> None:
    """Classify the published versions of one workload without changing it."""
    from watcher import ProviderError

    settings = _load_settings(config)
    engine = _get_engine(settings)

    try:
        asyncio.run(_check_workload(engine, namespace, name))
    except ProviderError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


async def _check_workload(engine: UpdateEngine, namespace: str, name: str) -> None:
    """Show the classification of one workload."""
    from watcher import UpdateStrategy, select_candidates

    found = await engine.find_workload(namespace, name)
    if found is None:
        console.print(f"[red]Workload {namespace}/{name} not found[/red]")
        raise typer.Exit(1)

    workload, _ = found
    evaluation = await engine.evaluate(workload)
    config = evaluation.config

    console.print(f"[bold]Workload:[/bold] {workload.qualified_name} ({workload.kind.value})")
    console.print(f"[bold]Image:[/bold] {workload.image or '-'}")
    console.print(f"[bold]Mode:[/bold] {evaluation.mode.value}")
    console.print(f"[bold]Strategy:[/bold] {config.strategy.value}")
    console.print(f"[bold]Watched:[/bold] {'yes' if config.watch_enabled else 'no'}")
    console.print(f"[bold]Current version:[/bold] {evaluation.current_version or '-'}")
    console.print()

    if evaluation.current_version is None:
        console.print("[yellow]The current version could not be determined.[/yellow]")
        return

    _print_buckets(evaluation.buckets)

    table = Table(title="Next Version by Strategy", show_header=True)
    table.add_column("Strategy", style="cyan")
    table.add_column("Next version", style="bold")
    for strategy in UpdateStrategy:
        candidates = select_candidates(evaluation.buckets, strategy)
        marker = " [dim](active)[/dim]" if strategy == config.strategy else ""
        table.add_row(
            f"{strategy.value}{marker}",
            candidates[0].original if candidates else "[dim]up to date[/dim]",
        )
    console.print(table)


def _print_buckets(buckets: VersionBuckets) -> None:
    """Print the newer versions grouped by kind of change."""
    table = Table(title="Newer Versions", show_header=True)
    table.add_column("Change", style="cyan")
    table.add_column("Versions")

    def versions(items: list[ParsedVersion]) -> str:
        return ", ".join(v.original for v in items) or "[dim]none[/dim]"

    table.add_row("major", versions(buckets.majors))
    table.add_row("minor", versions(buckets.minors))
    table.add_row("patch", versions(buckets.patches))
    console.print(table)


@app.command()
def annotations() -> None:
    """List the annotations recognized on workloads."""
    from watcher import ANNOTATION_META

    table = Table(title="Workload Annotations", show_header=True)
    table.add_column("Annotation", style="cyan")
    table.add_column("Kind")
    table.add_column("Description")
    table.add_column("Default")
    table.add_column("Options")

    for key, meta in ANNOTATION_META.items():
        table.add_row(
            key.value,
            meta.kind.value.lower(),
            meta.description,
            _display(meta.default),
            ", ".join(_display(option) for option in meta.options),
        )

    console.print(table)


def _display(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(getattr(value, "value", value))


# =============================================================================
# Config Commands
# =============================================================================

SECRET_FIELDS = (
    "discord_url",
    "telegram_bot_token",
    "openai_api_key",
    "github_token",
    "kube_token",
)

config_app = typer.Typer(
    name="config",
    help="Inspect configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show(config: ConfigOption = None) -> None:
    """Show the effective settings, secrets masked."""
    import yaml

    from watcher import ConfigManager, SettingsError

    config_manager = ConfigManager(config)
    try:
        settings = config_manager.load()
    except SettingsError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    console.print(f"[bold]Configuration File:[/bold] {config_manager.config_path}")
    console.print()

    data = settings.model_dump(mode="json", exclude_defaults=True)
    for key in SECRET_FIELDS:
        if data.get(key):
            data[key] = "********"

    console.print(yaml.dump(data, default_flow_style=False, sort_keys=False) or "{}")


@config_app.command("path")
def config_path() -> None:
    """Show configuration file path."""
    from watcher.config import get_default_config_path

    console.print(str(get_default_config_path()))


if __name__ == "__main__":
    app()
