"""
Griefwatch CLI - Command Line Interface for behavioral replay analysis

Provides commands for:
- Analyzing a parsed match timeline
- Writing a default configuration file
- Showing environment information
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from griefwatch import __version__
from griefwatch.core.config import generate_default_config, load_config, setup_logging
from griefwatch.core.timeline import TimelineFormatError, load_timeline
from griefwatch.core.utils import format_money
from griefwatch.export import export_report
from griefwatch.pipeline.orchestrator import BehaviorEngine, MatchReport

app = typer.Typer(
    name="griefwatch",
    help="Behavioral analysis of CS2 replays: economy griefing, AFK players and friendly fire",
    add_completion=False,
)
console = Console()

logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]Griefwatch[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose output"),
) -> None:
    """Griefwatch - Behavioral analysis of CS2 replays"""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@app.command()
def analyze(
    timeline_path: Path = typer.Argument(
        ...,
        help="Path to the parsed timeline (.json or .json.gz)",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (.yaml, .toml or .json)",
        exists=True,
        dir_okay=False,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Export results (.json writes one file, a path without extension a directory of CSV tables)",
    ),
    player: Optional[str] = typer.Option(
        None, "--player", "-p", help="Filter results to a specific player (name or id)"
    ),
    flagged_only: bool = typer.Option(
        False, "--flagged-only", help="Only show griefing events of flagged players"
    ),
) -> None:
    """
    Analyze a parsed match timeline and display behavioral findings.

    Reports:
    - Economy griefing per player (score, confidence, flag)
    - Round-start AFK detections
    - Disconnects and reconnects
    - Team kills and team damage
    """
    config = load_config(config_file)
    root_level = logging.getLogger().level
    setup_logging(config.logging)
    if root_level == logging.DEBUG:
        logging.getLogger().setLevel(logging.DEBUG)

    console.print("\n[bold blue]Griefwatch[/bold blue] - Analyzing match...\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Loading timeline...", total=None)
        try:
            timeline = load_timeline(timeline_path)
        except (OSError, ValueError) as e:
            # TimelineFormatError and JSONDecodeError are both ValueErrors
            label = "Invalid timeline" if isinstance(e, TimelineFormatError) else "Error loading timeline"
            console.print(f"[red]{label}:[/red] {e}")
            raise typer.Exit(1)

        progress.update(task, description="Running detectors...")
        report = BehaviorEngine(config).analyze(timeline)
        progress.update(task, description="Analysis complete!")

    info_table = Table(title="Match Information", show_header=False)
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value", style="green")
    info_table.add_row("Map", timeline.map_name or "unknown")
    info_table.add_row("Duration", f"{timeline.duration_seconds:.1f} seconds")
    info_table.add_row("Tick Rate", f"{timeline.tick_rate:g}")
    info_table.add_row("Rounds", str(len(timeline.rounds)))
    if report.skipped_rounds:
        info_table.add_row("Skipped Rounds", ", ".join(str(r) for r in report.skipped_rounds))
    console.print(info_table)
    console.print()

    _display_griefing_players(report, player)
    _display_griefing_events(report, player, flagged_only)
    _display_afk(report, player)
    _display_disconnects(report, player)
    _display_friendly_fire(report, player)

    if output:
        written = export_report(report, output, config=config.export)
        console.print(f"\n[green]Results exported to:[/green] {', '.join(str(p) for p in written)}")


def _matches_player(query: Optional[str], player_id: int, name: str) -> bool:
    if not query:
        return True
    return query == str(player_id) or query.lower() in name.lower()


def _display_griefing_players(report: MatchReport, player: Optional[str]) -> None:
    results = [
        r for r in report.griefing.values() if _matches_player(player, r.player_id, r.player_name)
    ]
    if not results:
        console.print("[green]No economy griefing detected[/green]\n")
        return

    table = Table(title="Economy Griefing by Player")
    table.add_column("Player", style="cyan")
    table.add_column("Team")
    table.add_column("Events", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Flagged", justify="center")

    for result in sorted(results, key=lambda r: (-r.score, r.player_id)):
        table.add_row(
            result.player_name,
            result.team.value,
            str(len(result.events)),
            f"{result.score:.2f}",
            f"{result.confidence:.0%}",
            "[red]YES[/red]" if result.flagged else "no",
        )

    console.print(table)
    console.print()


def _display_griefing_events(report: MatchReport, player: Optional[str], flagged_only: bool) -> None:
    events = [
        e
        for result in report.griefing.values()
        if not flagged_only or result.flagged
        if _matches_player(player, result.player_id, result.player_name)
        for e in result.events
    ]
    if not events:
        return

    table = Table(title="Griefing Events")
    table.add_column("Round", justify="right")
    table.add_column("Player", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Score", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Reason")

    for event in sorted(events, key=lambda e: (e.round_num, e.player_id, e.type.value)):
        table.add_row(
            str(event.round_num),
            event.player_name,
            event.type.value,
            f"{event.score:.2f}",
            f"{event.confidence:.0%}",
            event.reason,
        )

    console.print(table)
    console.print()


def _display_afk(report: MatchReport, player: Optional[str]) -> None:
    detections = [d for d in report.afk if _matches_player(player, d.player_id, d.player_name)]
    if not detections:
        console.print("[green]No AFK players detected[/green]\n")
        return

    table = Table(title="AFK at Round Start")
    table.add_column("Round", justify="right")
    table.add_column("Player", style="cyan")
    table.add_column("Team")
    table.add_column("Duration", justify="right")
    table.add_column("Died While AFK", justify="center")

    for detection in detections:
        table.add_row(
            str(detection.round_num),
            detection.player_name,
            detection.team.value,
            f"{detection.duration_seconds:.1f}s",
            "[red]YES[/red]" if detection.died_while_afk else "no",
        )

    console.print(table)
    console.print()


def _display_disconnects(report: MatchReport, player: Optional[str]) -> None:
    disconnects = [d for d in report.disconnects if _matches_player(player, d.player_id, d.player_name)]
    if not disconnects:
        return

    table = Table(title="Disconnects")
    table.add_column("Player", style="cyan")
    table.add_column("Team")
    table.add_column("Round", justify="right")
    table.add_column("Reconnect Round", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Rounds Missed", justify="right")
    table.add_column("Alive", justify="center")

    for event in disconnects:
        table.add_row(
            event.player_name,
            event.team.value,
            str(event.disconnect_round) if event.disconnect_round is not None else "-",
            str(event.reconnect_round) if event.reconnect_round is not None else "[red]never[/red]",
            f"{event.duration_seconds:.1f}s" if event.duration_seconds is not None else "-",
            str(event.rounds_missed) if event.rounds_missed is not None else "-",
            "yes" if event.alive_at_disconnect else "no",
        )

    console.print(table)
    console.print()


def _display_friendly_fire(report: MatchReport, player: Optional[str]) -> None:
    kills = [k for k in report.team_kills if _matches_player(player, k.attacker_id, k.attacker_name)]
    damage = [d for d in report.team_damage if _matches_player(player, d.attacker_id, d.attacker_name)]
    if not kills and not damage:
        return

    table = Table(title="Friendly Fire")
    table.add_column("Round", justify="right")
    table.add_column("Attacker", style="cyan")
    table.add_column("Victim")
    table.add_column("Kind", style="magenta")
    table.add_column("Details")

    for kill in kills:
        details = (kill.weapon or "unknown weapon") + (" (headshot)" if kill.headshot else "")
        table.add_row(str(kill.round_num), kill.attacker_name, kill.victim_name, "kill", details)
    for hit in damage:
        details = f"{hit.damage:g} hp" + (f" with {', '.join(hit.weapons)}" if hit.weapons else "")
        table.add_row(str(hit.round_num), hit.attacker_name, hit.victim_name, "damage", details)

    console.print(table)
    console.print()


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(
        Path("griefwatch.yaml"), help="Where to write the configuration (.yaml or .json)"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """
    Write a configuration file with every default threshold.
    """
    if path.exists() and not force:
        console.print(f"[yellow]Warning:[/yellow] {path} already exists (use --force to overwrite)")
        raise typer.Exit(1)
    try:
        generate_default_config(path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Wrote default configuration to:[/green] {path}")


@app.command()
def info() -> None:
    """
    Display information about Griefwatch and the active configuration.
    """
    import platform as plat

    config = load_config()
    console.print(f"\n[bold blue]Griefwatch[/bold blue] v{__version__}\n")

    table = Table(show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Python", plat.python_version())
    table.add_row("Platform", plat.system())
    table.add_row("Min money to buy", format_money(config.economy.min_money_to_buy))
    table.add_row("Flag threshold", f"{config.economy.flag_score_threshold:g}")
    table.add_row("AFK threshold", f"{config.afk.afk_threshold_seconds:g}s")
    table.add_row("Movement epsilon", f"{config.afk.movement_epsilon:g} units")
    table.add_row("Disconnect gap", f"{config.disconnects.gap_threshold_seconds:g}s")

    console.print(table)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
