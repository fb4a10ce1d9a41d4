"""Main CLI entry point for wordloop."""

from datetime import datetime
from pathlib import Path
from typing import NoReturn

import typer
from dotenv import load_dotenv
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wordloop.cli.helpers import (
    QUALITY_STYLES,
    direction_label,
    get_service,
    get_settings,
    print_quality_legend,
)
from wordloop.core.errors import WordloopError
from wordloop.core.models import Direction, ProgressRecord, Quality
from wordloop.core.scheduler import describe_due
from wordloop.logging_config import setup_logging

load_dotenv()

app = typer.Typer(
    name="wordloop",
    help="Spaced repetition scheduling for vocabulary study.",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def _configure() -> None:
    """Spaced repetition scheduling for vocabulary study."""
    setup_logging(get_settings().logging)


def _parse_direction(value: str) -> Direction:
    try:
        return Direction.parse(value)
    except WordloopError as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1)


def _fail(exc: Exception) -> NoReturn:
    rprint(f"[red]Error: {exc}[/red]")
    raise typer.Exit(1)


# ============================================================================
# IMPORT / SELECTION commands
# ============================================================================


@app.command("import")
def import_package(
    path: Path = typer.Argument(..., help="Word package JSON file", exists=True, dir_okay=False),
    select: bool = typer.Option(
        False,
        "--select",
        "-s",
        help="Start studying every concept in the package",
    ),
) -> None:
    """Import a word package into the concept dictionary."""
    service = get_service()
    try:
        concepts = service.storage.concepts.import_package(path)
        rprint(f"[green]Imported {len(concepts)} concept(s)[/green] from {path.name}")
        if select:
            created = service.select_concepts(c.id for c in concepts)
            rprint(f"Selected {len(concepts)} concept(s), {len(created)} new progress record(s)")
    except WordloopError as exc:
        _fail(exc)


@app.command()
def select(
    concept_ids: list[int] = typer.Argument(..., help="Concept IDs to study"),
) -> None:
    """Start studying concepts."""
    service = get_service()
    try:
        created = service.select_concepts(concept_ids)
    except WordloopError as exc:
        _fail(exc)
    rprint(f"[green]Selected {len(concept_ids)} concept(s)[/green] ({len(created)} new record(s))")


@app.command()
def drop(
    concept_id: int = typer.Argument(..., help="Concept ID to stop studying"),
) -> None:
    """Stop studying a concept (progress is kept)."""
    service = get_service()
    try:
        service.drop_concept(concept_id)
    except WordloopError as exc:
        _fail(exc)
    rprint(f"[yellow]Dropped concept {concept_id}[/yellow]")


@app.command()
def master(
    concept_id: int = typer.Argument(..., help="Concept ID already known"),
    direction: str | None = typer.Option(None, "--direction", "-d", help="Only this direction (ab/ba)"),
) -> None:
    """Mark a concept as mastered so it is never scheduled again."""
    service = get_service()
    parsed = _parse_direction(direction) if direction else None
    try:
        changed = service.mark_mastered(concept_id, parsed)
    except WordloopError as exc:
        _fail(exc)
    rprint(f"[green]Marked {changed} record(s) of concept {concept_id} as mastered[/green]")


# ============================================================================
# QUEUE command
# ============================================================================


@app.command()
def queue(
    direction: str = typer.Option("ab", "--direction", "-d", help="Study direction (ab/ba)"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum cards to show"),
) -> None:
    """Show the cards that would be presented next."""
    service = get_service()
    parsed = _parse_direction(direction)
    try:
        items = service.fetch_queue_items(parsed, limit)
    except WordloopError as exc:
        _fail(exc)

    if not items:
        rprint("[green]Nothing to study right now![/green]")
        return

    now = service.clock()
    table = Table(title=f"Study Queue ({direction_label(parsed)})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", justify="right")
    table.add_column("Prompt", style="cyan")
    table.add_column("Phase")
    table.add_column("Position / Due")

    for i, item in enumerate(items, 1):
        record = item.record
        if record.is_learning:
            placement = f"#{record.session_position}"
        else:
            placement = describe_due(record, now)
        table.add_row(str(i), str(item.concept.id), item.concept.prompt(parsed), record.phase_name, placement)

    console.print(table)


# ============================================================================
# STUDY command
# ============================================================================


@app.command()
def study(
    direction: str = typer.Option("ab", "--direction", "-d", help="Study direction (ab/ba)"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum answers this session"),
) -> None:
    """Start an interactive study session."""
    service = get_service()
    parsed = _parse_direction(direction)

    answered = 0
    graduated = 0
    ended_early = False
    while answered < limit:
        try:
            items = service.fetch_queue_items(parsed, 1)
        except WordloopError as exc:
            _fail(exc)
        if not items:
            break

        concept, record = items[0].concept, items[0].record
        title = f"Card {answered + 1} - {record.phase_name}"
        console.print(Panel(concept.prompt(parsed), title=title, border_style="blue"))

        typer.prompt("\n[Press Enter to reveal answer]", default="", show_default=False)
        console.print(Panel(concept.answer(parsed), title="Answer", border_style="green"))
        example = concept.example(parsed)
        if example:
            rprint(f"[dim]Example: {example}[/dim]")

        quality = _prompt_quality()
        if quality is None:
            rprint("\n[yellow]Session ended early.[/yellow]")
            ended_early = True
            break

        try:
            updated = service.submit_response(concept.id, parsed, quality)
        except WordloopError as exc:
            _fail(exc)

        answered += 1
        if record.is_learning and not updated.is_learning:
            graduated += 1
            rprint("[bold green]Graduated to review![/bold green]")
        style = QUALITY_STYLES[quality]
        rprint(f"[{style}]{quality.name.title()}[/{style}] [dim]next: {describe_due(updated, service.clock())}[/dim]\n")

    if answered == 0 and not ended_early:
        rprint("[green]Nothing to study right now![/green]")
        return

    rprint("\n[bold green]Session complete![/bold green]")
    rprint(f"Answered {answered} card(s), {graduated} graduated.")
    progress = service.daily_goal_progress()
    rprint(f"[dim]Daily goal: {progress.graduated}/{progress.daily_goal}[/dim]")


def _prompt_quality() -> Quality | None:
    """Prompt user for a quality rating."""
    rprint("\n[bold]How well did you know it?[/bold]")
    print_quality_legend()

    while True:
        choice = typer.prompt("Rating", default="2")
        if choice.lower() == "q":
            return None
        try:
            value = int(choice)
            if 1 <= value <= 3:
                return Quality(value)
        except ValueError:
            pass
        rprint("[red]Invalid choice. Enter 1-3 or q to quit.[/red]")


# ============================================================================
# STATS / SHOW commands
# ============================================================================


@app.command()
def stats() -> None:
    """Show today's progress and totals."""
    service = get_service()
    try:
        totals = service.db.get_stats()
        per_direction = [service.daily_stats(d) for d in Direction]
        progress = service.daily_goal_progress()
    except WordloopError as exc:
        _fail(exc)

    table = Table(title="wordloop Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Selected Concepts", str(totals["selected_concepts"]))
    table.add_row("Learning", str(totals["learning"]))
    table.add_row("In Review", str(totals["review"]))
    table.add_row("Mastered", str(totals["mastered"]))
    table.add_row("Total Responses", str(totals["total_responses"]))

    for daily in per_direction:
        table.add_row("", "")
        table.add_row(f"[bold]Today {direction_label(daily.direction)}[/bold]", "")
        table.add_row("  Studied", str(daily.studied_today))
        table.add_row("  Graduated", str(daily.graduated_today))
        table.add_row("  Accuracy", f"{daily.accuracy:.0%} ({daily.correct_answers}/{daily.total_answers})")

    table.add_row("", "")
    table.add_row("[bold]Daily Goal[/bold]", f"{progress.graduated}/{progress.daily_goal}")
    table.add_row("  Progress", f"{progress.percentage:.0f}%")
    table.add_row("  Streak", f"{per_direction[0].streak_days} day(s)")
    table.add_row("  Learning Velocity", f"{service.accountant.learning_velocity():.1f} words/week")
    table.add_row("  Mastery", f"{service.accountant.mastery_percentage():.0%}")

    console.print(table)


@app.command()
def show(
    concept_id: int = typer.Argument(..., help="Concept ID"),
) -> None:
    """Show a concept and its progress in both directions."""
    service = get_service()
    concept = service.storage.concepts.concept_by_id(concept_id)
    if concept is None:
        rprint(f"[red]Concept not found: {concept_id}[/red]")
        raise typer.Exit(1)

    rprint(f"[bold]{concept.word}[/bold] → {concept.translation}")
    if concept.level or concept.category:
        rprint(f"[dim]{concept.level or '-'} / {concept.category or '-'}[/dim]")

    for direction in Direction:
        record = service.progress(concept_id, direction)
        rprint(f"\n[cyan]{direction_label(direction)}[/cyan]")
        if record is None:
            rprint("  [dim]not studied yet[/dim]")
            continue
        _print_record(record, service.clock())


def _print_record(record: ProgressRecord, now: datetime) -> None:
    rprint(f"  Phase: {record.phase_name}" + ("  [green](mastered)[/green]" if record.is_mastered else ""))
    rprint(f"  Repetitions: {record.repetitions}  Successful: {record.successful_reviews}  Hard: {record.hard_presses}")
    if record.is_learning:
        rprint(f"  Session position: {record.session_position}")
    else:
        rprint(f"  Interval: {record.interval_days:.1f} day(s)  Ease: {record.ease_factor:.2f}")
        rprint(f"  Next review: {describe_due(record, now)}")
    if not record.is_selected:
        rprint("  [yellow]Not selected[/yellow]")


# ============================================================================
# Main entry point
# ============================================================================


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
