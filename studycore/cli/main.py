"""
CLI entry point for studycore.
"""

# Standard library imports
import os
import random
from pathlib import Path
from typing import List, Optional
from uuid import UUID

# Third-party imports
import typer
from rich.console import Console
from rich.table import Table

# Local application imports
from studycore.cli.study_ui import start_study_flow
from studycore.clock import SystemClock
from studycore.db.database import StudyDatabase
from studycore.exceptions import (
    DatabaseError,
    InvalidSelectionError,
    InvariantViolationError,
    NoCardsAvailableError,
    StudyCoreError,
)
from studycore.models import SelectionMethod, SessionIdentity, SessionStatus
from studycore.parser import YAMLDeckParser
from studycore.selector import SelectionOptions
from studycore.session_engine import StudySessionEngine
from studycore.yaml_models import YAMLProcessingError

console = Console()

app = typer.Typer(
    name="studycore",
    help="Studycore: flashcard study sessions with SM-2 scheduling and XP.",
    add_completion=False,
    rich_markup_mode="markdown",
)

DEFAULT_USER = "local"


# ---------------------------------------------------------------------------
# Helpers for resolving --db and --user (STUDYCORE_DB / STUDYCORE_USER)
# ---------------------------------------------------------------------------


def _resolve_db_path(db: Optional[Path]) -> Path:
    """Resolve db path from CLI flag or STUDYCORE_DB envvar. Exits on missing."""
    if db is not None:
        return db
    env_val = os.environ.get("STUDYCORE_DB")
    if env_val:
        return Path(env_val)
    console.print(
        "[bold red]Error: --db is required "
        "(or set the STUDYCORE_DB environment variable).[/bold red]"
    )
    raise typer.Exit(code=1)


def _identity(user: Optional[str], guest_token: Optional[str] = None) -> SessionIdentity:
    if guest_token:
        try:
            return SessionIdentity.for_guest(guest_token)
        except ValueError as e:
            console.print(f"[bold red]Invalid guest token:[/bold red] {e}")
            raise typer.Exit(code=1) from e
    return SessionIdentity.for_user(user or DEFAULT_USER)


def _parse_session_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError as e:
        console.print(f"[bold red]Error: '{raw}' is not a valid session id.[/bold red]")
        raise typer.Exit(code=1) from e


# Common typer options reused across commands
_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB database file. Falls back to STUDYCORE_DB env var.",
    envvar="STUDYCORE_DB",
)

_user_option = typer.Option(  # noqa: B008
    None,
    "--user",
    help="User id to study as. Falls back to STUDYCORE_USER env var.",
    envvar="STUDYCORE_USER",
)

_guest_token_option = typer.Option(  # noqa: B008
    None,
    "--guest-token",
    help="Guest token printed when a guest session was started.",
)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


@app.command("import-deck")
def import_deck(
    file: Path = typer.Argument(..., help="YAML deck file to import."),  # noqa: B008
    db: Optional[Path] = _db_option,
):
    """
    Import (or re-import) a YAML deck file. Cards keep their ids across
    re-imports, so review progress is preserved.
    """
    db_path = _resolve_db_path(db)
    try:
        parsed = YAMLDeckParser().parse_file(file)
    except YAMLProcessingError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    if parsed.errors:
        console.print("[bold red]Errors encountered during YAML processing:[/bold red]")
        for error in parsed.errors:
            console.print(f"- {error}")
    if not parsed.cards:
        console.print("[yellow]No valid cards found to import.[/yellow]")
        raise typer.Exit(code=1)

    try:
        with StudyDatabase(db_path=db_path) as store:
            store.upsert_deck(parsed.deck)
            count = store.upsert_cards_batch(parsed.cards)
    except DatabaseError as e:
        console.print(f"[bold red]Database Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    console.print(
        f"[bold green]Imported deck '{parsed.deck.deck_id}':[/bold green] "
        f"{count} cards ingested or updated."
    )


# ---------------------------------------------------------------------------
# Decks & stats
# ---------------------------------------------------------------------------


@app.command()
def decks(
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """List decks with their card and due counts."""
    db_path = _resolve_db_path(db)
    try:
        with StudyDatabase(db_path=db_path) as store:
            rows = store.get_deck_stats(user or DEFAULT_USER, SystemClock().today())
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e

    if not rows:
        console.print("[yellow]No decks found. Import one with `import-deck`.[/yellow]")
        return

    table = Table(title="Decks")
    table.add_column("Deck", style="cyan")
    table.add_column("Title")
    table.add_column("Difficulty", style="magenta")
    table.add_column("Cards", style="magenta")
    table.add_column("Due", style="yellow")
    for row in rows:
        table.add_row(
            row["deck_id"],
            row["title"],
            row["difficulty"],
            str(row["card_count"]),
            str(row["due_count"]),
        )
    console.print(table)


@app.command()
def stats(
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """Show the user's level, XP and review status counts."""
    db_path = _resolve_db_path(db)
    user_id = user or DEFAULT_USER
    try:
        with StudyDatabase(db_path=db_path) as store:
            totals = store.get_user_totals(user_id)
            status_counts = store.get_review_status_counts(user_id)
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e

    overall = Table(title=f"Stats for {user_id}", show_header=False)
    overall.add_column("Metric", style="cyan")
    overall.add_column("Value", style="magenta")
    overall.add_row("Level", str(totals.level))
    overall.add_row("XP", f"{totals.current_xp} / {totals.next_level_xp}")
    overall.add_row("Total XP", str(totals.total_xp))
    console.print(overall)

    states = Table(title="Review Status")
    states.add_column("Status", style="cyan")
    states.add_column("Cards", style="magenta")
    for status, count in status_counts.items():
        states.add_row(status.value, str(count))
    console.print(states)


# ---------------------------------------------------------------------------
# Study sessions
# ---------------------------------------------------------------------------


def _build_engine(store: StudyDatabase, seed: Optional[int]) -> StudySessionEngine:
    return StudySessionEngine(store, rng=random.Random(seed))


@app.command()
def study(
    deck_id: str = typer.Argument(..., help="Deck to study."),  # noqa: B008
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
    method: SelectionMethod = typer.Option(  # noqa: B008
        SelectionMethod.ALL, "--method", "-m", help="Card selection strategy."
    ),
    count: Optional[int] = typer.Option(  # noqa: B008
        None, "--count", "-n", min=1, help="Maximum number of cards."
    ),
    card_ids: Optional[List[str]] = typer.Option(  # noqa: B008
        None, "--card-id", help="Card id for --method manual (repeatable)."
    ),
    include_mastered: bool = typer.Option(  # noqa: B008
        False, "--include-mastered", help="Also select mastered cards."
    ),
    exclude_active: bool = typer.Option(  # noqa: B008
        False,
        "--exclude-active",
        help="Skip cards that are already in another open session.",
    ),
    guest: bool = typer.Option(  # noqa: B008
        False, "--guest", help="Study as a guest; nothing is scheduled for you."
    ),
    seed: Optional[int] = typer.Option(  # noqa: B008
        None, "--seed", help="Seed for reproducible card order."
    ),
):
    """Create a study session on a deck and run it interactively."""
    db_path = _resolve_db_path(db)
    identity = SessionIdentity.for_guest() if guest else _identity(user)
    options = SelectionOptions(
        target_count=count,
        explicit_card_ids=card_ids or None,
        exclude_mastered=not include_mastered,
    )
    try:
        with StudyDatabase(db_path=db_path) as store:
            engine = _build_engine(store, seed)
            created = engine.create(
                deck_id,
                identity,
                method=method,
                options=options,
                exclude_active_session_cards=exclude_active,
            )
            console.print(
                f"Starting [bold cyan]{created.session.title}[/bold cyan] "
                f"({created.available_count} available, {created.mastered_count} mastered)"
            )
            if identity.is_guest:
                console.print(f"[dim]Guest token: {identity.value}[/dim]")
            start_study_flow(engine)
    except (NoCardsAvailableError, InvalidSelectionError) as e:
        console.print(f"[bold yellow]{e}[/bold yellow]")
        raise typer.Exit(code=1) from e
    except StudyCoreError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e


@app.command()
def resume(
    session_id: str = typer.Argument(..., help="Session to resume."),  # noqa: B008
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
    guest_token: Optional[str] = _guest_token_option,
    seed: Optional[int] = typer.Option(None, "--seed"),  # noqa: B008
):
    """Resume an unfinished session where the learner left off."""
    db_path = _resolve_db_path(db)
    identity = _identity(user, guest_token)
    sid = _parse_session_id(session_id)
    try:
        with StudyDatabase(db_path=db_path) as store:
            engine = _build_engine(store, seed)
            resumed = engine.resume_by_id(sid, identity)
            console.print(f"Resuming [bold cyan]{resumed.title}[/bold cyan]")
            start_study_flow(engine)
    except (InvariantViolationError, NoCardsAvailableError) as e:
        console.print(f"[bold yellow]{e}[/bold yellow]")
        raise typer.Exit(code=1) from e
    except StudyCoreError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e


@app.command()
def sessions(
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
    guest_token: Optional[str] = _guest_token_option,
    all_sessions: bool = typer.Option(  # noqa: B008
        False, "--all", help="Include completed and abandoned sessions."
    ),
):
    """List open sessions (or every session with --all)."""
    db_path = _resolve_db_path(db)
    identity = _identity(user, guest_token)
    statuses = None if all_sessions else [SessionStatus.CREATED, SessionStatus.IN_PROGRESS]
    try:
        with StudyDatabase(db_path=db_path) as store:
            found = store.list_sessions(identity, statuses)
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e

    if not found:
        console.print("[yellow]No sessions found.[/yellow]")
        return

    table = Table(title="Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Title")
    table.add_column("Deck")
    table.add_column("Status", style="magenta")
    table.add_column("Answered", style="yellow")
    table.add_column("Last Activity")
    for session in found:
        correct, incorrect, skipped, _ = session.answer_counts()
        last = session.last_activity_at or session.started_at
        table.add_row(
            str(session.session_id),
            session.title,
            session.deck_id or "(deleted)",
            session.status.value,
            f"{correct + incorrect + skipped}/{session.total_cards}",
            last.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command()
def abandon(
    session_id: str = typer.Argument(..., help="Session to abandon."),  # noqa: B008
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
    guest_token: Optional[str] = _guest_token_option,
):
    """Abandon an open session. Nothing is scheduled."""
    db_path = _resolve_db_path(db)
    identity = _identity(user, guest_token)
    sid = _parse_session_id(session_id)
    try:
        with StudyDatabase(db_path=db_path) as store:
            store.abandon_session(sid, identity)
    except DatabaseError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    console.print(f"[green]Session {sid} abandoned.[/green]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the CLI application, turning unexpected errors into exit code 1."""
    try:
        app()
    except Exception as e:
        console.print(f"[bold red]UNEXPECTED ERROR: {e}[/bold red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
