"""
Command-line flow for running a study session.
"""

import logging
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from studycore.events import SessionEvent, SessionEventType
from studycore.exceptions import PersistenceFailedOnFinalizeError
from studycore.models import AnswerStatus, Card, CardType, CompletionOutcome
from studycore.session_engine import StudySessionEngine

logger = logging.getLogger(__name__)
console = Console()

KEY_HELP = (
    "[dim][Enter] flip  [y]/[n] knew it / didn't  [s]kip  [h]int  "
    "[b]ack  [r]estart  [x] shuffle  [q]uit[/dim]"
)
TYPED_KEY_HELP = (
    "[dim]Type your answer, or :s skip  :h hint  :b back  :r restart  "
    ":x shuffle  :q quit[/dim]"
)
COMMANDS = {"s", "h", "b", "r", "x", "q"}


def _parse_choices(raw: str, option_count: int) -> Optional[List[int]]:
    """'1' or '1,3' (1-based) to 0-based indexes; None if not a valid choice list."""
    try:
        picked = [int(part) - 1 for part in raw.replace(" ", "").split(",") if part]
    except ValueError:
        return None
    if not picked or any(not 0 <= i < option_count for i in picked):
        return None
    return picked


def _display_card(engine: StudySessionEngine, card: Card) -> None:
    progress = engine.progress()
    console.rule(
        f"[bold]Card {progress['current_card_index'] + 1} of {progress['total_cards']}[/bold]"
        f"  XP {progress['session_xp']}  Streak {progress['streak']}"
    )
    body = card.front
    if card.context:
        body += f"\n\n[italic]{card.context}[/italic]"
    if card.options:
        body += "\n\n" + "\n".join(
            f"  {i + 1}. {option}" for i, option in enumerate(card.options)
        )
    console.print(Panel(body, title="Front", border_style="green"))
    if engine.view.hint_revealed and card.hint:
        console.print(f"[yellow]Hint:[/yellow] {card.hint}")
    answer = engine.session.answer_for(card.card_id)
    if answer != AnswerStatus.UNANSWERED:
        console.print(f"[dim]Already {answer.value}.[/dim]")


def _show_back(card: Card) -> None:
    console.print(Panel(card.back or "-", title="Back", border_style="blue"))


def _grade(engine: StudySessionEngine, card: Card, raw: str) -> Optional[bool]:
    """Correctness of a non-command input, or None if the input is not an answer."""
    if card.card_type == CardType.STANDARD:
        if raw in ("y", "n"):
            return raw == "y"
        return None
    if card.card_type == CardType.TYPE_ANSWER:
        return card.matches_text(raw)
    choices = _parse_choices(raw, len(card.options))
    if choices is None:
        return None
    if card.card_type == CardType.QUIZ:
        if len(choices) != 1:
            return None
        engine.select_option(choices[0])
    else:
        for index in choices:
            engine.toggle_option(index)
    return card.is_correct_choice(choices)


def _report_answer(card: Card, is_correct: bool, xp: int) -> None:
    if is_correct:
        console.print(f"[green]Correct![/green] +{xp} XP")
    else:
        console.print("[red]Not quite.[/red]")
        if card.card_type != CardType.STANDARD:
            _show_back(card)


def _finish_or_advance(engine: StudySessionEngine) -> Optional[CompletionOutcome]:
    """Complete after the last card; otherwise move on."""
    session = engine.session
    if session.current_card_index < session.total_cards - 1:
        engine.advance()
        return None
    try:
        return engine.complete()
    except PersistenceFailedOnFinalizeError as e:
        logger.error(f"Could not complete session: {e}")
        console.print(
            f"[bold red]Could not save the results:[/bold red] {e}\n"
            f"Resume later with [cyan]studycore resume {session.session_id}[/cyan]."
        )
        engine.close()
        return None


def display_outcome(outcome: CompletionOutcome) -> None:
    table = Table(title="Session Complete", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Score", f"{outcome.score}%")
    table.add_row("Correct", str(outcome.correct_count))
    table.add_row("Incorrect", str(outcome.incorrect_count))
    table.add_row("Skipped", str(outcome.skipped_count))
    table.add_row("Time", f"{outcome.duration_seconds // 60}m {outcome.duration_seconds % 60}s")
    table.add_row("XP Earned", str(outcome.xp_earned))
    table.add_row("Cards Learned", str(outcome.cards_learned))
    console.print(table)
    if outcome.leveled_up:
        console.print(f"[bold green]Level up! You reached level {outcome.new_level}.[/bold green]")


def _on_event(event: SessionEvent) -> None:
    if event.type == SessionEventType.PERSIST_FAILED:
        console.print("[dim yellow]Autosave failed; will retry.[/dim yellow]")


def start_study_flow(engine: StudySessionEngine) -> Optional[CompletionOutcome]:
    """
    Run the interactive loop for the engine's open session.

    Returns:
        The completion outcome, or None if the learner quit (the session
        stays resumable) or completion could not be stored.
    """
    unsubscribe = engine.events.subscribe(_on_event)
    engine.enable_autosave()
    try:
        while engine.is_open:
            card = engine.current_card
            _display_card(engine, card)
            typed = card.card_type == CardType.TYPE_ANSWER
            console.print(TYPED_KEY_HELP if typed else KEY_HELP)

            raw = console.input("[bold]> [/bold]").strip()
            command = raw.lower()
            if typed:
                command = command[1:] if command.startswith(":") and command[1:] in COMMANDS else ""
                if not command and not raw:
                    continue

            if command == "q":
                session_id = engine.session.session_id
                engine.close()
                console.print(
                    f"[cyan]Progress saved.[/cyan] Resume with "
                    f"[cyan]studycore resume {session_id}[/cyan]."
                )
                return None
            if command == "h":
                if not card.hint:
                    console.print("[dim]This card has no hint.[/dim]")
                    continue
                cost = engine.reveal_hint()
                console.print(f"[yellow]Hint:[/yellow] {card.hint}" + (f"  (-{cost} XP)" if cost else ""))
                continue
            if command == "s":
                engine.skip(card.card_id)
                outcome = _finish_or_advance(engine)
                if outcome is not None:
                    display_outcome(outcome)
                    return outcome
                continue
            if command == "b":
                engine.undo()
                continue
            if command == "r":
                engine.restart()
                console.print("[cyan]Session restarted.[/cyan]")
                continue
            if command == "x":
                engine.shuffle()
                console.print("[cyan]Cards shuffled. Starting over.[/cyan]")
                continue
            if not raw and not typed:
                if engine.flip():
                    _show_back(card)
                continue

            is_correct = _grade(engine, card, raw if typed else command)
            if is_correct is None:
                console.print("[bold red]Invalid input.[/bold red]")
                continue
            if engine.session.answer_for(card.card_id).is_terminal:
                console.print("[dim]Already answered; moving on.[/dim]")
            else:
                xp = engine.answer(card.card_id, is_correct)
                _report_answer(card, is_correct, xp)
            outcome = _finish_or_advance(engine)
            if outcome is not None:
                display_outcome(outcome)
                return outcome
        return None
    finally:
        engine.disable_autosave()
        unsubscribe()
