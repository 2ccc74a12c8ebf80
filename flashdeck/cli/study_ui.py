"""
Command-line interface for studying a deck.
"""

import logging

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from flashdeck.models import CardOutcome, SessionState
from flashdeck.study_session import SessionStats, StudySession

logger = logging.getLogger(__name__)
console = Console()

COMMAND_PROMPT = (
    "[bold]Enter:flip  c:correct  i:incorrect  n:next  p:previous  "
    "r:restart  q:quit[/bold] "
)

FINISHED_PROMPT = "[bold]r:study again  q:done[/bold] "

_OUTCOME_STYLES = {
    CardOutcome.Correct: "[green]correct[/green]",
    CardOutcome.Incorrect: "[red]incorrect[/red]",
    CardOutcome.Unanswered: "[dim]unanswered[/dim]",
}


def _display_current_card(session: StudySession) -> None:
    """
    Render the progress line and the visible side of the current card.
    """
    card = session.current_card
    if card is None:
        return
    stats = session.stats
    console.rule(
        f"[bold]Card {session.position + 1} of {stats.total}[/bold]  "
        f"Correct: [green]{stats.correct}[/green] · "
        f"Incorrect: [red]{stats.incorrect}[/red]  "
        f"({stats.progress:.0f}% done)"
    )
    outcome = session.outcome_at(session.position)
    subtitle = _OUTCOME_STYLES.get(outcome) if outcome else None
    if session.is_flipped:
        console.print(
            Panel(card.back, title="Back", subtitle=subtitle, border_style="blue")
        )
    else:
        console.print(
            Panel(card.front, title="Front", subtitle=subtitle, border_style="green")
        )


def _display_summary(stats: SessionStats) -> None:
    """Print the end-of-session summary table."""
    console.print("[bold cyan]Session complete[/bold cyan]")
    console.print(
        f"You reviewed {stats.total} card{'' if stats.total == 1 else 's'}. "
        "Great work!"
    )
    table = Table(show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Correct", str(stats.correct))
    table.add_row("Incorrect", str(stats.incorrect))
    table.add_row("Accuracy", f"{stats.accuracy}%")
    console.print(table)


def _handle_command(session: StudySession, command: str) -> bool:
    """
    Apply one user command to the session.

    Returns:
        bool: False when the user asked to quit.
    """
    if command in ("", "f"):
        session.flip()
    elif command == "c":
        session.mark(correct=True)
    elif command == "i":
        session.mark(correct=False)
    elif command == "n":
        session.next()
    elif command == "p":
        session.previous()
    elif command == "r":
        session.restart()
        console.print("[yellow]Session restarted with a new shuffle.[/yellow]")
    elif command == "q":
        return False
    else:
        console.print(f"[bold red]Unknown command: {command!r}[/bold red]")
    return True


def _ask_study_again() -> bool:
    """Prompt on the completion screen. Returns True to start another pass."""
    while True:
        answer = console.input(FINISHED_PROMPT).strip().lower()
        if answer == "r":
            return True
        if answer in ("", "q"):
            return False
        console.print(f"[bold red]Unknown command: {answer!r}[/bold red]")


def start_study_flow(session: StudySession) -> SessionStats:
    """
    Drive a study session from keyboard input until the user quits.

    When a pass finishes, the summary is shown and the user may study the
    deck again with a fresh shuffle.

    Args:
        session: A StudySession over the deck's cards.

    Returns:
        SessionStats: Statistics at the moment the loop ended.
    """
    console.print("[bold cyan]Starting study session...[/bold cyan]")
    if session.state is SessionState.Empty:
        console.print(
            "[bold yellow]This deck doesn't have any cards yet.[/bold yellow]"
        )
        console.print("Add a few cards first, then come back to study.")
        return session.stats

    while True:
        while session.state is SessionState.Active:
            _display_current_card(session)
            command = console.input(COMMAND_PROMPT).strip().lower()
            if not _handle_command(session, command):
                console.print("[bold cyan]Study session ended early.[/bold cyan]")
                return session.stats

        _display_summary(session.stats)
        if not _ask_study_again():
            return session.stats
        session.restart()
        logger.info("Starting another pass over the deck")
        console.print("[yellow]Studying again with a new shuffle.[/yellow]")
