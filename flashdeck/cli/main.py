"""
CLI entry point for flashdeck.
"""

# Standard library imports
import logging
from pathlib import Path
from typing import NoReturn, Optional

# Third-party imports
import typer
from rich.console import Console
from rich.table import Table

# Local application imports
from flashdeck.cli._edit_logic import bulk_edit_logic, load_change_file
from flashdeck.cli.study_ui import start_study_flow
from flashdeck.config import (
    Settings,
    get_settings,
    resolve_entitlements,
    resolve_identity,
)
from flashdeck.db.database import DeckDatabase
from flashdeck.deck_service import DeckService
from flashdeck.exceptions import FlashdeckError
from flashdeck.models import Deck
from flashdeck.study_session import StudySession


console = Console()
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="flashdeck",
    help="Flashdeck: flashcard decks with shuffled study sessions.",
    add_completion=False,
    rich_markup_mode="markdown",
)

deck_app = typer.Typer(name="deck", help="Create and manage decks.")
card_app = typer.Typer(name="card", help="Add and bulk-edit cards in a deck.")
app.add_typer(deck_app)
app.add_typer(card_app)


# ---------------------------------------------------------------------------
# Helpers for resolving --db and --user
# ---------------------------------------------------------------------------


_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB database file. "
    "Falls back to FLASHDECK_DB_PATH or ~/.flashdeck/flashdeck.db.",
)

_user_option = typer.Option(  # noqa: B008
    None,
    "--user",
    "-u",
    help="Acting user id. Falls back to the FLASHDECK_USER_ID env var.",
)


def _resolve_db_path(db: Optional[Path], settings: Settings) -> Path:
    """Resolve the db path from the CLI flag, falling back to settings."""
    if db is not None:
        return db
    return settings.db_path


def _require_identity(user: Optional[str], settings: Settings) -> str:
    """Resolve the acting identity. Exits when unauthenticated."""
    identity = resolve_identity(settings, override=user)
    if identity is None:
        console.print(
            "[bold red]Error: you are not signed in. Pass --user "
            "(or set the FLASHDECK_USER_ID environment variable).[/bold red]"
        )
        raise typer.Exit(code=1)
    return identity


def _fail(e: FlashdeckError) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {e}")
    raise typer.Exit(code=1) from e


def _open_db(db: Optional[Path], settings: Settings) -> DeckDatabase:
    db_path = _resolve_db_path(db, settings)
    return DeckDatabase(db_path=db_path, testing_mode=settings.testing_mode)


# ---------------------------------------------------------------------------
# Root callback
# ---------------------------------------------------------------------------


@app.callback()
def root(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
):
    """
    Configure logging for the invoked command.

    The level comes from FLASHDECK_LOG_LEVEL unless --verbose asks for DEBUG.
    """
    level = "DEBUG" if verbose else get_settings().log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Deck commands
# ---------------------------------------------------------------------------


def _print_deck(deck: Deck, card_count: Optional[int] = None) -> None:
    table = Table(title=f"Deck {deck.id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Title", deck.title)
    table.add_row("Description", deck.description or "")
    if card_count is not None:
        table.add_row("Cards", str(card_count))
    table.add_row("Updated", deck.updated_at.isoformat(timespec="seconds"))
    console.print(table)


@deck_app.command("create")
def deck_create(
    title: str = typer.Argument(..., help="Deck title."),  # noqa: B008
    description: Optional[str] = typer.Option(  # noqa: B008
        None, "--description", "-d", help="Optional deck description."
    ),
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """Create a new deck."""
    settings = get_settings()
    owner_id = _require_identity(user, settings)
    try:
        with _open_db(db, settings) as db_inst:
            deck = DeckService(db_inst).create_deck(
                owner_id,
                title,
                description,
                resolve_entitlements(settings),
            )
    except FlashdeckError as e:
        _fail(e)
    console.print(
        f"[bold green]Created deck {deck.id}:[/bold green] {deck.title}"
    )


@deck_app.command("list")
def deck_list(
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """List your decks."""
    settings = get_settings()
    owner_id = _require_identity(user, settings)
    try:
        with _open_db(db, settings) as db_inst:
            decks = DeckService(db_inst).list_decks(owner_id)
    except FlashdeckError as e:
        _fail(e)

    if not decks:
        console.print(
            "[yellow]No decks yet. Create one with "
            "`flashdeck deck create`.[/yellow]"
        )
        return

    table = Table(title="Decks")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="magenta")
    table.add_column("Description")
    for deck in decks:
        table.add_row(str(deck.id), deck.title, deck.description or "")
    console.print(table)


@deck_app.command("show")
def deck_show(
    deck_id: int = typer.Argument(..., help="Deck id."),  # noqa: B008
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """Show a deck and its cards, newest first."""
    settings = get_settings()
    owner_id = _require_identity(user, settings)
    try:
        with _open_db(db, settings) as db_inst:
            service = DeckService(db_inst)
            deck = service.get_deck(deck_id, owner_id)
            cards = service.list_cards(deck_id, owner_id)
    except FlashdeckError as e:
        _fail(e)

    _print_deck(deck, card_count=len(cards))
    if not cards:
        console.print("[yellow]This deck has no cards yet.[/yellow]")
        return
    table = Table(title="Cards")
    table.add_column("ID", style="cyan")
    table.add_column("Front", style="green")
    table.add_column("Back", style="blue")
    for card in cards:
        table.add_row(str(card.id), card.front, card.back)
    console.print(table)


@deck_app.command("edit")
def deck_edit(
    deck_id: int = typer.Argument(..., help="Deck id."),  # noqa: B008
    title: Optional[str] = typer.Option(  # noqa: B008
        None, "--title", "-t", help="New title."
    ),
    description: Optional[str] = typer.Option(  # noqa: B008
        None,
        "--description",
        "-d",
        help="New description. Pass an empty string to clear it.",
    ),
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """Change a deck's title and/or description."""
    settings = get_settings()
    owner_id = _require_identity(user, settings)
    if title is None and description is None:
        console.print(
            "[bold red]Error: pass --title and/or --description.[/bold red]"
        )
        raise typer.Exit(code=1)
    try:
        with _open_db(db, settings) as db_inst:
            service = DeckService(db_inst)
            current = service.get_deck(deck_id, owner_id)
            deck = service.update_deck(
                deck_id,
                owner_id,
                title if title is not None else current.title,
                description if description is not None else current.description,
            )
    except FlashdeckError as e:
        _fail(e)
    console.print(f"[bold green]Updated deck {deck.id}.[/bold green]")
    _print_deck(deck)


@deck_app.command("delete")
def deck_delete(
    deck_id: int = typer.Argument(..., help="Deck id."),  # noqa: B008
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Bypass confirmation prompt."
    ),
):
    """Delete a deck together with all of its cards."""
    settings = get_settings()
    owner_id = _require_identity(user, settings)
    try:
        with _open_db(db, settings) as db_inst:
            service = DeckService(db_inst)
            deck = service.get_deck(deck_id, owner_id)
            if not yes:
                confirmed = typer.confirm(
                    f"Delete deck '{deck.title}' and all of its cards?"
                )
                if not confirmed:
                    console.print("Delete operation cancelled.")
                    raise typer.Exit()
            service.delete_deck(deck_id, owner_id)
    except FlashdeckError as e:
        _fail(e)
    console.print(f"[bold green]Deleted deck {deck_id}.[/bold green]")


# ---------------------------------------------------------------------------
# Card commands
# ---------------------------------------------------------------------------


@card_app.command("add")
def card_add(
    deck_id: int = typer.Argument(..., help="Deck id."),  # noqa: B008
    front: str = typer.Option(..., "--front", "-f", help="Card front."),  # noqa: B008
    back: str = typer.Option(..., "--back", "-b", help="Card back."),  # noqa: B008
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """Add one card to a deck."""
    settings = get_settings()
    owner_id = _require_identity(user, settings)
    try:
        with _open_db(db, settings) as db_inst:
            card = DeckService(db_inst).add_card(deck_id, owner_id, front, back)
    except FlashdeckError as e:
        _fail(e)
    console.print(
        f"[bold green]Added card {card.id} to deck {deck_id}.[/bold green]"
    )


@card_app.command("bulk-edit")
def card_bulk_edit(
    deck_id: int = typer.Argument(..., help="Deck id."),  # noqa: B008
    changes_file: Path = typer.Argument(  # noqa: B008
        ...,
        help="YAML file with `edits` ([{id, front?, back?}]) and `delete` ([ids]).",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """
    Apply several card edits and deletions to a deck in one commit.

    Edits to cards that are also deleted are dropped. Nothing is written
    when the file describes no effective change.
    """
    settings = get_settings()
    owner_id = _require_identity(user, settings)
    try:
        changes = load_change_file(changes_file)
        with _open_db(db, settings) as db_inst:
            result, ignored = bulk_edit_logic(db_inst, deck_id, owner_id, changes)
    except FlashdeckError as e:
        _fail(e)

    for card_id in ignored:
        console.print(
            f"[yellow]Skipped card {card_id}: not found in deck {deck_id}.[/yellow]"
        )
    if not result.ok:
        _fail(result.error)
    if not result.updated and not result.deleted:
        console.print("[green]No changes to save.[/green]")
        return
    console.print("[bold green]Cards updated successfully.[/bold green]")
    console.print(
        f"- [green]{len(result.updated)}[/green] card(s) updated, "
        f"[red]{len(result.deleted)}[/red] card(s) deleted."
    )


# ---------------------------------------------------------------------------
# Study command
# ---------------------------------------------------------------------------


@app.command()
def study(
    deck_id: int = typer.Argument(..., help="Deck id to study."),  # noqa: B008
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """Study a deck's cards in a freshly shuffled order."""
    settings = get_settings()
    owner_id = _require_identity(user, settings)
    try:
        with _open_db(db, settings) as db_inst:
            service = DeckService(db_inst)
            deck = service.get_deck(deck_id, owner_id)
            cards = service.list_cards(deck_id, owner_id)
    except FlashdeckError as e:
        _fail(e)

    console.print(f"Studying deck: [bold cyan]{deck.title}[/bold cyan]")
    start_study_flow(StudySession(cards))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """
    Run the CLI application.

    If an unexpected exception occurs, print a bold red error message to the console and exit the process with status code 1.
    """
    try:
        app()
    except Exception as e:
        console.print(f"[bold red]UNEXPECTED ERROR: {e}[/bold red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
