import sys
import pytest
from pathlib import Path
from typing import Generator, List
from datetime import datetime, timezone

from flashdeck.models import Card, Deck, NewDeck
from flashdeck.db import DeckDatabase


OWNER = "user-alice"
OTHER_OWNER = "user-bob"


# each test runs on cwd to its temp dir
@pytest.fixture(autouse=True)
def go_to_tmpdir(request):
    """
    Temporarily change the working directory to the test's tmpdir.

    Keeps a stray `.env` in the repository from leaking FLASHDECK_* settings
    into tests.
    """
    tmpdir = request.getfixturevalue("tmpdir")
    sys.path.insert(0, str(tmpdir))
    with tmpdir.as_cwd():
        yield


@pytest.fixture(autouse=True)
def clear_flashdeck_env(monkeypatch):
    """Start every test with no FLASHDECK_* environment variables set."""
    import os

    for key in list(os.environ):
        if key.startswith("FLASHDECK_"):
            monkeypatch.delenv(key, raising=False)


# --- Database Fixtures ---
@pytest.fixture
def db_path_memory() -> str:
    return ":memory:"


@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    return tmp_path / "test_flashdeck.db"


@pytest.fixture(params=["memory", "file"])
def db_manager(
    request, db_path_memory: str, db_path_file: Path
) -> Generator[DeckDatabase, None, None]:
    """
    Provide a DeckDatabase instance, either in-memory or file-backed, and
    close it on teardown.
    """
    if request.param == "memory":
        db_man = DeckDatabase(db_path_memory)
    else:
        db_man = DeckDatabase(db_path_file)
    try:
        yield db_man
    finally:
        db_man.close_connection()
        if request.param == "file" and db_path_file.exists():
            try:
                db_path_file.unlink()
            except OSError as e:
                import logging

                logging.warning(
                    f"Error removing temporary DB file in test fixture teardown: {e}"
                )


@pytest.fixture
def initialized_db_manager(db_manager: DeckDatabase) -> DeckDatabase:
    db_manager.initialize_schema()
    return db_manager


@pytest.fixture
def memory_db() -> Generator[DeckDatabase, None, None]:
    """A single initialized in-memory database, for tests that need only one backend."""
    db = DeckDatabase(":memory:")
    db.initialize_schema()
    try:
        yield db
    finally:
        db.close_connection()


@pytest.fixture
def owned_deck(memory_db: DeckDatabase) -> Deck:
    return memory_db.create_deck(
        NewDeck(owner_id=OWNER, title="Capitals", description="World capitals")
    )


# --- Model Fixtures ---
def make_card(card_id: int, deck_id: int = 1, front=None, back=None) -> Card:
    """Build a stored Card without touching the database."""
    return Card(
        id=card_id,
        deck_id=deck_id,
        front=front if front is not None else f"Front {card_id}",
        back=back if back is not None else f"Back {card_id}",
        created_at=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
        updated_at=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_cards() -> List[Card]:
    return [make_card(i) for i in range(1, 6)]


@pytest.fixture
def card_factory():
    """Expose make_card to tests as a fixture."""
    return make_card
