import pytest
from unittest.mock import patch, MagicMock, PropertyMock
import duckdb

from flashdeck.db import DeckDatabase
from flashdeck.db import db_utils
from flashdeck.exceptions import (
    CardOperationError,
    DatabaseConnectionError,
    DeckOperationError,
    MarshallingError,
    OwnershipError,
    SchemaInitializationError,
    TransientStorageError,
)
from flashdeck.models import DeckUpdate, NewCard, NewDeck


def _mock_connection(cursor: MagicMock) -> MagicMock:
    """A connection whose cursor() (plain or as a context manager) is `cursor`."""
    cursor.__enter__.return_value = cursor
    connection = MagicMock()
    connection.cursor.return_value = cursor
    type(connection).closed = PropertyMock(return_value=False)
    return connection


@patch('duckdb.connect')
def test_get_connection_raises_custom_error_on_duckdb_error(mock_connect):
    """Tests that get_connection raises DatabaseConnectionError on duckdb.Error."""
    mock_connect.side_effect = duckdb.Error("Connection failed")
    db = DeckDatabase(db_path=':memory:')

    with pytest.raises(DatabaseConnectionError, match="Failed to connect to database") as excinfo:
        db.get_connection()
    # Connection failures are transient from the caller's point of view.
    assert isinstance(excinfo.value, TransientStorageError)


@patch('flashdeck.db.connection.duckdb.connect')
def test_new_cursor_failure_raises_connection_error(mock_duckdb_connect):
    connection = MagicMock()
    connection.cursor.side_effect = duckdb.Error("No more cursors")
    mock_duckdb_connect.return_value = connection

    db = DeckDatabase(db_path=':memory:')
    with pytest.raises(DatabaseConnectionError, match="Failed to open a database cursor"):
        db.list_decks("user-alice")


@patch('flashdeck.db.connection.duckdb.connect')
def test_initialize_schema_raises_custom_error_on_duckdb_error(mock_duckdb_connect):
    """Tests that initialize_schema raises SchemaInitializationError on duckdb.Error."""
    mock_cursor = MagicMock()
    mock_cursor.execute.side_effect = duckdb.Error("Schema creation failed")
    mock_duckdb_connect.return_value = _mock_connection(mock_cursor)

    db = DeckDatabase(db_path=':memory:')

    with pytest.raises(SchemaInitializationError, match="Failed to initialize schema"):
        db.initialize_schema()


@patch('flashdeck.db.schema_manager.logger.error')
@patch('flashdeck.db.connection.duckdb.connect')
def test_initialize_schema_handles_rollback_error(mock_duckdb_connect, mock_logger_error):
    """
    Tests that initialize_schema logs an error if rollback fails after an initial
    schema creation error.
    """
    mock_cursor = MagicMock()
    mock_cursor.execute.side_effect = duckdb.Error("Initial schema error")
    mock_connection = _mock_connection(mock_cursor)
    mock_connection.rollback.side_effect = duckdb.Error("Rollback failed!")
    mock_duckdb_connect.return_value = mock_connection

    db = DeckDatabase(db_path=':memory:')

    with pytest.raises(SchemaInitializationError, match="Failed to initialize schema: Initial schema error"):
        db.initialize_schema()

    assert mock_logger_error.call_count == 2
    final_log_call = str(mock_logger_error.call_args_list[1])
    assert "Failed to rollback transaction: Rollback failed!" in final_log_call


def test_force_recreate_in_read_only_mode_is_refused(tmp_path):
    db_path = tmp_path / "ro.db"
    with DeckDatabase(db_path):
        pass
    db = DeckDatabase(db_path, read_only=True)
    with pytest.raises(DatabaseConnectionError, match="read-only"):
        db.initialize_schema(force_recreate_tables=True)


@patch('flashdeck.db.connection.duckdb.connect')
def test_create_deck_handles_db_error_and_rolls_back(mock_duckdb_connect):
    mock_cursor = MagicMock()
    mock_cursor.execute.side_effect = duckdb.Error("Insert failed")
    mock_duckdb_connect.return_value = _mock_connection(mock_cursor)

    db = DeckDatabase(db_path=':memory:')

    with pytest.raises(DeckOperationError, match="Failed to create deck: Insert failed"):
        db.create_deck(NewDeck(owner_id="user-alice", title="Deck"))

    mock_cursor.rollback.assert_called_once()
    mock_cursor.close.assert_called_once()


@patch('flashdeck.db.connection.duckdb.connect')
def test_failed_rollback_still_raises_operation_error(mock_duckdb_connect, caplog):
    mock_cursor = MagicMock()
    mock_cursor.execute.side_effect = duckdb.Error("Delete failed")
    mock_cursor.rollback.side_effect = duckdb.Error("Rollback failed")
    mock_duckdb_connect.return_value = _mock_connection(mock_cursor)

    db = DeckDatabase(db_path=':memory:')

    with caplog.at_level("DEBUG"):
        with pytest.raises(CardOperationError, match="Failed to delete card 5: Delete failed"):
            db.delete_card(5, 1, "user-alice")

    assert "Rollback skipped: Rollback failed" in caplog.text


@patch('flashdeck.db.connection.duckdb.connect')
def test_ownership_error_rolls_back_and_propagates(mock_duckdb_connect):
    mock_cursor = MagicMock()
    mock_cursor.execute.return_value.fetchone.return_value = None
    mock_duckdb_connect.return_value = _mock_connection(mock_cursor)

    db = DeckDatabase(db_path=':memory:')

    with pytest.raises(OwnershipError):
        db.update_deck(1, "user-mallory", DeckUpdate(title="Mine now"))

    mock_cursor.rollback.assert_called_once()
    mock_cursor.commit.assert_not_called()


@patch('flashdeck.db.connection.duckdb.connect')
def test_list_decks_handles_db_error(mock_duckdb_connect):
    mock_cursor = MagicMock()
    mock_cursor.execute.side_effect = duckdb.Error("DB query failed")
    mock_duckdb_connect.return_value = _mock_connection(mock_cursor)

    db = DeckDatabase(db_path=':memory:')

    with pytest.raises(DeckOperationError, match="Failed to list decks: DB query failed"):
        db.list_decks("user-alice")


def test_list_cards_wraps_marshalling_error(memory_db, owned_deck):
    """
    A MarshallingError while converting rows surfaces as CardOperationError
    carrying the original error.
    """
    memory_db.create_card(
        NewCard(deck_id=owned_deck.id, front="q", back="a"), owned_deck.owner_id
    )
    marshalling_error = MarshallingError("Marshalling failed")

    with patch('flashdeck.db.db_utils.db_row_to_card') as mock_db_row_to_card:
        mock_db_row_to_card.side_effect = marshalling_error
        with pytest.raises(CardOperationError, match="Failed to parse cards from database") as excinfo:
            memory_db.list_cards(owned_deck.id, owned_deck.owner_id)

    assert excinfo.value.original_exception is marshalling_error
    mock_db_row_to_card.assert_called_once()


def test_db_row_to_deck_rejects_bad_row():
    with pytest.raises(MarshallingError, match="Failed to parse deck from DB row"):
        db_utils.db_row_to_deck({"id": "not-a-number", "owner_id": "u", "title": "t"})


def test_db_row_to_card_normalizes_naive_timestamps():
    from datetime import datetime, timezone

    card = db_utils.db_row_to_card(
        {
            "id": 1,
            "deck_id": 2,
            "front": "q",
            "back": "a",
            "sort_order": None,
            "created_at": datetime(2024, 5, 1, 12, 0),
            "updated_at": datetime(2024, 5, 1, 12, 0),
        }
    )
    assert card.created_at.tzinfo == timezone.utc
