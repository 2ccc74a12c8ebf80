"""
DuckDB database interactions for flashdeck.
Implements the DeckDatabase facade: owner-scoped CRUD over decks and cards.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Type, Union

import duckdb

from ..exceptions import (
    CardOperationError,
    DatabaseError,
    DeckOperationError,
    MarshallingError,
    OwnershipError,
    ValidationError,
)
from ..models import Card, CardUpdate, Deck, DeckUpdate, NewCard, NewDeck
from . import db_utils
from .connection import ConnectionHandler
from .schema_manager import SchemaManager

logger = logging.getLogger(__name__)


class DeckDatabase:
    """
    Acts as a Facade for the database subsystem, providing a simple, high-level
    interface for all deck and card operations.

    Every operation that touches a deck's cards re-checks that the deck
    belongs to the acting owner. A missing deck and a deck owned by someone
    else both raise the same OwnershipError.

    Each call runs on its own DuckDB cursor, so the facade may be used from
    worker threads (see `flashdeck.store.AsyncDeckStore`).
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        read_only: bool = False,
        testing_mode: bool = False,
    ):
        """
        Create a DeckDatabase backed by the given DuckDB path.

        Args:
            db_path (str | Path): Path to the database file. Use ':memory:' for an in-memory database.
            read_only (bool): If True, open the database in read-only mode.
            testing_mode (bool): If True, table recreation skips the data-loss safety check.
        """
        self._handler = ConnectionHandler(db_path=db_path, read_only=read_only)
        self._schema_manager = SchemaManager(
            self._handler, testing_mode=testing_mode
        )
        logger.info(
            f"DeckDatabase initialized for DB at: {self._handler.db_path_resolved}"  # noqa: E501
        )

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    @property
    def read_only(self) -> bool:
        return self._handler.read_only

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def close_connection(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "DeckDatabase":
        """
        Open the database connection and initialize the schema if a new writable database was created.
        """
        self.get_connection()
        if self._handler.is_new_db and not self._handler.read_only:
            self.initialize_schema()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Ensures the connection is closed on exiting the context."""
        self.close_connection()

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Ensure the database schema is created; optionally recreate tables.
        """
        self._schema_manager.initialize_schema(
            force_recreate_tables=force_recreate_tables
        )

    # --- Internal helpers ---

    @staticmethod
    def _utcnow() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _rollback(cursor: duckdb.DuckDBPyConnection) -> None:
        try:
            cursor.rollback()
            logger.info("Transaction rolled back.")
        except duckdb.Error as rb_err:
            # A failed statement may already have aborted the transaction.
            logger.debug(f"Rollback skipped: {rb_err}")

    @contextmanager
    def _transaction(
        self, error_cls: Type[DatabaseError], action: str
    ) -> Iterator[duckdb.DuckDBPyConnection]:
        """
        Run a block inside a transaction on a fresh cursor.

        duckdb errors are logged and re-raised as `error_cls`; any other
        exception (e.g. OwnershipError) rolls back and propagates unchanged.
        """
        if self.read_only:
            raise error_cls(f"Cannot {action} in read-only mode.")
        cursor = self._handler.new_cursor()
        try:
            cursor.begin()
            yield cursor
            cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Error while trying to {action}: {e}")
            self._rollback(cursor)
            raise error_cls(
                f"Failed to {action}: {e}", original_exception=e
            ) from e
        except Exception:
            self._rollback(cursor)
            raise
        finally:
            cursor.close()

    def _query(
        self,
        sql: str,
        params: Sequence[Any],
        error_cls: Type[DatabaseError],
        action: str,
    ) -> List[dict]:
        cursor = self._handler.new_cursor()
        try:
            cursor.execute(sql, params)
            return db_utils.rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error while trying to {action}: {e}")
            raise error_cls(
                f"Failed to {action}: {e}", original_exception=e
            ) from e
        finally:
            cursor.close()

    @staticmethod
    def _require_owned_deck(
        cursor: duckdb.DuckDBPyConnection, deck_id: int, owner_id: str
    ) -> None:
        row = cursor.execute(
            "SELECT id FROM decks WHERE id = ? AND owner_id = ?;",
            (deck_id, owner_id),
        ).fetchone()
        if row is None:
            logger.warning(
                f"Ownership check failed for deck {deck_id} and owner {owner_id}"
            )
            raise OwnershipError()

    # --- Deck Operations ---

    def create_deck(self, new_deck: NewDeck) -> Deck:
        """
        Insert a deck and return it with its storage-assigned id.

        Raises:
            DeckOperationError: If the insert fails or the row cannot be parsed.
        """
        sql = """
            INSERT INTO decks (owner_id, title, description, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING *;
        """
        params = db_utils.new_deck_to_db_params(new_deck, self._utcnow())
        with self._transaction(DeckOperationError, "create deck") as cursor:
            cursor.execute(sql, params)
            rows = db_utils.rows_to_dicts(cursor)
        try:
            deck = db_utils.db_row_to_deck(rows[0])
        except MarshallingError as e:
            raise DeckOperationError(
                "Failed to parse the created deck.", original_exception=e
            ) from e
        logger.info(f"Created deck {deck.id} for owner {deck.owner_id}")
        return deck

    def get_deck(self, deck_id: int, owner_id: str) -> Optional[Deck]:
        """
        Fetch a deck if it exists and belongs to `owner_id`.

        Returns:
            Deck | None: None both when the deck is missing and when it
            belongs to someone else.
        """
        rows = self._query(
            "SELECT * FROM decks WHERE id = ? AND owner_id = ?;",
            (deck_id, owner_id),
            DeckOperationError,
            f"fetch deck {deck_id}",
        )
        if not rows:
            return None
        try:
            return db_utils.db_row_to_deck(rows[0])
        except MarshallingError as e:
            raise DeckOperationError(
                f"Failed to parse deck {deck_id} from database.",
                original_exception=e,
            ) from e

    def list_decks(self, owner_id: str) -> List[Deck]:
        """Return the owner's decks, oldest first."""
        rows = self._query(
            "SELECT * FROM decks WHERE owner_id = ? ORDER BY created_at, id;",
            (owner_id,),
            DeckOperationError,
            "list decks",
        )
        try:
            return [db_utils.db_row_to_deck(row) for row in rows]
        except MarshallingError as e:
            raise DeckOperationError(
                "Failed to parse decks from database.", original_exception=e
            ) from e

    def count_decks(self, owner_id: str) -> int:
        rows = self._query(
            "SELECT COUNT(*) AS deck_count FROM decks WHERE owner_id = ?;",
            (owner_id,),
            DeckOperationError,
            "count decks",
        )
        return int(rows[0]["deck_count"]) if rows else 0

    def update_deck(
        self, deck_id: int, owner_id: str, update: DeckUpdate
    ) -> None:
        """
        Change a deck's title and description.

        Raises:
            OwnershipError: If the deck is missing or not owned by `owner_id`.
            DeckOperationError: If the database operation fails.
        """
        sql = """
            UPDATE decks SET title = ?, description = ?, updated_at = ?
            WHERE id = ? AND owner_id = ?;
        """
        with self._transaction(
            DeckOperationError, f"update deck {deck_id}"
        ) as cursor:
            self._require_owned_deck(cursor, deck_id, owner_id)
            cursor.execute(
                sql,
                (
                    update.title,
                    update.description,
                    self._utcnow(),
                    deck_id,
                    owner_id,
                ),
            )
        logger.info(f"Updated deck {deck_id}")

    def delete_deck(self, deck_id: int, owner_id: str) -> None:
        """
        Delete a deck and all of its cards in one transaction.

        Raises:
            OwnershipError: If the deck is missing or not owned by `owner_id`.
            DeckOperationError: If the database operation fails.
        """
        with self._transaction(
            DeckOperationError, f"delete deck {deck_id}"
        ) as cursor:
            self._require_owned_deck(cursor, deck_id, owner_id)
            cursor.execute("DELETE FROM cards WHERE deck_id = ?;", (deck_id,))
            cursor.execute(
                "DELETE FROM decks WHERE id = ? AND owner_id = ?;",
                (deck_id, owner_id),
            )
        logger.info(f"Deleted deck {deck_id} and its cards")

    # --- Card Operations ---

    _INSERT_CARD_SQL = """
        INSERT INTO cards (deck_id, front, back, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        RETURNING *;
    """

    def create_card(self, new_card: NewCard, owner_id: str) -> Card:
        """
        Insert one card into a deck owned by `owner_id`.

        Raises:
            OwnershipError: If the deck is missing or not owned by `owner_id`.
            CardOperationError: If the database operation fails.
        """
        return self.create_cards_bulk([new_card], owner_id)[0]

    def create_cards_bulk(
        self, new_cards: Sequence[NewCard], owner_id: str
    ) -> List[Card]:
        """
        Insert several cards into a single deck in one transaction.

        Parameters:
            new_cards (Sequence[NewCard]): Cards to insert; an empty sequence is a no-op.
            owner_id (str): Acting identity; must own the target deck.

        Returns:
            List[Card]: The created cards in insertion order.

        Raises:
            ValidationError: If the cards target more than one deck.
            OwnershipError: If the deck is missing or not owned by `owner_id`.
            CardOperationError: If the database operation fails.
        """
        if not new_cards:
            return []

        deck_id = new_cards[0].deck_id
        if any(card.deck_id != deck_id for card in new_cards):
            raise ValidationError(
                "All cards in a bulk insert must belong to the same deck."
            )

        params_list = db_utils.new_cards_to_db_params_list(
            new_cards, self._utcnow()
        )
        created_rows: List[dict] = []
        with self._transaction(
            CardOperationError, f"create cards in deck {deck_id}"
        ) as cursor:
            self._require_owned_deck(cursor, deck_id, owner_id)
            for params in params_list:
                cursor.execute(self._INSERT_CARD_SQL, params)
                created_rows.extend(db_utils.rows_to_dicts(cursor))

        try:
            cards = [db_utils.db_row_to_card(row) for row in created_rows]
        except MarshallingError as e:
            raise CardOperationError(
                "Failed to parse the created cards.", original_exception=e
            ) from e
        logger.info(f"Created {len(cards)} card(s) in deck {deck_id}")
        return cards

    def list_cards(self, deck_id: int, owner_id: str) -> List[Card]:
        """
        Return a deck's cards, newest first, ties broken by id (descending).

        Raises:
            OwnershipError: If the deck is missing or not owned by `owner_id`.
            CardOperationError: If the query fails or rows cannot be parsed.
        """
        if self.get_deck(deck_id, owner_id) is None:
            raise OwnershipError()
        sql = """
            SELECT c.* FROM cards c
            INNER JOIN decks d ON c.deck_id = d.id
            WHERE c.deck_id = ? AND d.owner_id = ?
            ORDER BY c.created_at DESC, c.id DESC;
        """
        rows = self._query(
            sql, (deck_id, owner_id), CardOperationError, "list cards"
        )
        try:
            return [db_utils.db_row_to_card(row) for row in rows]
        except MarshallingError as e:
            raise CardOperationError(
                "Failed to parse cards from database.", original_exception=e
            ) from e

    def update_card(
        self,
        card_id: int,
        deck_id: int,
        update: CardUpdate,
        owner_id: str,
    ) -> None:
        """
        Write the fields set on `update` to one card of an owned deck.

        Updating a card that no longer exists in the deck is a no-op.

        Raises:
            OwnershipError: If the deck is missing or not owned by `owner_id`.
            CardOperationError: If the database operation fails.
        """
        changes = update.changes()
        assignments = ", ".join(f"{column} = ?" for column in changes)
        sql = (
            f"UPDATE cards SET {assignments}, updated_at = ? "
            "WHERE id = ? AND deck_id = ?;"
        )
        params = (*changes.values(), self._utcnow(), card_id, deck_id)
        with self._transaction(
            CardOperationError, f"update card {card_id}"
        ) as cursor:
            self._require_owned_deck(cursor, deck_id, owner_id)
            cursor.execute(sql, params)
        logger.debug(f"Updated card {card_id} fields {sorted(changes)}")

    def delete_card(self, card_id: int, deck_id: int, owner_id: str) -> None:
        """
        Delete one card from an owned deck. Deleting an absent card is a no-op.

        Raises:
            OwnershipError: If the deck is missing or not owned by `owner_id`.
            CardOperationError: If the database operation fails.
        """
        with self._transaction(
            CardOperationError, f"delete card {card_id}"
        ) as cursor:
            self._require_owned_deck(cursor, deck_id, owner_id)
            cursor.execute(
                "DELETE FROM cards WHERE id = ? AND deck_id = ?;",
                (card_id, deck_id),
            )
        logger.debug(f"Deleted card {card_id} from deck {deck_id}")
