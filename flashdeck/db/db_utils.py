"""
Utility functions for data marshalling between Pydantic models and database formats.  # noqa: E501
This module keeps the core database logic free of conversion details.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence, Tuple

import duckdb
from pydantic import ValidationError

from ..exceptions import MarshallingError
from ..models import Card, Deck, NewCard, NewDeck


def rows_to_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Convert cursor results to list of dictionaries using column names."""
    rows = cursor.fetchall()
    if not rows:
        return []
    description = cursor.description
    if description is None:
        return []
    columns = [desc[0] for desc in description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


def _ensure_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def db_row_to_deck(row_dict: Dict[str, Any]) -> Deck:
    """
    Create a Deck model from a database row dictionary.

    Raises:
        MarshallingError: If the row cannot be validated into a Deck.
    """
    data = row_dict.copy()
    for key in ("created_at", "updated_at"):
        if isinstance(data.get(key), datetime):
            data[key] = _ensure_utc(data[key])
    try:
        return Deck(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse deck from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def db_row_to_card(row_dict: Dict[str, Any]) -> Card:
    """
    Create a Card model from a database row dictionary.

    Raises:
        MarshallingError: If the row cannot be validated into a Card.
    """
    data = row_dict.copy()
    for key in ("created_at", "updated_at"):
        if isinstance(data.get(key), datetime):
            data[key] = _ensure_utc(data[key])
    try:
        return Card(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse card from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def new_deck_to_db_params(new_deck: NewDeck, now: datetime) -> Tuple:
    """
    Returns:
        tuple: (owner_id, title, description, created_at, updated_at)
    """
    return (
        new_deck.owner_id,
        new_deck.title,
        new_deck.description,
        now,
        now,
    )


def new_cards_to_db_params_list(
    new_cards: Sequence[NewCard], now: datetime
) -> List[Tuple]:
    """
    Convert card payloads into tuples suitable for bulk insertion.

    Returns:
        List[Tuple]: One tuple per card with fields in the order
        (deck_id, front, back, created_at, updated_at).
    """
    return [
        (card.deck_id, card.front, card.back, now, now) for card in new_cards
    ]
