"""
The record-store contract consumed by the bulk reconciler, and an adapter
that exposes the blocking DuckDB facade through it.
"""

import asyncio
import logging
from typing import List, Optional, Protocol

from .db.database import DeckDatabase
from .models import Card, CardUpdate, Deck, NewCard, build_payload

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """
    Owner-scoped card storage. Every call re-validates that `deck_id`
    belongs to `owner_id` and raises OwnershipError otherwise.
    """

    async def create_card(
        self, deck_id: int, front: str, back: str, owner_id: str
    ) -> Card: ...

    async def update_card(
        self,
        card_id: int,
        deck_id: int,
        update: CardUpdate,
        owner_id: str,
    ) -> None: ...

    async def delete_card(
        self, card_id: int, deck_id: int, owner_id: str
    ) -> None: ...

    async def list_cards(self, deck_id: int, owner_id: str) -> List[Card]: ...

    async def get_deck(self, deck_id: int, owner_id: str) -> Optional[Deck]: ...


class AsyncDeckStore:
    """
    RecordStore backed by a DeckDatabase.

    New cards are validated here; updates arrive as validated `CardUpdate`
    payloads. Each call runs the blocking database call in a worker thread,
    so concurrent calls from one event loop really do overlap. Errors are
    never retried here.
    """

    def __init__(self, db: DeckDatabase):
        self._db = db

    async def create_card(
        self, deck_id: int, front: str, back: str, owner_id: str
    ) -> Card:
        new_card = build_payload(NewCard, deck_id=deck_id, front=front, back=back)
        return await asyncio.to_thread(self._db.create_card, new_card, owner_id)

    async def update_card(
        self,
        card_id: int,
        deck_id: int,
        update: CardUpdate,
        owner_id: str,
    ) -> None:
        logger.debug(f"Dispatching update for card {card_id}")
        await asyncio.to_thread(
            self._db.update_card, card_id, deck_id, update, owner_id
        )

    async def delete_card(
        self, card_id: int, deck_id: int, owner_id: str
    ) -> None:
        logger.debug(f"Dispatching delete for card {card_id}")
        await asyncio.to_thread(self._db.delete_card, card_id, deck_id, owner_id)

    async def list_cards(self, deck_id: int, owner_id: str) -> List[Card]:
        return await asyncio.to_thread(self._db.list_cards, deck_id, owner_id)

    async def get_deck(self, deck_id: int, owner_id: str) -> Optional[Deck]:
        return await asyncio.to_thread(self._db.get_deck, deck_id, owner_id)
