"""
Deck and card operations as the presentation layer calls them.

DeckService validates input, applies plan entitlements and delegates to
the DuckDB record store. Every storage failure propagates to the caller;
nothing is retried here.
"""

import logging
from typing import List, Optional

from .config import Entitlements
from .constants import AI_GENERATED_CARD_COUNT, FREE_PLAN_DECK_LIMIT
from .db.database import DeckDatabase
from .exceptions import (
    DeckLimitError,
    EntitlementError,
    GenerationError,
    OwnershipError,
    ValidationError,
)
from .generator import FlashcardGenerator, build_topic, is_language_learning_deck
from .models import (
    Card,
    CardUpdate,
    Deck,
    DeckUpdate,
    NewCard,
    NewDeck,
    build_payload,
)

logger = logging.getLogger(__name__)


class DeckService:
    """
    Owner-scoped deck and card management.
    """

    def __init__(self, db: DeckDatabase):
        self.db = db

    # --- Decks ---

    def create_deck(
        self,
        owner_id: str,
        title: str,
        description: Optional[str],
        entitlements: Entitlements,
    ) -> Deck:
        """
        Create a deck for `owner_id`.

        Raises:
            DeckLimitError: If the plan carries the deck limit and the owner
                already has the maximum number of decks.
            ValidationError: If the title or description is out of bounds.
        """
        if entitlements.is_deck_limited:
            existing = self.db.count_decks(owner_id)
            if existing >= FREE_PLAN_DECK_LIMIT:
                logger.info(
                    f"Owner {owner_id} hit the deck limit ({existing} decks)"
                )
                raise DeckLimitError(
                    f"You've reached the {FREE_PLAN_DECK_LIMIT} deck limit on "
                    "the free plan. Upgrade to Pro for unlimited decks."
                )

        new_deck = build_payload(
            NewDeck, owner_id=owner_id, title=title, description=description
        )
        return self.db.create_deck(new_deck)

    def get_deck(self, deck_id: int, owner_id: str) -> Deck:
        """
        Raises:
            OwnershipError: If the deck is missing or not owned by `owner_id`.
        """
        deck = self.db.get_deck(deck_id, owner_id)
        if deck is None:
            raise OwnershipError()
        return deck

    def list_decks(self, owner_id: str) -> List[Deck]:
        return self.db.list_decks(owner_id)

    def update_deck(
        self,
        deck_id: int,
        owner_id: str,
        title: str,
        description: Optional[str],
    ) -> Deck:
        update = build_payload(DeckUpdate, title=title, description=description)
        self.db.update_deck(deck_id, owner_id, update)
        return self.get_deck(deck_id, owner_id)

    def delete_deck(self, deck_id: int, owner_id: str) -> None:
        self.db.delete_deck(deck_id, owner_id)

    # --- Cards ---

    def add_card(
        self, deck_id: int, owner_id: str, front: str, back: str
    ) -> Card:
        new_card = build_payload(NewCard, deck_id=deck_id, front=front, back=back)
        return self.db.create_card(new_card, owner_id)

    def list_cards(self, deck_id: int, owner_id: str) -> List[Card]:
        return self.db.list_cards(deck_id, owner_id)

    def update_card(
        self,
        card_id: int,
        deck_id: int,
        owner_id: str,
        front: Optional[str] = None,
        back: Optional[str] = None,
    ) -> None:
        update = build_payload(CardUpdate, front=front, back=back)
        self.db.update_card(card_id, deck_id, update, owner_id)

    def delete_card(self, card_id: int, deck_id: int, owner_id: str) -> None:
        self.db.delete_card(card_id, deck_id, owner_id)

    # --- AI generation ---

    def generate_ai_cards(
        self,
        deck_id: int,
        owner_id: str,
        entitlements: Entitlements,
        generator: FlashcardGenerator,
        card_count: int = AI_GENERATED_CARD_COUNT,
    ) -> List[Card]:
        """
        Ask the generation service for cards about a deck and store them.

        The deck must have a non-blank title and description, which together
        form the topic sent to the generator.

        Returns:
            List[Card]: The cards that were created.

        Raises:
            EntitlementError: If the plan does not include AI generation.
            OwnershipError: If the deck is missing or not owned by `owner_id`.
            ValidationError: If the deck has no title or description, or the
                generator returned unusable cards.
            GenerationError: If the generation service fails.
        """
        if not entitlements.ai_flashcard_generation:
            raise EntitlementError(
                "Generating cards with AI is a Pro feature. "
                "Upgrade to unlock AI-powered flashcard generation."
            )

        deck = self.get_deck(deck_id, owner_id)
        if not deck.title or deck.title.strip() == "":
            raise ValidationError(
                "Please add a title to this deck before generating cards with AI."
            )
        if not deck.description or deck.description.strip() == "":
            raise ValidationError(
                "Please add a description to this deck before generating cards with AI."
            )

        topic = build_topic(deck)
        is_language_learning = is_language_learning_deck(
            deck.title, deck.description
        )
        logger.info(
            f"Generating {card_count} card(s) for deck {deck_id} "
            f"(language learning: {is_language_learning})"
        )
        try:
            generated = generator.generate(
                topic,
                card_count=card_count,
                is_language_learning=is_language_learning,
            )
        except Exception as e:
            logger.exception(f"Flashcard generation failed for deck {deck_id}")
            raise GenerationError(
                "Failed to generate AI cards. Please try again.",
                original_exception=e,
            ) from e

        new_cards = [
            build_payload(
                NewCard, deck_id=deck_id, front=card.question, back=card.answer
            )
            for card in generated
        ]
        return self.db.create_cards_bulk(new_cards, owner_id)
