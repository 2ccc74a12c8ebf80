"""
Interface to the natural-language flashcard generation service.

The service itself is external; this module only defines the call shape
and the deck-side helpers used to build its request.
"""

import re
from typing import List, Optional, Protocol

from .models import Deck, GeneratedCard

LANGUAGE_NAMES = (
    "spanish",
    "french",
    "german",
    "italian",
    "portuguese",
    "russian",
    "chinese",
    "japanese",
    "korean",
    "arabic",
    "hindi",
    "indonesian",
    "dutch",
    "polish",
    "turkish",
    "vietnamese",
    "thai",
    "swedish",
    "norwegian",
    "danish",
    "finnish",
    "greek",
    "hebrew",
    "czech",
    "romanian",
    "hungarian",
    "ukrainian",
)

_TRANSLATION_PATTERN = re.compile(
    r"(from|to)\s+(english|" + "|".join(LANGUAGE_NAMES) + r")",
    re.IGNORECASE,
)
_LEARNING_CONTEXT_PATTERN = re.compile(
    r"\b(learn|learning|translation|translate|vocabulary|vocab)\b",
    re.IGNORECASE,
)


class FlashcardGenerator(Protocol):
    """Given a topic and a count, returns question/answer pairs."""

    def generate(
        self, topic: str, card_count: int, is_language_learning: bool = False
    ) -> List[GeneratedCard]: ...


def is_language_learning_deck(title: str, description: Optional[str]) -> bool:
    """
    Conservatively decide whether a deck is for language learning.

    True for an explicit translation pattern ("Indonesian from English"), or
    for a language name together with learning or translation vocabulary.
    A bare language name is not enough.
    """
    text = f"{title} {description or ''}".lower()

    if _TRANSLATION_PATTERN.search(text):
        return True

    has_language_name = any(name in text for name in LANGUAGE_NAMES)
    has_learning_context = bool(_LEARNING_CONTEXT_PATTERN.search(text))
    return has_language_name and has_learning_context


def build_topic(deck: Deck) -> str:
    """Join the deck's title and description into the generation topic."""
    parts = [deck.title]
    if deck.description:
        parts.append(f"Description: {deck.description}")
    return " - ".join(part for part in parts if part)
