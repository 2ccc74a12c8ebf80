"""Flashdeck - flashcard decks with shuffled study sessions and bulk editing."""

from .models import Card, Deck, CardOutcome, SessionState, Direction
from .db import DeckDatabase
from .study_session import StudySession, SessionStats
from .reconciler import BulkReconciler, CommitResult
from .store import AsyncDeckStore, RecordStore

__all__ = [
    "Card",
    "Deck",
    "CardOutcome",
    "SessionState",
    "Direction",
    "DeckDatabase",
    "StudySession",
    "SessionStats",
    "BulkReconciler",
    "CommitResult",
    "AsyncDeckStore",
    "RecordStore",
]
