"""
Pydantic models for decks and cards, plus the enums shared by the
study session and the bulk reconciler.

Stored records (`Deck`, `Card`) are read-side models and carry no length
limits; the write-path payloads (`NewDeck`, `DeckUpdate`, `NewCard`,
`CardUpdate`) enforce the limits from `constants`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from .constants import (
    CARD_TEXT_MAX_LENGTH,
    DECK_DESCRIPTION_MAX_LENGTH,
    DECK_TITLE_MAX_LENGTH,
)
from .exceptions import ValidationError

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class CardOutcome(str, Enum):
    """
    Result recorded for one position of a study session.
    """

    Unanswered = "unanswered"
    Correct = "correct"
    Incorrect = "incorrect"


class SessionState(str, Enum):
    """
    States of the study session machine.
    """

    Empty = "empty"
    Active = "active"
    Finished = "finished"


class Direction(str, Enum):
    """Navigation direction inside a study session."""

    Previous = "previous"
    Next = "next"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Deck(BaseModel):
    """
    A named collection of cards owned by a single identity.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: int = Field(..., description="Deck identifier assigned by storage.")
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Identity of the owner. Immutable after creation.",
    )
    title: str = Field(..., description="Human-readable deck name.")
    description: Optional[str] = Field(
        default=None,
        description="Optional longer description of the deck.",
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        description="UTC timestamp when the deck was created.",
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        description="UTC timestamp of last modification.",
    )


class Card(BaseModel):
    """
    A front/back text pair belonging to exactly one deck.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: int = Field(..., description="Card identifier assigned by storage.")
    deck_id: int = Field(..., description="Identifier of the owning deck.")
    front: str = Field(..., description="Prompt, question or word.")
    back: str = Field(..., description="Answer, definition or translation.")
    sort_order: Optional[int] = Field(
        default=None,
        description="Optional manual ordering within the deck.",
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        description="UTC timestamp when the card was created.",
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        description="UTC timestamp of last modification.",
    )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or value.strip() == "":
        return None
    return value


class NewDeck(BaseModel):
    """Validated payload for creating a deck."""

    model_config = ConfigDict(extra="forbid")

    owner_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=DECK_TITLE_MAX_LENGTH)
    description: Optional[str] = Field(
        default=None, max_length=DECK_DESCRIPTION_MAX_LENGTH
    )

    @field_validator("description")
    @classmethod
    def store_blank_description_as_none(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class DeckUpdate(BaseModel):
    """Validated payload for changing a deck's title and description."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=DECK_TITLE_MAX_LENGTH)
    description: Optional[str] = Field(
        default=None, max_length=DECK_DESCRIPTION_MAX_LENGTH
    )

    @field_validator("description")
    @classmethod
    def store_blank_description_as_none(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class NewCard(BaseModel):
    """Validated payload for creating a card."""

    model_config = ConfigDict(extra="forbid")

    deck_id: int = Field(..., gt=0)
    front: str = Field(..., min_length=1, max_length=CARD_TEXT_MAX_LENGTH)
    back: str = Field(..., min_length=1, max_length=CARD_TEXT_MAX_LENGTH)


class CardUpdate(BaseModel):
    """
    Validated payload for changing a card. Only the fields that are set
    are written; at least one must be present.
    """

    model_config = ConfigDict(extra="forbid")

    front: Optional[str] = Field(
        default=None, min_length=1, max_length=CARD_TEXT_MAX_LENGTH
    )
    back: Optional[str] = Field(
        default=None, min_length=1, max_length=CARD_TEXT_MAX_LENGTH
    )

    @model_validator(mode="after")
    def require_at_least_one_field(self) -> "CardUpdate":
        if self.front is None and self.back is None:
            raise ValueError("A card update must change front or back.")
        return self

    def changes(self) -> dict[str, str]:
        """Return only the fields this update sets."""
        return self.model_dump(exclude_none=True)


class GeneratedCard(BaseModel):
    """One question/answer pair returned by the generation service."""

    model_config = ConfigDict(extra="ignore")

    question: str
    answer: str


def build_payload(model_cls: Type[PayloadT], **data: Any) -> PayloadT:
    """
    Construct a write-path payload, converting pydantic failures into the
    project's ValidationError.

    Raises:
        ValidationError: With a message naming the first offending field.
    """
    try:
        return model_cls(**data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid input")
        if location:
            message = f"Invalid {location}: {message}"
        raise ValidationError(message, original_exception=e) from e
