"""
Applies a YAML change file to a deck through the bulk reconciler.

Change file format::

    edits:
      - id: 12
        front: "New question"
      - id: 15
        back: "New answer"
    delete: [17, 18]
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field

from flashdeck.db.database import DeckDatabase
from flashdeck.exceptions import ValidationError
from flashdeck.models import build_payload
from flashdeck.reconciler import BulkReconciler, CommitResult
from flashdeck.store import AsyncDeckStore

logger = logging.getLogger(__name__)


class CardEdit(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    front: Optional[str] = None
    back: Optional[str] = None


class ChangeSet(BaseModel):
    model_config = ConfigDict(extra="forbid")

    edits: List[CardEdit] = Field(default_factory=list)
    delete: List[int] = Field(default_factory=list)


def load_change_file(path: Path) -> ChangeSet:
    """
    Parse a change file.

    Raises:
        ValidationError: If the file cannot be read, is not valid YAML, or
            does not match the change file format.
    """
    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(
            f"Could not read change file {path}: {e}", original_exception=e
        ) from e
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError(
            f"Change file {path} must contain a mapping with 'edits' and/or 'delete'."
        )
    return build_payload(ChangeSet, **raw)


def apply_changes(
    reconciler: BulkReconciler, changes: ChangeSet
) -> List[int]:
    """
    Replay a change set onto an editing reconciler.

    Returns:
        List[int]: Card ids from the change set that matched no visible card.
    """
    ignored: List[int] = []
    for edit in changes.edits:
        applied = False
        for field in ("front", "back"):
            value = getattr(edit, field)
            if value is not None:
                applied = reconciler.edit_field(edit.id, field, value) or applied
        if not applied and (edit.front is not None or edit.back is not None):
            ignored.append(edit.id)
    for card_id in changes.delete:
        if not reconciler.mark_deleted(card_id) and card_id not in reconciler.deleted_ids:
            ignored.append(card_id)
    return ignored


def bulk_edit_logic(
    db: DeckDatabase, deck_id: int, owner_id: str, changes: ChangeSet
) -> Tuple[CommitResult, List[int]]:
    """
    Load the deck's cards, apply `changes` as one draft and commit it.

    Returns:
        tuple: (commit result, ids that matched no card in the deck)
    """
    cards = db.list_cards(deck_id, owner_id)
    reconciler = BulkReconciler(AsyncDeckStore(db), deck_id, owner_id, cards)
    reconciler.begin_edit()
    ignored = apply_changes(reconciler, changes)
    if ignored:
        logger.warning(f"Ignoring unknown card ids for deck {deck_id}: {ignored}")
    result = asyncio.run(reconciler.commit())
    return result, ignored
