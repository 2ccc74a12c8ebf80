"""
Bulk edit reconciliation for a deck's cards.

A `BulkReconciler` tracks local edits and deletion marks against a snapshot
of a deck's cards and commits the difference to a `RecordStore` as one
logical operation. Updates and deletes are dispatched concurrently and
joined with `asyncio.gather`; the commit succeeds only if every
sub-request does.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from .constants import EDITABLE_CARD_FIELDS
from .exceptions import CommitFailure, CommitInProgressError, ValidationError
from .models import Card, CardUpdate, build_payload
from .store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    """
    Outcome of `BulkReconciler.commit`.

    On failure `error` holds a single CommitFailure and nothing else: the
    caller cannot tell which sub-requests landed.
    """

    updated: Tuple[int, ...] = ()
    deleted: Tuple[int, ...] = ()
    error: Optional[CommitFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BulkReconciler:
    """
    Manages one edit pass over a deck's cards.

    This class is responsible for:
    - Holding the canonical snapshot last read from (or written to) storage.
    - Keeping a mutable working copy and a set of ids marked for deletion.
    - Computing the minimal set of updates and deletes.
    - Committing them concurrently and reporting success or a single failure.
    """

    def __init__(
        self,
        store: RecordStore,
        deck_id: int,
        owner_id: str,
        cards: Iterable[Card] = (),
    ):
        """
        Parameters:
            store (RecordStore): Collaborator that performs owner-scoped writes.
            deck_id (int): Deck whose cards are being edited.
            owner_id (str): Acting identity, passed with every request.
            cards (Iterable[Card]): Initial canonical snapshot.
        """
        self._store = store
        self.deck_id = deck_id
        self.owner_id = owner_id
        self._canonical: List[Card] = list(cards)
        self._original: Dict[int, Card] = {}
        self._working: Optional[Dict[int, Card]] = None
        self._deleted_ids: Set[int] = set()
        self._committing = False
        # Set after a failed commit: storage may be ahead of the local view.
        self.is_stale = False

    # --- Read-only state ---

    @property
    def is_editing(self) -> bool:
        return self._working is not None

    @property
    def is_committing(self) -> bool:
        return self._committing

    @property
    def canonical_cards(self) -> Tuple[Card, ...]:
        return tuple(self._canonical)

    @property
    def visible_cards(self) -> Tuple[Card, ...]:
        """Cards as the user currently sees them."""
        if self._working is None:
            return tuple(self._canonical)
        return tuple(self._working.values())

    @property
    def deleted_ids(self) -> FrozenSet[int]:
        return frozenset(self._deleted_ids)

    # --- Draft lifecycle ---

    def begin_edit(self, cards: Optional[Iterable[Card]] = None) -> None:
        """
        Capture the current card collection as a mutable working copy.

        If `cards` is given it becomes the canonical snapshot first. Calling
        this while already editing keeps the in-progress draft.
        """
        if self.is_editing:
            logger.debug(f"Deck {self.deck_id} is already being edited")
            return
        if cards is not None:
            self._canonical = list(cards)
        self._original = {card.id: card for card in self._canonical}
        self._working = dict(self._original)
        self._deleted_ids = set()
        logger.info(
            f"Began editing {len(self._working)} card(s) in deck {self.deck_id}"
        )

    def edit_field(self, card_id: int, field: str, value: str) -> bool:
        """
        Change one field of one card in the working copy.

        The value is not validated here; `commit` validates the whole batch
        before it sends anything.

        Returns:
            bool: True if the working copy changed. Unknown or deleted cards,
            calls outside edit mode and calls during a commit are ignored.

        Raises:
            ValidationError: If `field` is not an editable card field.
        """
        if field not in EDITABLE_CARD_FIELDS:
            raise ValidationError(
                f"Cannot edit card field '{field}'. "
                f"Allowed: {sorted(EDITABLE_CARD_FIELDS)}."
            )
        if self._working is None or self._committing:
            return False
        card = self._working.get(card_id)
        if card is None:
            return False
        self._working[card_id] = card.model_copy(update={field: value})
        return True

    def mark_deleted(self, card_id: int) -> bool:
        """
        Hide a card from the working copy and queue its deletion.

        Repeated marks are idempotent. Unknown ids are ignored.

        Returns:
            bool: True if the card was newly marked.
        """
        if self._working is None or self._committing:
            return False
        if card_id not in self._working:
            return False
        del self._working[card_id]
        self._deleted_ids.add(card_id)
        return True

    def cancel_edit(self) -> None:
        """Discard the draft and return to the canonical snapshot."""
        if self._committing:
            logger.warning("Ignoring cancel while a commit is in flight")
            return
        self._reset_draft()
        logger.info(f"Cancelled editing deck {self.deck_id}")

    def refresh(self, cards: Iterable[Card]) -> None:
        """
        Replace the canonical snapshot with a fresh read from storage.

        Any draft is discarded, and the model is rebuilt from the new cards.
        """
        if self._committing:
            logger.warning("Ignoring refresh while a commit is in flight")
            return
        self._canonical = list(cards)
        self._reset_draft()
        self.is_stale = False
        logger.debug(
            f"Refreshed deck {self.deck_id} with {len(self._canonical)} card(s)"
        )

    def _reset_draft(self) -> None:
        self._working = None
        self._original = {}
        self._deleted_ids = set()

    # --- Diff & commit ---

    def pending_updates(self) -> Dict[int, Dict[str, str]]:
        """
        Return the changed fields of every edited card still in the working copy.

        Cards that are unchanged relative to the snapshot taken at
        `begin_edit`, and cards marked deleted, are left out.
        """
        if self._working is None:
            return {}
        updates: Dict[int, Dict[str, str]] = {}
        for card_id, card in self._working.items():
            original = self._original[card_id]
            changes = {
                name: getattr(card, name)
                for name in sorted(EDITABLE_CARD_FIELDS)
                if getattr(card, name) != getattr(original, name)
            }
            if changes:
                updates[card_id] = changes
        return updates

    async def commit(self) -> CommitResult:
        """
        Write the draft to storage.

        All updates and deletes are issued concurrently and awaited together.
        On success the working copy becomes the canonical snapshot and edit
        mode ends. If any edited value is invalid nothing is sent. On any
        failure the draft is kept so the user can retry; once a request has
        been sent, the reconciler is also flagged stale.

        Returns:
            CommitResult: `ok` is False when any sub-request failed.

        Raises:
            CommitInProgressError: If another commit has not settled yet.
        """
        if self._committing:
            raise CommitInProgressError(
                f"A commit is already in progress for deck {self.deck_id}."
            )
        if self._working is None:
            logger.debug("Commit requested outside edit mode; nothing to do")
            return CommitResult()

        updates = self.pending_updates()
        deletions = sorted(self._deleted_ids)
        if not updates and not deletions:
            logger.info(f"No changes to commit for deck {self.deck_id}")
            self._accept_draft()
            return CommitResult()

        # The whole batch is validated before any request is sent.
        try:
            payloads = {
                card_id: build_payload(CardUpdate, **changes)
                for card_id, changes in updates.items()
            }
        except ValidationError as e:
            logger.error(f"Rejected edits for deck {self.deck_id}: {e}")
            return CommitResult(
                error=CommitFailure(
                    "Failed to update cards.", original_exception=e
                )
            )

        logger.info(
            f"Committing {len(updates)} update(s) and {len(deletions)} "
            f"delete(s) for deck {self.deck_id}"
        )
        self._committing = True
        try:
            requests = [
                self._store.update_card(
                    card_id, self.deck_id, payload, self.owner_id
                )
                for card_id, payload in payloads.items()
            ]
            requests.extend(
                self._store.delete_card(card_id, self.deck_id, self.owner_id)
                for card_id in deletions
            )
            results = await asyncio.gather(*requests, return_exceptions=True)
        finally:
            self._committing = False

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            for failure in failures:
                logger.error(
                    f"Commit sub-request for deck {self.deck_id} failed: {failure}"
                )
            self.is_stale = True
            return CommitResult(
                error=CommitFailure(
                    "Failed to update cards.", original_exception=failures[0]
                )
            )

        self._accept_draft()
        logger.info(f"Committed changes to deck {self.deck_id}")
        return CommitResult(updated=tuple(updates), deleted=tuple(deletions))

    def _accept_draft(self) -> None:
        if self._working is not None:
            self._canonical = list(self._working.values())
        self._reset_draft()
        self.is_stale = False
