"""
Tests for flashdeck.reconciler.BulkReconciler against an in-memory fake store.
"""

import asyncio
from typing import Dict, List, Optional, Set

import pytest

from flashdeck.exceptions import (
    CommitFailure,
    CommitInProgressError,
    OwnershipError,
    TransientStorageError,
    ValidationError,
)
from flashdeck.models import Card, CardUpdate
from flashdeck.reconciler import BulkReconciler, CommitResult


DECK_ID = 1
OWNER = "user-alice"


class FakeStore:
    """Records every request; optionally fails selected card ids."""

    def __init__(self, fail_ids: Optional[Set[int]] = None, error=None):
        self.updates: List[tuple] = []
        self.deletes: List[tuple] = []
        self.fail_ids = fail_ids or set()
        self.error = error or TransientStorageError("storage unavailable")
        self.gate: Optional[asyncio.Event] = None

    async def _maybe_wait(self):
        if self.gate is not None:
            await self.gate.wait()

    async def create_card(self, deck_id, front, back, owner_id):
        raise NotImplementedError

    async def update_card(
        self, card_id: int, deck_id: int, update: CardUpdate, owner_id: str
    ) -> None:
        await self._maybe_wait()
        self.updates.append((card_id, deck_id, update.changes(), owner_id))
        if card_id in self.fail_ids:
            raise self.error

    async def delete_card(self, card_id: int, deck_id: int, owner_id: str) -> None:
        await self._maybe_wait()
        self.deletes.append((card_id, deck_id, owner_id))
        if card_id in self.fail_ids:
            raise self.error

    async def list_cards(self, deck_id, owner_id):
        return []

    async def get_deck(self, deck_id, owner_id):
        return None

    @property
    def request_count(self) -> int:
        return len(self.updates) + len(self.deletes)


@pytest.fixture
def cards(card_factory) -> List[Card]:
    return [card_factory(i, deck_id=DECK_ID) for i in (1, 2, 3)]


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def reconciler(store, cards) -> BulkReconciler:
    rec = BulkReconciler(store, DECK_ID, OWNER, cards)
    rec.begin_edit()
    return rec


def _commit(reconciler: BulkReconciler) -> CommitResult:
    return asyncio.run(reconciler.commit())


class TestDraftLifecycle:
    def test_begin_edit_copies_canonical(self, reconciler, cards):
        assert reconciler.is_editing
        assert reconciler.visible_cards == tuple(cards)
        assert reconciler.pending_updates() == {}

    def test_begin_edit_with_new_cards_replaces_snapshot(self, store, card_factory):
        rec = BulkReconciler(store, DECK_ID, OWNER)
        rec.begin_edit([card_factory(9)])
        assert [c.id for c in rec.canonical_cards] == [9]

    def test_begin_edit_twice_keeps_draft(self, reconciler):
        reconciler.edit_field(1, "front", "changed")
        reconciler.begin_edit()
        assert reconciler.pending_updates() == {1: {"front": "changed"}}

    def test_edit_outside_edit_mode_is_ignored(self, store, cards):
        rec = BulkReconciler(store, DECK_ID, OWNER, cards)
        assert rec.edit_field(1, "front", "x") is False
        assert rec.mark_deleted(1) is False

    def test_edit_unknown_field_raises(self, reconciler):
        with pytest.raises(ValidationError, match="Cannot edit card field"):
            reconciler.edit_field(1, "deck_id", "2")

    def test_edit_unknown_card_is_ignored(self, reconciler):
        assert reconciler.edit_field(99, "front", "x") is False

    def test_edit_does_not_touch_canonical(self, reconciler, cards):
        reconciler.edit_field(1, "back", "new back")
        assert reconciler.canonical_cards[0].back == cards[0].back
        assert reconciler.visible_cards[0].back == "new back"

    def test_mark_deleted_hides_card_and_is_idempotent(self, reconciler):
        assert reconciler.mark_deleted(2) is True
        assert reconciler.mark_deleted(2) is False
        assert 2 not in [c.id for c in reconciler.visible_cards]
        assert reconciler.deleted_ids == frozenset({2})

    def test_edit_after_delete_is_ignored(self, reconciler):
        reconciler.mark_deleted(2)
        assert reconciler.edit_field(2, "front", "x") is False

    def test_cancel_discards_draft(self, reconciler, cards):
        reconciler.edit_field(1, "front", "x")
        reconciler.mark_deleted(3)
        reconciler.cancel_edit()
        assert not reconciler.is_editing
        assert reconciler.visible_cards == tuple(cards)
        assert reconciler.deleted_ids == frozenset()

    def test_refresh_replaces_snapshot_and_discards_draft(
        self, reconciler, card_factory
    ):
        reconciler.edit_field(1, "front", "x")
        reconciler.refresh([card_factory(7)])
        assert not reconciler.is_editing
        assert [c.id for c in reconciler.canonical_cards] == [7]

    def test_pending_updates_lists_changed_fields_only(self, reconciler, cards):
        reconciler.edit_field(1, "front", "new front")
        reconciler.edit_field(2, "back", cards[1].back)
        assert reconciler.pending_updates() == {1: {"front": "new front"}}

    def test_edit_back_to_original_is_not_pending(self, reconciler, cards):
        reconciler.edit_field(1, "front", "tmp")
        reconciler.edit_field(1, "front", cards[0].front)
        assert reconciler.pending_updates() == {}


class TestCommit:
    def test_commit_outside_edit_mode_is_a_noop(self, store, cards):
        rec = BulkReconciler(store, DECK_ID, OWNER, cards)
        result = _commit(rec)
        assert result.ok
        assert store.request_count == 0

    def test_empty_draft_commits_without_requests(self, reconciler, store):
        result = _commit(reconciler)
        assert result.ok
        assert result.updated == () and result.deleted == ()
        assert store.request_count == 0
        assert not reconciler.is_editing

    def test_single_edit_sends_one_update(self, reconciler, store):
        reconciler.edit_field(1, "front", "new front")
        result = _commit(reconciler)
        assert result.ok
        assert result.updated == (1,)
        assert store.updates == [(1, DECK_ID, {"front": "new front"}, OWNER)]
        assert store.deletes == []

    def test_deleting_three_times_sends_one_delete(self, reconciler, store):
        for _ in range(3):
            reconciler.mark_deleted(2)
        result = _commit(reconciler)
        assert result.deleted == (2,)
        assert store.deletes == [(2, DECK_ID, OWNER)]

    def test_edited_then_deleted_card_only_sends_delete(self, reconciler, store):
        reconciler.edit_field(3, "back", "changed")
        reconciler.mark_deleted(3)
        result = _commit(reconciler)
        assert result.ok
        assert store.updates == []
        assert store.deletes == [(3, DECK_ID, OWNER)]

    def test_mixed_commit(self, reconciler, store):
        reconciler.edit_field(1, "front", "f1")
        reconciler.edit_field(1, "back", "b1")
        reconciler.mark_deleted(3)
        reconciler.mark_deleted(2)
        result = _commit(reconciler)
        assert result.ok
        assert store.updates == [(1, DECK_ID, {"back": "b1", "front": "f1"}, OWNER)]
        assert sorted(d[0] for d in store.deletes) == [2, 3]
        assert result.deleted == (2, 3)

    def test_success_makes_working_copy_canonical(self, reconciler):
        reconciler.edit_field(1, "front", "f1")
        reconciler.mark_deleted(2)
        _commit(reconciler)
        assert not reconciler.is_editing
        assert [c.id for c in reconciler.canonical_cards] == [1, 3]
        assert reconciler.canonical_cards[0].front == "f1"
        assert reconciler.is_stale is False

    def test_failure_keeps_draft_and_reports_single_error(self, cards):
        store = FakeStore(fail_ids={2})
        rec = BulkReconciler(store, DECK_ID, OWNER, cards)
        rec.begin_edit()
        rec.edit_field(1, "front", "f1")
        rec.mark_deleted(2)

        result = _commit(rec)

        assert not result.ok
        assert isinstance(result.error, CommitFailure)
        assert str(result.error) == "Failed to update cards."
        assert isinstance(result.error.original_exception, TransientStorageError)
        # Every sub-request was still attempted.
        assert store.request_count == 2
        assert rec.is_editing
        assert rec.is_stale
        assert rec.pending_updates() == {1: {"front": "f1"}}
        assert rec.deleted_ids == frozenset({2})
        assert [c.front for c in rec.canonical_cards] == [c.front for c in cards]

    def test_ownership_failure_is_reported_as_commit_failure(self, cards):
        store = FakeStore(fail_ids={1}, error=OwnershipError())
        rec = BulkReconciler(store, DECK_ID, OWNER, cards)
        rec.begin_edit()
        rec.edit_field(1, "front", "f1")
        result = _commit(rec)
        assert isinstance(result.error.original_exception, OwnershipError)

    def test_retry_after_failure_can_succeed(self, cards):
        store = FakeStore(fail_ids={1})
        rec = BulkReconciler(store, DECK_ID, OWNER, cards)
        rec.begin_edit()
        rec.edit_field(1, "front", "f1")
        assert not _commit(rec).ok

        store.fail_ids.clear()
        result = _commit(rec)
        assert result.ok
        assert rec.is_stale is False
        assert not rec.is_editing

    def test_refresh_clears_stale_flag(self, cards, card_factory):
        store = FakeStore(fail_ids={1})
        rec = BulkReconciler(store, DECK_ID, OWNER, cards)
        rec.begin_edit()
        rec.edit_field(1, "front", "f1")
        _commit(rec)
        rec.refresh([card_factory(1, front="server value")])
        assert rec.is_stale is False
        assert rec.canonical_cards[0].front == "server value"

    def test_invalid_value_rejects_whole_batch_before_sending(
        self, reconciler, store
    ):
        reconciler.edit_field(1, "front", "")
        reconciler.edit_field(2, "back", "valid")
        reconciler.mark_deleted(3)

        result = _commit(reconciler)

        assert not result.ok
        assert str(result.error) == "Failed to update cards."
        assert isinstance(result.error.original_exception, ValidationError)
        assert store.request_count == 0
        assert reconciler.is_editing
        assert reconciler.is_stale is False
        assert reconciler.pending_updates() == {
            1: {"front": ""},
            2: {"back": "valid"},
        }
        assert reconciler.deleted_ids == frozenset({3})


class TestConcurrentCommit:
    def test_second_commit_while_in_flight_raises(self, reconciler, store):
        reconciler.edit_field(1, "front", "f1")

        async def scenario():
            store.gate = asyncio.Event()
            first = asyncio.create_task(reconciler.commit())
            await asyncio.sleep(0)
            assert reconciler.is_committing
            with pytest.raises(CommitInProgressError):
                await reconciler.commit()
            # Edits, cancel and refresh are ignored while in flight.
            assert reconciler.edit_field(2, "front", "late") is False
            assert reconciler.mark_deleted(3) is False
            reconciler.cancel_edit()
            reconciler.refresh([])
            assert reconciler.is_editing
            store.gate.set()
            return await first

        result = asyncio.run(scenario())
        assert result.ok
        assert result.updated == (1,)
        assert store.deletes == []
        assert not reconciler.is_committing
        assert [c.id for c in reconciler.canonical_cards] == [1, 2, 3]

    def test_requests_are_dispatched_concurrently(self, reconciler, store):
        reconciler.edit_field(1, "front", "f1")
        reconciler.mark_deleted(2)
        reconciler.mark_deleted(3)
        started: Dict[str, int] = {"count": 0}

        original_update = store.update_card
        original_delete = store.delete_card

        async def scenario():
            all_started = asyncio.Event()

            async def tracking(call, *args):
                started["count"] += 1
                if started["count"] == 3:
                    all_started.set()
                await all_started.wait()
                return await call(*args)

            store.update_card = lambda *a: tracking(original_update, *a)
            store.delete_card = lambda *a: tracking(original_delete, *a)
            return await asyncio.wait_for(reconciler.commit(), timeout=5)

        result = asyncio.run(scenario())
        assert result.ok
        assert started["count"] == 3
