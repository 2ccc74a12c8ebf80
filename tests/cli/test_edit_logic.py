"""
Tests for flashdeck.cli._edit_logic.
"""

from pathlib import Path

import pytest

from flashdeck.cli._edit_logic import (
    ChangeSet,
    apply_changes,
    bulk_edit_logic,
    load_change_file,
)
from flashdeck.exceptions import OwnershipError, ValidationError
from flashdeck.models import NewCard
from flashdeck.reconciler import BulkReconciler


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "changes.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadChangeFile:
    def test_parses_edits_and_deletes(self, tmp_path):
        path = _write(
            tmp_path,
            "edits:\n  - id: 1\n    front: New\n  - id: 2\n    back: Other\ndelete: [3, 4]\n",
        )
        changes = load_change_file(path)
        assert [e.id for e in changes.edits] == [1, 2]
        assert changes.edits[0].front == "New"
        assert changes.edits[0].back is None
        assert changes.delete == [3, 4]

    def test_empty_file_is_an_empty_change_set(self, tmp_path):
        changes = load_change_file(_write(tmp_path, ""))
        assert changes == ChangeSet()

    def test_unknown_key_is_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="Invalid"):
            load_change_file(_write(tmp_path, "rename: []\n"))

    def test_malformed_yaml_is_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="Could not read change file"):
            load_change_file(_write(tmp_path, "edits: [unclosed\n"))

    def test_missing_file_is_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="Could not read change file"):
            load_change_file(tmp_path / "missing.yaml")


class TestApplyChanges:
    def test_unknown_ids_are_reported(self, card_factory):
        reconciler = BulkReconciler(None, 1, "u", [card_factory(1), card_factory(2)])
        reconciler.begin_edit()
        changes = ChangeSet(
            edits=[{"id": 1, "front": "F"}, {"id": 42, "back": "B"}],
            delete=[2, 2, 77],
        )
        ignored = apply_changes(reconciler, changes)
        assert ignored == [42, 77]
        assert reconciler.pending_updates() == {1: {"front": "F"}}
        assert reconciler.deleted_ids == frozenset({2})

    def test_edit_without_fields_is_not_reported(self, card_factory):
        reconciler = BulkReconciler(None, 1, "u", [card_factory(1)])
        reconciler.begin_edit()
        assert apply_changes(reconciler, ChangeSet(edits=[{"id": 9}])) == []


def test_bulk_edit_logic_commits(memory_db, owned_deck):
    owner = owned_deck.owner_id
    created = memory_db.create_cards_bulk(
        [
            NewCard(deck_id=owned_deck.id, front="q1", back="a1"),
            NewCard(deck_id=owned_deck.id, front="q2", back="a2"),
        ],
        owner,
    )
    changes = ChangeSet(
        edits=[{"id": created[0].id, "back": "changed"}],
        delete=[created[1].id],
    )

    result, ignored = bulk_edit_logic(memory_db, owned_deck.id, owner, changes)

    assert result.ok
    assert ignored == []
    (remaining,) = memory_db.list_cards(owned_deck.id, owner)
    assert remaining.back == "changed"


def test_bulk_edit_logic_checks_ownership(memory_db, owned_deck):
    with pytest.raises(OwnershipError):
        bulk_edit_logic(memory_db, owned_deck.id, "user-bob", ChangeSet())
