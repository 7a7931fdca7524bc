"""Tests for the decision store and its repository."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from prune.decisions import (
    DecisionFile,
    DecisionPersistenceError,
    DecisionRepository,
    DecisionState,
    DecisionStore,
    DecisionStoreError,
    MissingDecisionsError,
    ReviewState,
)


def _store(tmp_path: Path) -> DecisionStore:
    return DecisionStore(DecisionRepository(tmp_path / "decisions.json"))


def test_missing_file_loads_as_empty(tmp_path: Path) -> None:
    store = _store(tmp_path)

    assert len(store) == 0
    assert store.state_of("p1") is ReviewState.UNREVIEWED
    assert not store.repository.exists()


def test_repository_load_raises_when_file_missing(tmp_path: Path) -> None:
    with pytest.raises(MissingDecisionsError):
        DecisionRepository(tmp_path / "absent.json").load()


def test_decide_is_idempotent(tmp_path: Path) -> None:
    store = _store(tmp_path)

    assert store.decide("p1", DecisionState.ARCHIVED) is True
    assert store.decide("p1", DecisionState.ARCHIVED) is False

    assert store.state_of("p1") is ReviewState.ARCHIVED
    assert store.photo_ids() == {"p1"}


def test_decide_replaces_previous_state(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.decide("p1", "archived")

    assert store.decide("p1", "trashed") is True

    assert store.state_of("p1") is ReviewState.TRASHED
    assert store.counts() == {"archived": 0, "trashed": 1}


def test_toggle_sets_then_clears(tmp_path: Path) -> None:
    store = _store(tmp_path)

    assert store.toggle("p1", DecisionState.TRASHED) is ReviewState.TRASHED
    assert store.toggle("p1", DecisionState.ARCHIVED) is ReviewState.ARCHIVED
    assert store.toggle("p1", DecisionState.ARCHIVED) is ReviewState.UNREVIEWED
    assert not store.is_reviewed("p1")


def test_clear_without_decision_is_a_no_op(tmp_path: Path) -> None:
    store = _store(tmp_path)

    assert store.clear("unknown") is False
    assert not store.repository.exists()


def test_restore_all_only_touches_requested_state(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.decide("a", DecisionState.ARCHIVED)
    store.decide("b", DecisionState.ARCHIVED)
    store.decide("t", DecisionState.TRASHED)

    restored = store.restore_all(DecisionState.ARCHIVED)

    assert restored == 2
    assert store.snapshot() == {"t": DecisionState.TRASHED}


def test_restore_with_state_filter(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.decide("a", DecisionState.ARCHIVED)
    store.decide("t", DecisionState.TRASHED)

    assert store.restore(["a", "t", "missing"], from_state=DecisionState.TRASHED) == 1
    assert store.photo_ids() == {"a"}


def test_prune_orphans_keeps_only_resolved_ids(tmp_path: Path) -> None:
    store = _store(tmp_path)
    for photo_id in ("a", "b", "c"):
        store.decide(photo_id, DecisionState.ARCHIVED)

    pruned = store.prune_orphans({"a", "c", "unrelated"})

    assert pruned == 1
    assert store.photo_ids() == {"a", "c"}


def test_prune_orphans_respects_scope(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.decide("checked", DecisionState.TRASHED)
    store.decide("decided-later", DecisionState.TRASHED)

    pruned = store.prune_orphans(set(), scope={"checked"})

    assert pruned == 1
    assert store.photo_ids() == {"decided-later"}


def test_decisions_round_trip_through_disk(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.decide("p1", DecisionState.ARCHIVED)
    store.decide("p2", DecisionState.TRASHED)
    store.close()

    reloaded = _store(tmp_path)

    assert reloaded.snapshot() == {
        "p1": DecisionState.ARCHIVED,
        "p2": DecisionState.TRASHED,
    }


def test_decision_file_layout(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.decide("p1", DecisionState.TRASHED)

    payload = json.loads((tmp_path / "decisions.json").read_text(encoding="utf-8"))

    assert payload["version"] == 1
    assert payload["decisions"]["p1"]["state"] == "trashed"
    assert "decided_at" in payload["decisions"]["p1"]
    assert not (tmp_path / "decisions.json.tmp").exists()


def test_legacy_layout_is_accepted(tmp_path: Path) -> None:
    path = tmp_path / "decisions.json"
    path.write_text(json.dumps({"archived": ["a"], "trashed": ["t1", "t2"]}), encoding="utf-8")

    store = DecisionStore(DecisionRepository(path))

    assert store.counts() == {"archived": 1, "trashed": 2}


def test_flat_state_mapping_is_accepted(tmp_path: Path) -> None:
    path = tmp_path / "decisions.json"
    path.write_text(
        json.dumps({"IMG_1.jpg": "archived", "Trip/IMG_2.jpg": "trashed"}), encoding="utf-8"
    )

    store = DecisionStore(DecisionRepository(path))

    assert store.snapshot() == {
        "IMG_1.jpg": DecisionState.ARCHIVED,
        "Trip/IMG_2.jpg": DecisionState.TRASHED,
    }

    store.decide("IMG_3.jpg", DecisionState.ARCHIVED)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert set(payload["decisions"]) == {"IMG_1.jpg", "Trip/IMG_2.jpg", "IMG_3.jpg"}


def test_flat_mapping_with_unknown_state_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "decisions.json"
    path.write_text(json.dumps({"IMG_1.jpg": "maybe"}), encoding="utf-8")

    with pytest.raises(DecisionStoreError):
        DecisionRepository(path).load()


def test_corrupt_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "decisions.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(DecisionStoreError):
        DecisionStore(DecisionRepository(path))


def test_mismatched_keys_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "decisions.json"
    path.write_text(
        json.dumps({"decisions": {"a": {"photo_id": "b", "state": "archived"}}}),
        encoding="utf-8",
    )

    with pytest.raises(DecisionStoreError):
        DecisionRepository(path).load()


class _FailingRepository(DecisionRepository):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.fail = True
        self.saved: list[DecisionFile] = []

    def save(self, data: DecisionFile) -> None:
        if self.fail:
            raise DecisionPersistenceError("disk full")
        self.saved.append(data)


def test_persistence_failure_keeps_memory_authoritative(tmp_path: Path) -> None:
    repository = _FailingRepository(tmp_path / "decisions.json")
    store = DecisionStore(repository)

    with pytest.raises(DecisionPersistenceError):
        store.decide("p1", DecisionState.ARCHIVED)

    assert store.state_of("p1") is ReviewState.ARCHIVED
    assert store.dirty

    repository.fail = False
    store.flush()

    assert not store.dirty
    assert set(repository.saved[-1].decisions) == {"p1"}
