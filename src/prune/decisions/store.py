"""In-memory decision store with write-through persistence."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Set

from .errors import DecisionPersistenceError, MissingDecisionsError
from .models import DecisionFile, DecisionRecord, DecisionState, ReviewState
from .repository import DecisionRepository

LOGGER = logging.getLogger(__name__)


class DecisionStore:
    """Map photo ids to review decisions and keep the decision file current.

    Every mutation is applied in memory first and then written through to the
    repository. When a write fails the store stays dirty, the in-memory state
    remains authoritative, and the next mutation (or :meth:`flush`) writes the
    full mapping again. All access is serialized by a re-entrant lock.
    """

    def __init__(self, repository: DecisionRepository, *, autoload: bool = True) -> None:
        self._repository = repository
        self._lock = threading.RLock()
        self._records: Dict[str, DecisionRecord] = {}
        self._created_at = datetime.now(timezone.utc)
        self._dirty = False
        if autoload:
            self.load()

    @property
    def repository(self) -> DecisionRepository:
        return self._repository

    @property
    def dirty(self) -> bool:
        """Return whether in-memory decisions have not been written yet."""
        with self._lock:
            return self._dirty

    def load(self) -> None:
        """Replace in-memory decisions with the stored ones.

        Raises:
            DecisionStoreError: If the decision file exists but is unusable.
        """
        try:
            data = self._repository.load()
        except MissingDecisionsError:
            data = DecisionFile()
        with self._lock:
            self._records = dict(data.decisions)
            self._created_at = data.created_at
            self._dirty = False
        LOGGER.debug("Loaded %d decision(s) from %s.", len(data.decisions), self._repository.path)

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, photo_id: object) -> bool:
        with self._lock:
            return photo_id in self._records

    def is_reviewed(self, photo_id: str) -> bool:
        with self._lock:
            return photo_id in self._records

    def state_of(self, photo_id: str) -> ReviewState:
        with self._lock:
            record = self._records.get(photo_id)
        return ReviewState.from_decision(record.state if record else None)

    def record(self, photo_id: str) -> Optional[DecisionRecord]:
        with self._lock:
            return self._records.get(photo_id)

    def photo_ids(self, state: Optional[DecisionState] = None) -> Set[str]:
        """Return ids with a decision, optionally restricted to ``state``."""
        with self._lock:
            if state is None:
                return set(self._records)
            wanted = DecisionState(state)
            return {pid for pid, record in self._records.items() if record.state is wanted}

    def counts(self) -> Dict[str, int]:
        with self._lock:
            counts = {state.value: 0 for state in DecisionState}
            for record in self._records.values():
                counts[record.state.value] += 1
            return counts

    def snapshot(self) -> Dict[str, DecisionState]:
        """Return a copy of the ``photo_id -> state`` mapping."""
        with self._lock:
            return {pid: record.state for pid, record in self._records.items()}

    # ------------------------------------------------------------------ #
    # Mutations                                                          #
    # ------------------------------------------------------------------ #

    def decide(self, photo_id: str, state: DecisionState | str) -> bool:
        """Record ``state`` for ``photo_id``.

        Returns:
            bool: ``False`` when the photo already had that state.

        Raises:
            DecisionPersistenceError: If the decision could not be written.
        """
        target = DecisionState(state)
        with self._lock:
            existing = self._records.get(photo_id)
            if existing is not None and existing.state is target:
                return False
            self._records[photo_id] = DecisionRecord(photo_id=photo_id, state=target)
            self._commit()
        return True

    def toggle(self, photo_id: str, state: DecisionState | str) -> ReviewState:
        """Set ``state``, or clear the decision when it already has ``state``."""
        target = DecisionState(state)
        with self._lock:
            if self.state_of(photo_id).value == target.value:
                self.clear(photo_id)
            else:
                self.decide(photo_id, target)
            return self.state_of(photo_id)

    def clear(self, photo_id: str) -> bool:
        """Remove the decision for ``photo_id``; a no-op when there is none."""
        with self._lock:
            if self._records.pop(photo_id, None) is None:
                return False
            self._commit()
        return True

    def restore(
        self, photo_ids: Iterable[str], *, from_state: Optional[DecisionState | str] = None
    ) -> int:
        """Clear decisions for ``photo_ids``, optionally only those in ``from_state``."""
        wanted = DecisionState(from_state) if from_state is not None else None
        with self._lock:
            removed = 0
            for photo_id in set(photo_ids):
                record = self._records.get(photo_id)
                if record is None or (wanted is not None and record.state is not wanted):
                    continue
                del self._records[photo_id]
                removed += 1
            if removed:
                self._commit()
        return removed

    def restore_all(self, from_state: DecisionState | str) -> int:
        """Clear every decision whose state is ``from_state``."""
        wanted = DecisionState(from_state)
        with self._lock:
            return self.restore(self.photo_ids(wanted), from_state=wanted)

    def prune_orphans(
        self, resolved_ids: Iterable[str], *, scope: Optional[Iterable[str]] = None
    ) -> int:
        """Remove decisions for photos that no longer resolve.

        Args:
            resolved_ids: Ids confirmed to exist in the live library.
            scope: Ids that were checked. Records outside ``scope`` are kept;
                ``None`` checks every record.

        Returns:
            int: Number of decisions removed.
        """
        resolved = set(resolved_ids)
        with self._lock:
            candidates = set(self._records) if scope is None else set(scope) & set(self._records)
            orphaned = candidates - resolved
            for photo_id in orphaned:
                del self._records[photo_id]
            if orphaned:
                LOGGER.info("Pruned %d orphaned decision(s).", len(orphaned))
                self._commit()
        return len(orphaned)

    def flush(self) -> None:
        """Write decisions to disk if there are unwritten changes.

        Raises:
            DecisionPersistenceError: If the write fails.
        """
        with self._lock:
            if not self._dirty:
                return
            data = DecisionFile(decisions=dict(self._records), created_at=self._created_at)
            try:
                self._repository.save(data)
            except DecisionPersistenceError:
                LOGGER.warning(
                    "Decision file write failed; %d decision(s) kept in memory.", len(self._records)
                )
                raise
            self._dirty = False

    def close(self) -> None:
        self.flush()

    def _commit(self) -> None:
        self._dirty = True
        self.flush()


__all__ = ["DecisionStore"]
