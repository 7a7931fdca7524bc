"""Durable storage for review decisions."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import DecisionPersistenceError, DecisionStoreError, MissingDecisionsError
from .models import DecisionFile, DecisionState

DEFAULT_DECISIONS_PATH = Path("~/.prune/decisions.json")


class DecisionRepository:
    """Read and write the decision file."""

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the repository.

        Args:
            path: Location of the decision file. Defaults to
                ``~/.prune/decisions.json``.
        """
        self._path = (path or DEFAULT_DECISIONS_PATH).expanduser()

    @property
    def path(self) -> Path:
        """Return the resolved decision file path."""
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> DecisionFile:
        """Load the stored decision mapping.

        Returns:
            DecisionFile: Deserialized decisions.

        Raises:
            MissingDecisionsError: If no decision file is present.
            DecisionStoreError: If the file cannot be read or parsed.
        """
        if not self._path.exists():
            raise MissingDecisionsError(f"No decision file found at {self._path}")

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DecisionStoreError(f"Unable to read decision file {self._path}: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DecisionStoreError(f"Invalid decision file data: {exc}") from exc

        try:
            return DecisionFile.model_validate(_upgrade_payload(data))
        except ValidationError as exc:
            raise DecisionStoreError(f"Invalid decision file data: {exc}") from exc

    def save(self, data: DecisionFile) -> None:
        """Persist the decision mapping atomically.

        Args:
            data: Decisions to serialize.

        Raises:
            DecisionPersistenceError: If the file cannot be written.
        """
        data.updated_at = datetime.now(timezone.utc)
        payload = data.model_dump(mode="json")
        temp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with temp.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp, self._path)
        except OSError as exc:
            raise DecisionPersistenceError(
                f"Unable to write decision file {self._path}: {exc}"
            ) from exc


def _upgrade_payload(data: Any) -> Any:
    """Rewrite pre-versioned layouts into the current file shape.

    Two older layouts are understood: grouped lists,
    ``{"archived": [...], "trashed": [...]}``, and a flat mapping of
    ``{photo_id: "archived" | "trashed"}``. Anything else is returned unchanged
    for validation to reject.
    """
    if not isinstance(data, dict) or not data or "decisions" in data:
        return data
    states = [state.value for state in DecisionState]
    if any(isinstance(data.get(state), list) for state in states):
        pairs = [(str(photo_id), state) for state in states for photo_id in data.get(state) or []]
    elif all(isinstance(value, str) and value in states for value in data.values()):
        pairs = [(str(photo_id), value) for photo_id, value in data.items()]
    else:
        return data
    return {
        "decisions": {photo_id: {"photo_id": photo_id, "state": state} for photo_id, state in pairs}
    }


__all__ = ["DEFAULT_DECISIONS_PATH", "DecisionRepository"]
