"""Review decision data models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator

DECISION_FILE_VERSION = 1


class DecisionState(str, Enum):
    """Persisted review outcome for a photo."""

    ARCHIVED = "archived"
    TRASHED = "trashed"


class ReviewState(str, Enum):
    """Review status reported for any photo, reviewed or not."""

    UNREVIEWED = "unreviewed"
    ARCHIVED = "archived"
    TRASHED = "trashed"

    @classmethod
    def from_decision(cls, state: DecisionState | None) -> "ReviewState":
        if state is None:
            return cls.UNREVIEWED
        return cls(state.value)


class DecisionRecord(BaseModel):
    """One review decision for a photo."""

    photo_id: str
    state: DecisionState
    decided_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DecisionFile(BaseModel):
    """Serialized decision mapping stored on disk."""

    model_config = ConfigDict(extra="forbid")

    version: int = DECISION_FILE_VERSION
    decisions: Dict[str, DecisionRecord] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _keys_match_records(self) -> "DecisionFile":
        for key, record in self.decisions.items():
            if key != record.photo_id:
                raise ValueError(
                    f"Decision key {key!r} does not match photo id {record.photo_id!r}"
                )
        return self


__all__ = [
    "DECISION_FILE_VERSION",
    "DecisionFile",
    "DecisionRecord",
    "DecisionState",
    "ReviewState",
]
