"""Review decision persistence for Prune."""

from .errors import DecisionPersistenceError, DecisionStoreError, MissingDecisionsError
from .models import DecisionFile, DecisionRecord, DecisionState, ReviewState
from .repository import DEFAULT_DECISIONS_PATH, DecisionRepository
from .store import DecisionStore

__all__ = [
    "DEFAULT_DECISIONS_PATH",
    "DecisionFile",
    "DecisionPersistenceError",
    "DecisionRecord",
    "DecisionRepository",
    "DecisionState",
    "DecisionStore",
    "DecisionStoreError",
    "MissingDecisionsError",
    "ReviewState",
]
