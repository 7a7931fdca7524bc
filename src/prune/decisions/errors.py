"""Decision store errors."""


class DecisionStoreError(Exception):
    """Base exception for decision persistence; raised when the file is unusable."""


class MissingDecisionsError(DecisionStoreError):
    """Raised when no decision file exists yet."""


class DecisionPersistenceError(DecisionStoreError):
    """Raised when decisions could not be written; in-memory state is kept."""
