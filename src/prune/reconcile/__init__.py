"""Keep the published index, caches, and decisions consistent with the library."""

from .controller import ControllerState, ReconciliationController
from .owner import OwnerLoop

__all__ = ["ControllerState", "OwnerLoop", "ReconciliationController"]
