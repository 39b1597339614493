"""
History Stack - Linear undo log of Selection State snapshots

Append/pop only. Snapshots are immutable SelectionState instances, so
pushing stores a reference; no copy is taken.
"""

import logging
from typing import List, Optional

from backend.core.selection_state import SelectionState

logger = logging.getLogger(__name__)


class HistoryStack:
    """Every state prior to the most recent committed transition"""

    def __init__(self):
        self._snapshots: List[SelectionState] = []

    def push(self, snapshot: SelectionState) -> None:
        self._snapshots.append(snapshot)
        logger.debug(f"History push (depth={len(self._snapshots)}, step={snapshot.current_step})")

    def pop(self) -> Optional[SelectionState]:
        """
        Remove and return the most recent snapshot.

        Returns:
            SelectionState, or None when the stack is empty
        """
        if not self._snapshots:
            return None
        snapshot = self._snapshots.pop()
        logger.debug(f"History pop (depth={len(self._snapshots)}, step={snapshot.current_step})")
        return snapshot

    def peek(self) -> Optional[SelectionState]:
        return self._snapshots[-1] if self._snapshots else None

    def clear(self) -> None:
        self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)

    def __bool__(self) -> bool:
        return bool(self._snapshots)
