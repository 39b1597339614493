"""
Result types returned by WizardEngine.dispatch()

These are the ONLY return types from the action boundary.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from backend.core.selection_state import SelectionState


@dataclass(frozen=True)
class StateUpdate:
    """
    Accepted action.

    Attributes:
        state: Selection state after the action (None when no builder
            session is open)
        notes: Notes ledger entries ({ledger_key: text})
        can_undo: Whether the history stack has entries (back control)
        rephrase_pending: Whether the rephrase control must stay disabled
        session_time: Elapsed session seconds (0 without a session)
        notice: Transient, non-blocking message for the operator
    """
    state: Optional[SelectionState]
    notes: Dict[str, str] = field(default_factory=dict)
    can_undo: bool = False
    rephrase_pending: bool = False
    session_time: int = 0
    notice: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            'accepted': True,
            'state': self.state.to_json() if self.state else None,
            'notes': dict(self.notes),
            'can_undo': self.can_undo,
            'rephrase_pending': self.rephrase_pending,
            'session_time': self.session_time,
            'notice': self.notice,
        }


@dataclass(frozen=True)
class RejectedAction:
    """
    Action rejected by the engine; no state change was applied.

    Examples:
    - confirm-interventions with no phrase selected
    - add-with-justification with no justification chosen
    - select-assistance-type for an assistance type already used
    - any action outside its allowed steps

    Attributes:
        reason: Human-readable notice
        action: Name of the rejected action
        unexpected: True when an unexpected fault was caught at the
            dispatch boundary (generic notice)
    """
    reason: str
    action: str
    unexpected: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {
            'accepted': False,
            'reason': self.reason,
            'action': self.action,
            'unexpected': self.unexpected,
        }
