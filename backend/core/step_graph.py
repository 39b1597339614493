"""
Step graph - Wizard step table (configuration data)

The step numbers below are fixed per intervention kind and per action.
They are data, not derived logic: change them here and nowhere else.

Steps:
    1   category
    2   sub-category (therapeutic only)
    3   intervention phrases (+ session parameters dialog)
    4   clinical rationale
    5   patient goal
    6   assistance (loopable, assistance dialog)
    7   difficulty reasons
    8   response / outcome / plan tabs
    9   tabs, response recorded
    10  tabs, outcome recorded
    11  plan recorded (finalize only)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Union

from backend.utils.intervention_kinds import InterventionKind

MAX_PROGRESS_STEPS = 11
FIRST_STEP = 1

TAB_STEPS = frozenset({8, 9, 10})


class ActiveTab(str, Enum):
    RESPONSE = "response"
    OUTCOME = "outcome"
    PLAN = "plan"


class ModalStep(str, Enum):
    LEVEL = "level"
    JUSTIFICATION = "justification"


class Dialog(str, Enum):
    """Dialog that must be open for an action to be accepted"""
    PARAMETERS = "parameters"
    ASSISTANCE = "assistance"


@dataclass(frozen=True)
class StepRule:
    """
    Where an action may be issued and where it leads.

    Attributes:
        from_steps: Steps at which the action is accepted
        next_step: Target step; int for every kind, dict for kind-specific
            targets, None when the action does not move the step counter
        dialog: Dialog that must be open (None = no dialog may be open)
        modal_step: Required assistance dialog sub-step, if any
    """
    from_steps: FrozenSet[int]
    next_step: Union[int, Dict[InterventionKind, int], None] = None
    dialog: Optional[Dialog] = None
    modal_step: Optional[ModalStep] = None

    def target(self, kind: InterventionKind, current_step: int) -> int:
        """
        Resolve the next step for a kind.

        Raises:
            KeyError: If the action has no target for this kind
        """
        if self.next_step is None:
            return current_step
        if isinstance(self.next_step, int):
            return self.next_step
        return self.next_step[kind]


def _steps(*steps: int) -> FrozenSet[int]:
    return frozenset(steps)


# Actions accepted at any step of an open builder session
SESSION_ACTIONS = frozenset({
    'close-builder',
    'finalize-note',
    'edit-narrative',
    'go-back',
    'rephrase-note',
    'add-new-sentence',
})

# Actions that do not need an open session
GLOBAL_ACTIONS = frozenset({
    'open-builder',
    'save-all-notes',
    'clear-saved-state',
})

STEP_RULES: Dict[str, StepRule] = {
    # Step 1-2: catalog path
    'select-category': StepRule(
        from_steps=_steps(1),
        next_step={InterventionKind.SELF_CARE: 3, InterventionKind.THERAPEUTIC: 2},
    ),
    'select-sub-category': StepRule(
        from_steps=_steps(2),
        next_step={InterventionKind.THERAPEUTIC: 3},
    ),

    # Step 3: phrases
    'select-phrase': StepRule(from_steps=_steps(3)),
    'toggle-custom-phrase-input': StepRule(from_steps=_steps(3)),
    'save-custom-phrase': StepRule(from_steps=_steps(3)),
    'confirm-interventions': StepRule(from_steps=_steps(3)),

    # Step 3: session parameters dialog
    'close-parameters-modal': StepRule(from_steps=_steps(3), next_step=4, dialog=Dialog.PARAMETERS),
    'save-parameters': StepRule(from_steps=_steps(3), next_step=4, dialog=Dialog.PARAMETERS),

    # Steps 4-5
    'select-reasoning': StepRule(from_steps=_steps(4), next_step=5),
    'select-goal': StepRule(from_steps=_steps(5), next_step=6),

    # Step 6: assistance
    'select-assistance-type': StepRule(from_steps=_steps(6)),
    'skip-assistance': StepRule(from_steps=_steps(6), next_step=7),
    'close-assistance-modal': StepRule(from_steps=_steps(6), dialog=Dialog.ASSISTANCE),
    'select-assistance-level': StepRule(
        from_steps=_steps(6), dialog=Dialog.ASSISTANCE, modal_step=ModalStep.LEVEL,
    ),
    'select-justification': StepRule(
        from_steps=_steps(6), dialog=Dialog.ASSISTANCE, modal_step=ModalStep.JUSTIFICATION,
    ),
    'back-in-modal': StepRule(
        from_steps=_steps(6), dialog=Dialog.ASSISTANCE, modal_step=ModalStep.JUSTIFICATION,
    ),
    'add-with-justification': StepRule(
        from_steps=_steps(6), next_step=6, dialog=Dialog.ASSISTANCE, modal_step=ModalStep.JUSTIFICATION,
    ),
    'add-no-justify': StepRule(from_steps=_steps(6), next_step=6, dialog=Dialog.ASSISTANCE),

    # Step 7: difficulty
    'select-difficulty': StepRule(from_steps=_steps(7)),
    'add-difficulty': StepRule(from_steps=_steps(7), next_step=8),

    # Steps 8-10: shared tabbed step
    'switch-tab': StepRule(from_steps=TAB_STEPS),
    'select-response': StepRule(from_steps=TAB_STEPS, next_step=9),
    'select-outcome': StepRule(from_steps=TAB_STEPS, next_step=10),
    'select-plan': StepRule(from_steps=TAB_STEPS, next_step=11),
}


def valid_steps(kind: InterventionKind) -> FrozenSet[int]:
    """Steps reachable for an intervention kind"""
    steps = set(range(FIRST_STEP, MAX_PROGRESS_STEPS + 1))
    if not kind.has_sub_categories:
        steps.discard(2)
    return frozenset(steps)


def progress_percent(step: int) -> int:
    return min(round(step / MAX_PROGRESS_STEPS * 100), 100)
