"""
Selection State - Single source of truth for one in-progress note

Design principles:
- Frozen dataclass: a state is a snapshot, transitions build new states
- Every collection is a tuple, so dataclasses.replace() shares unchanged
  collections between successive snapshots (cheap history)
- Invariants checked on construction (ValueError)
- JSON round-trip for session persistence (history is never stored here)

Catalog-dependent invariants (justification sub-step only when the
assistance type has justification options) are enforced by WizardEngine.
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from backend.core.step_graph import (
    FIRST_STEP,
    MAX_PROGRESS_STEPS,
    ActiveTab,
    ModalStep,
    valid_steps,
)
from backend.utils.intervention_kinds import InterventionKind


@dataclass(frozen=True)
class AssistanceRecord:
    """Resolved assistance: type, level and optional justification"""
    assistance_id: str
    level_id: str
    justification: Optional[str] = None

    def to_json(self) -> dict:
        return {
            'assistance_id': self.assistance_id,
            'level_id': self.level_id,
            'justification': self.justification,
        }

    @staticmethod
    def from_json(data: dict) -> "AssistanceRecord":
        return AssistanceRecord(
            assistance_id=data['assistance_id'],
            level_id=data['level_id'],
            justification=data.get('justification'),
        )


@dataclass(frozen=True)
class SelectionState:
    """
    Everything chosen so far plus transient UI flags.

    Attributes:
        current_step: Wizard step (1..11)
        active_tab: Tab shown at the shared response/outcome/plan step
        intervention_kind: Kind chosen when the builder was opened
        selected_category_id / selected_sub_category_id: Catalog path
        selected_context: Context tag filtering clinical rationale options
        selected_phrase_texts: Ordered phrases, custom entries allowed
        selected_reasoning_text / selected_goal_text: Single picks
        selected_assistance_id / selected_assistance_level_id /
            selected_justification: Assistance dialog selection
        used_assistance_ids: Assistance types already resolved
        assistance_records: One record per resolved assistance type
        selected_difficulty_reasons: Ordered reasons
        selected_response / selected_outcome / selected_plan: Tab picks
        session_parameters: (group key, chosen values) pairs
        current_narrative: Note body, may be user-edited
        is_new_sentence: Next confirmation starts the narrative afresh
        show_assistance_modal / assistance_modal_step: Assistance dialog
        show_parameters_modal: Session parameters dialog
        show_custom_phrase_input: Custom phrase entry visible
    """
    current_step: int = FIRST_STEP
    active_tab: ActiveTab = ActiveTab.RESPONSE
    intervention_kind: Optional[InterventionKind] = None
    selected_category_id: Optional[str] = None
    selected_sub_category_id: Optional[str] = None
    selected_context: Optional[str] = None
    selected_phrase_texts: Tuple[str, ...] = ()
    selected_reasoning_text: Optional[str] = None
    selected_goal_text: Optional[str] = None
    selected_assistance_id: Optional[str] = None
    selected_assistance_level_id: Optional[str] = None
    selected_justification: Optional[str] = None
    used_assistance_ids: Tuple[str, ...] = ()
    assistance_records: Tuple[AssistanceRecord, ...] = ()
    selected_difficulty_reasons: Tuple[str, ...] = ()
    selected_response: Optional[str] = None
    selected_outcome: Optional[str] = None
    selected_plan: Optional[str] = None
    session_parameters: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    current_narrative: str = ''
    is_new_sentence: bool = True
    show_assistance_modal: bool = False
    assistance_modal_step: ModalStep = ModalStep.LEVEL
    show_parameters_modal: bool = False
    show_custom_phrase_input: bool = False

    def __post_init__(self):
        if not FIRST_STEP <= self.current_step <= MAX_PROGRESS_STEPS:
            raise ValueError(f"current_step out of range: {self.current_step}")

        if self.intervention_kind is not None and self.current_step not in valid_steps(self.intervention_kind):
            raise ValueError(
                f"Step {self.current_step} is not valid for intervention kind "
                f"{self.intervention_kind.value}"
            )

        if len(set(self.used_assistance_ids)) != len(self.used_assistance_ids):
            raise ValueError(f"Duplicate used assistance ids: {self.used_assistance_ids}")

        if not isinstance(self.active_tab, ActiveTab):
            raise ValueError(f"Invalid active_tab: {self.active_tab!r}")

        if not isinstance(self.assistance_modal_step, ModalStep):
            raise ValueError(f"Invalid assistance_modal_step: {self.assistance_modal_step!r}")

    # ========================
    # Construction
    # ========================

    @classmethod
    def initial(cls, kind: Optional[InterventionKind] = None) -> "SelectionState":
        """Fresh state for a new builder session"""
        return cls(intervention_kind=kind)

    def evolve(self, **changes: Any) -> "SelectionState":
        """Copy with changes applied (unchanged tuples are shared)"""
        return dataclasses.replace(self, **changes)

    # ========================
    # Derived views
    # ========================

    @property
    def parameters(self) -> Dict[str, List[str]]:
        """Session parameters as a plain mapping"""
        return {key: list(values) for key, values in self.session_parameters}

    def has_phrase(self, phrase: str) -> bool:
        return phrase in self.selected_phrase_texts

    def is_assistance_used(self, assistance_id: str) -> bool:
        return assistance_id in self.used_assistance_ids

    # ========================
    # Serialization
    # ========================

    def to_json(self) -> Dict[str, Any]:
        """
        Serialize to a JSON-safe dict.

        Returns:
            dict: Plain values only (enums as their string values,
                tuples as lists)
        """
        return {
            'current_step': self.current_step,
            'active_tab': self.active_tab.value,
            'intervention_kind': self.intervention_kind.value if self.intervention_kind else None,
            'selected_category_id': self.selected_category_id,
            'selected_sub_category_id': self.selected_sub_category_id,
            'selected_context': self.selected_context,
            'selected_phrase_texts': list(self.selected_phrase_texts),
            'selected_reasoning_text': self.selected_reasoning_text,
            'selected_goal_text': self.selected_goal_text,
            'selected_assistance_id': self.selected_assistance_id,
            'selected_assistance_level_id': self.selected_assistance_level_id,
            'selected_justification': self.selected_justification,
            'used_assistance_ids': list(self.used_assistance_ids),
            'assistance_records': [record.to_json() for record in self.assistance_records],
            'selected_difficulty_reasons': list(self.selected_difficulty_reasons),
            'selected_response': self.selected_response,
            'selected_outcome': self.selected_outcome,
            'selected_plan': self.selected_plan,
            'session_parameters': self.parameters,
            'current_narrative': self.current_narrative,
            'is_new_sentence': self.is_new_sentence,
            'show_assistance_modal': self.show_assistance_modal,
            'assistance_modal_step': self.assistance_modal_step.value,
            'show_parameters_modal': self.show_parameters_modal,
            'show_custom_phrase_input': self.show_custom_phrase_input,
        }

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "SelectionState":
        """
        Deserialize from a JSON dict produced by to_json().

        Unknown keys are ignored; missing keys take their defaults.

        Raises:
            ValueError: If values have the wrong type or break an invariant
        """
        if not isinstance(data, dict):
            raise ValueError("SelectionState data must be a dict")

        try:
            kind = data.get('intervention_kind')
            return SelectionState(
                current_step=int(data.get('current_step', FIRST_STEP)),
                active_tab=ActiveTab(data.get('active_tab', ActiveTab.RESPONSE.value)),
                intervention_kind=InterventionKind(kind) if kind else None,
                selected_category_id=data.get('selected_category_id'),
                selected_sub_category_id=data.get('selected_sub_category_id'),
                selected_context=data.get('selected_context'),
                selected_phrase_texts=tuple(data.get('selected_phrase_texts', [])),
                selected_reasoning_text=data.get('selected_reasoning_text'),
                selected_goal_text=data.get('selected_goal_text'),
                selected_assistance_id=data.get('selected_assistance_id'),
                selected_assistance_level_id=data.get('selected_assistance_level_id'),
                selected_justification=data.get('selected_justification'),
                used_assistance_ids=tuple(data.get('used_assistance_ids', [])),
                assistance_records=tuple(
                    AssistanceRecord.from_json(record)
                    for record in data.get('assistance_records', [])
                ),
                selected_difficulty_reasons=tuple(data.get('selected_difficulty_reasons', [])),
                selected_response=data.get('selected_response'),
                selected_outcome=data.get('selected_outcome'),
                selected_plan=data.get('selected_plan'),
                session_parameters=tuple(
                    (key, tuple(values))
                    for key, values in data.get('session_parameters', {}).items()
                ),
                current_narrative=str(data.get('current_narrative', '')),
                is_new_sentence=bool(data.get('is_new_sentence', True)),
                show_assistance_modal=bool(data.get('show_assistance_modal', False)),
                assistance_modal_step=ModalStep(data.get('assistance_modal_step', ModalStep.LEVEL.value)),
                show_parameters_modal=bool(data.get('show_parameters_modal', False)),
                show_custom_phrase_input=bool(data.get('show_custom_phrase_input', False)),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed selection state: {e}") from e
