"""
Command types for WizardEngine control flow.

Commands are the ONLY public mutation surface of WizardEngine.
Renderers send (action_name, payload) pairs; build_command() turns
them into one of the frozen command objects below.

Naming: each command's ACTION is the action name used by renderers
(e.g. 'select-category'). Payload keys are the command's field names.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type


@dataclass(frozen=True)
class Command:
    """Base class for all wizard commands"""
    ACTION: ClassVar[str] = ''


# ========================
# Session lifecycle
# ========================

@dataclass(frozen=True)
class OpenBuilder(Command):
    """
    Start a builder session for an intervention kind.

    kind: billing code ('97535' or '97530')
    """
    ACTION: ClassVar[str] = 'open-builder'
    kind: str


@dataclass(frozen=True)
class CloseBuilder(Command):
    """Abandon the session; selection state and history are discarded"""
    ACTION: ClassVar[str] = 'close-builder'


@dataclass(frozen=True)
class FinalizeNote(Command):
    """
    Fold the narrative into the ledger and close the session.

    narrative: committed edit-buffer text; None uses the stored narrative
    """
    ACTION: ClassVar[str] = 'finalize-note'
    narrative: Optional[str] = None


@dataclass(frozen=True)
class EditNarrative(Command):
    """Commit the renderer's edit buffer to the narrative"""
    ACTION: ClassVar[str] = 'edit-narrative'
    text: str


@dataclass(frozen=True)
class GoBack(Command):
    ACTION: ClassVar[str] = 'go-back'


@dataclass(frozen=True)
class RephraseNote(Command):
    ACTION: ClassVar[str] = 'rephrase-note'


@dataclass(frozen=True)
class AddNewSentence(Command):
    ACTION: ClassVar[str] = 'add-new-sentence'


@dataclass(frozen=True)
class SaveAllNotes(Command):
    """Replace ledger entries with operator-edited text ({ledger_key: text})"""
    ACTION: ClassVar[str] = 'save-all-notes'
    notes: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ClearSavedState(Command):
    ACTION: ClassVar[str] = 'clear-saved-state'


# ========================
# Steps 1-3
# ========================

@dataclass(frozen=True)
class SelectCategory(Command):
    ACTION: ClassVar[str] = 'select-category'
    category_id: str


@dataclass(frozen=True)
class SelectSubCategory(Command):
    ACTION: ClassVar[str] = 'select-sub-category'
    sub_category_id: str


@dataclass(frozen=True)
class SelectPhrase(Command):
    """Toggle a phrase in the selection"""
    ACTION: ClassVar[str] = 'select-phrase'
    phrase: str


@dataclass(frozen=True)
class ToggleCustomPhraseInput(Command):
    ACTION: ClassVar[str] = 'toggle-custom-phrase-input'


@dataclass(frozen=True)
class SaveCustomPhrase(Command):
    ACTION: ClassVar[str] = 'save-custom-phrase'
    phrase: str


@dataclass(frozen=True)
class ConfirmInterventions(Command):
    ACTION: ClassVar[str] = 'confirm-interventions'


@dataclass(frozen=True)
class CloseParametersModal(Command):
    ACTION: ClassVar[str] = 'close-parameters-modal'


@dataclass(frozen=True)
class SaveParameters(Command):
    """
    Submit the session parameters dialog.

    details: parameter group key -> chosen values
    """
    ACTION: ClassVar[str] = 'save-parameters'
    details: Dict[str, List[str]] = field(default_factory=dict)


# ========================
# Steps 4-7
# ========================

@dataclass(frozen=True)
class SelectReasoning(Command):
    ACTION: ClassVar[str] = 'select-reasoning'
    reasoning: str


@dataclass(frozen=True)
class SelectGoal(Command):
    ACTION: ClassVar[str] = 'select-goal'
    goal: str


@dataclass(frozen=True)
class SelectAssistanceType(Command):
    ACTION: ClassVar[str] = 'select-assistance-type'
    assistance_id: str


@dataclass(frozen=True)
class CloseAssistanceModal(Command):
    ACTION: ClassVar[str] = 'close-assistance-modal'


@dataclass(frozen=True)
class SelectAssistanceLevel(Command):
    ACTION: ClassVar[str] = 'select-assistance-level'
    level_id: str


@dataclass(frozen=True)
class SelectJustification(Command):
    ACTION: ClassVar[str] = 'select-justification'
    justification: str


@dataclass(frozen=True)
class BackInModal(Command):
    ACTION: ClassVar[str] = 'back-in-modal'


@dataclass(frozen=True)
class AddWithJustification(Command):
    ACTION: ClassVar[str] = 'add-with-justification'


@dataclass(frozen=True)
class AddWithoutJustification(Command):
    ACTION: ClassVar[str] = 'add-no-justify'


@dataclass(frozen=True)
class SkipAssistance(Command):
    ACTION: ClassVar[str] = 'skip-assistance'


@dataclass(frozen=True)
class SelectDifficulty(Command):
    """Toggle a difficulty reason"""
    ACTION: ClassVar[str] = 'select-difficulty'
    reason: str


@dataclass(frozen=True)
class AddDifficulty(Command):
    ACTION: ClassVar[str] = 'add-difficulty'


# ========================
# Steps 8-11
# ========================

@dataclass(frozen=True)
class SwitchTab(Command):
    ACTION: ClassVar[str] = 'switch-tab'
    tab: str


@dataclass(frozen=True)
class SelectResponse(Command):
    ACTION: ClassVar[str] = 'select-response'
    response: str


@dataclass(frozen=True)
class SelectOutcome(Command):
    ACTION: ClassVar[str] = 'select-outcome'
    outcome: str


@dataclass(frozen=True)
class SelectPlan(Command):
    ACTION: ClassVar[str] = 'select-plan'
    plan: str


COMMAND_TYPES: Dict[str, Type[Command]] = {
    command_type.ACTION: command_type
    for command_type in (
        OpenBuilder, CloseBuilder, FinalizeNote, EditNarrative, GoBack,
        RephraseNote, AddNewSentence, SaveAllNotes, ClearSavedState,
        SelectCategory, SelectSubCategory, SelectPhrase, ToggleCustomPhraseInput,
        SaveCustomPhrase, ConfirmInterventions, CloseParametersModal, SaveParameters,
        SelectReasoning, SelectGoal, SelectAssistanceType, CloseAssistanceModal,
        SelectAssistanceLevel, SelectJustification, BackInModal,
        AddWithJustification, AddWithoutJustification, SkipAssistance,
        SelectDifficulty, AddDifficulty,
        SwitchTab, SelectResponse, SelectOutcome, SelectPlan,
    )
}


class MalformedCommand(ValueError):
    """Unknown action name or payload that does not fit the command"""


def build_command(action_name: str, payload: Optional[Mapping[str, Any]] = None) -> Command:
    """
    Build a command from an (action_name, payload) pair.

    Args:
        action_name: Renderer action name (e.g. 'select-goal')
        payload: Field values for the command; extra keys are rejected

    Returns:
        Command: Frozen command instance

    Raises:
        MalformedCommand: If the action is unknown or the payload does not
            match the command's fields
    """
    command_type = COMMAND_TYPES.get(action_name)
    if command_type is None:
        raise MalformedCommand(f"Unknown action: {action_name}")

    if payload is not None and not isinstance(payload, Mapping):
        raise MalformedCommand(f"Payload for '{action_name}' must be an object")

    payload = dict(payload or {})
    field_names = {f.name for f in dataclasses.fields(command_type)}
    unexpected = set(payload) - field_names
    if unexpected:
        raise MalformedCommand(
            f"Unexpected payload keys for '{action_name}': {', '.join(sorted(unexpected))}"
        )

    try:
        return command_type(**payload)
    except TypeError as e:
        raise MalformedCommand(f"Malformed payload for '{action_name}': {e}") from e
