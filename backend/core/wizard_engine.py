"""
Wizard Engine - Clinical note builder state machine

Responsibilities:
- Single mutation surface: dispatch(action_name, payload)
- Validate every action against the step graph, open dialogs and catalog
- Derive the next immutable SelectionState and fold narrative text
- Own the builder session (selection, history, timer) and the notes ledger
- Schedule the delayed rephrase and the debounced save

Design principles:
- Handlers derive a new state first and commit last, so a rejection or an
  unexpected fault leaves no partial mutation behind
- One re-entrant lock gives a total order over dispatches and the
  rephrase completion
- Step numbers come from step_graph.STEP_RULES, never from handler code
- Undo restores a snapshot verbatim; there is no inverse computation
"""

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Union

from backend.commands import (
    AddDifficulty,
    AddNewSentence,
    AddWithJustification,
    AddWithoutJustification,
    BackInModal,
    ClearSavedState,
    CloseAssistanceModal,
    CloseBuilder,
    CloseParametersModal,
    Command,
    ConfirmInterventions,
    EditNarrative,
    FinalizeNote,
    GoBack,
    MalformedCommand,
    OpenBuilder,
    RephraseNote,
    SaveAllNotes,
    SaveCustomPhrase,
    SaveParameters,
    SelectAssistanceLevel,
    SelectAssistanceType,
    SelectCategory,
    SelectDifficulty,
    SelectGoal,
    SelectJustification,
    SelectOutcome,
    SelectPhrase,
    SelectPlan,
    SelectReasoning,
    SelectResponse,
    SelectSubCategory,
    SkipAssistance,
    SwitchTab,
    ToggleCustomPhraseInput,
    build_command,
)
from backend.core.catalog import Catalog
from backend.core.history import HistoryStack
from backend.core.narrative import (
    append_to_narrative,
    ensure_terminal_punctuation,
    join_phrases,
    splice_parameters,
    tidy_punctuation,
)
from backend.core.notes_ledger import NotesLedger
from backend.core.rephraser import (
    NOTHING_TO_REPHRASE,
    NothingToRephrase,
    RephrasingSynthesizer,
    resolve_parameter_clause,
)
from backend.core.selection_state import AssistanceRecord, SelectionState
from backend.core.step_graph import (
    GLOBAL_ACTIONS,
    SESSION_ACTIONS,
    STEP_RULES,
    ActiveTab,
    Dialog,
    ModalStep,
)
from backend.persistence import SAVE_DEBOUNCE_SECONDS, DebouncedSaver, SessionPersistence
from backend.results import RejectedAction, StateUpdate
from backend.utils.helpers import SessionTimer
from backend.utils.intervention_kinds import InterventionKind

logger = logging.getLogger(__name__)

REPHRASE_DELAY_SECONDS = 0.75
UNEXPECTED_ERROR_NOTICE = "An unexpected error occurred."

DispatchResult = Union[StateUpdate, RejectedAction]


class WizardRejection(Exception):
    """Action refused because a precondition is not met (state unchanged)"""


class NoteSession:
    """
    One open builder session.

    Created on open-builder (or restore), torn down on finalize or close.
    """

    def __init__(self, selection: SelectionState, elapsed_seconds: int = 0):
        self.selection = selection
        self.history = HistoryStack()
        self.timer = SessionTimer()
        self.timer.start(elapsed_seconds)

    @property
    def kind(self) -> InterventionKind:
        return self.selection.intervention_kind


class WizardEngine:
    """
    Authoritative transition function for the note builder.

    Usage:
        engine = WizardEngine(load_catalog(), SessionPersistence())
        engine.restore()
        result = engine.dispatch('open-builder', {'kind': '97535'})
    """

    def __init__(
        self,
        catalog: Catalog,
        persistence: Optional[SessionPersistence] = None,
        synthesizer: Optional[RephrasingSynthesizer] = None,
        save_delay: float = SAVE_DEBOUNCE_SECONDS,
        rephrase_delay: float = REPHRASE_DELAY_SECONDS
    ):
        """
        Initialize engine.

        Args:
            catalog: Loaded catalog (immutable)
            persistence: Session storage; None keeps everything in memory
            synthesizer: Rephrasing synthesizer (inject a seeded one in tests)
            save_delay: Debounce quiet period for saves (seconds)
            rephrase_delay: Delay before the rephrase result is produced
        """
        self.catalog = catalog
        self.persistence = persistence
        self.synthesizer = synthesizer or RephrasingSynthesizer()
        self.rephrase_delay = rephrase_delay
        self.ledger = NotesLedger()

        self._saver = DebouncedSaver(persistence, save_delay) if persistence else None
        self._lock = threading.RLock()
        self._session: Optional[NoteSession] = None

        self._rephrase_timer: Optional[threading.Timer] = None
        self._rephrase_generation = 0
        self._rephrase_done = threading.Event()
        self._rephrase_done.set()

        self._handlers: Dict[type, Callable[[Any], Optional[str]]] = {
            OpenBuilder: self._open_builder,
            CloseBuilder: self._close_builder,
            FinalizeNote: self._finalize_note,
            EditNarrative: self._edit_narrative,
            GoBack: self._go_back,
            RephraseNote: self._rephrase_note,
            AddNewSentence: self._add_new_sentence,
            SaveAllNotes: self._save_all_notes,
            ClearSavedState: self._clear_saved_state,
            SelectCategory: self._select_category,
            SelectSubCategory: self._select_sub_category,
            SelectPhrase: self._select_phrase,
            ToggleCustomPhraseInput: self._toggle_custom_phrase_input,
            SaveCustomPhrase: self._save_custom_phrase,
            ConfirmInterventions: self._confirm_interventions,
            CloseParametersModal: self._close_parameters_modal,
            SaveParameters: self._save_parameters,
            SelectReasoning: self._select_reasoning,
            SelectGoal: self._select_goal,
            SelectAssistanceType: self._select_assistance_type,
            CloseAssistanceModal: self._close_assistance_modal,
            SelectAssistanceLevel: self._select_assistance_level,
            SelectJustification: self._select_justification,
            BackInModal: self._back_in_modal,
            AddWithJustification: self._add_with_justification,
            AddWithoutJustification: self._add_without_justification,
            SkipAssistance: self._skip_assistance,
            SelectDifficulty: self._select_difficulty,
            AddDifficulty: self._add_difficulty,
            SwitchTab: self._switch_tab,
            SelectResponse: self._select_response,
            SelectOutcome: self._select_outcome,
            SelectPlan: self._select_plan,
        }

        logger.info("WizardEngine initialized")

    # ========================
    # Public API
    # ========================

    def dispatch(self, action_name: str, payload: Optional[Mapping[str, Any]] = None) -> DispatchResult:
        """
        Apply one operator action.

        Args:
            action_name: Action name (e.g. 'select-goal')
            payload: Action payload (field values of the command)

        Returns:
            StateUpdate on success, RejectedAction otherwise
        """
        with self._lock:
            try:
                command = build_command(action_name, payload)
                self._check_allowed(command)
                notice = self._handlers[type(command)](command)
            except (MalformedCommand, WizardRejection) as e:
                logger.info(f"Action '{action_name}' rejected: {e}")
                return RejectedAction(reason=str(e), action=action_name)
            except Exception:
                logger.exception(f"Unexpected error while handling '{action_name}'")
                return RejectedAction(
                    reason=UNEXPECTED_ERROR_NOTICE,
                    action=action_name,
                    unexpected=True,
                )

            logger.debug(f"Action '{action_name}' applied")
            return self.current_update(notice)

    def current_update(self, notice: Optional[str] = None) -> StateUpdate:
        """Render-ready view of the engine without applying an action"""
        with self._lock:
            session = self._session
            return StateUpdate(
                state=session.selection if session else None,
                notes=self.ledger.to_json(),
                can_undo=bool(session and session.history),
                rephrase_pending=self.is_rephrasing,
                session_time=session.timer.elapsed if session else 0,
                notice=notice,
            )

    @property
    def state(self) -> Optional[SelectionState]:
        session = self._session
        return session.selection if session else None

    @property
    def history_depth(self) -> int:
        session = self._session
        return len(session.history) if session else 0

    @property
    def is_rephrasing(self) -> bool:
        return not self._rephrase_done.is_set()

    def wait_for_rephrase(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a pending rephrase completes.

        Returns:
            bool: False if the timeout expired first
        """
        return self._rephrase_done.wait(timeout)

    def export_notes(self) -> Dict[str, str]:
        """Ledger entries as plain text ({ledger_key: text})"""
        with self._lock:
            return {kind.ledger_key: self.ledger.export_text(kind) for kind in InterventionKind}

    def snapshot(self) -> Dict[str, Any]:
        """Persistable snapshot (history excluded)"""
        with self._lock:
            session = self._session
            return {
                'state': session.selection.to_json() if session else None,
                'notes': self.ledger.to_json(),
                'session_time': session.timer.elapsed if session else 0,
            }

    def restore(self) -> bool:
        """
        Rehydrate ledger and session from persistence.

        Invalid snapshots are discarded and treated as "no prior session".

        Returns:
            bool: True if a snapshot was restored
        """
        if self.persistence is None:
            return False

        data = self.persistence.load()
        if data is None:
            return False

        try:
            ledger = NotesLedger.from_json(data.get('notes', {}))
            state_data = data.get('state')
            selection = SelectionState.from_json(state_data) if state_data else None
            if selection is not None:
                self._check_against_catalog(selection)
            elapsed = int(data.get('session_time', 0) or 0)
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding invalid session snapshot: {e}")
            self.persistence.clear()
            return False

        with self._lock:
            self.ledger = ledger
            if selection is not None and selection.intervention_kind is not None:
                self._session = NoteSession(selection, elapsed)
                logger.info(
                    f"Restored session: kind={selection.intervention_kind.value}, "
                    f"step={selection.current_step}"
                )
            else:
                self._session = None
                logger.info("Restored notes ledger (no open session)")
        return True

    def _check_against_catalog(self, selection: SelectionState) -> None:
        """
        Verify a restored selection refers only to catalog entries.

        Raises:
            ValueError: If an id is unknown or the assistance dialog is at a
                step its type cannot reach
        """
        kind = selection.intervention_kind
        if kind is None:
            return

        category = None
        if selection.selected_category_id is not None:
            category = self.catalog.category(kind, selection.selected_category_id)
            if category is None:
                raise ValueError(f"Unknown category: {selection.selected_category_id}")
        if selection.selected_sub_category_id is not None:
            if not kind.has_sub_categories:
                raise ValueError("Sub-category set for an intervention kind without sub-categories")
            if category is None or category.sub_category(selection.selected_sub_category_id) is None:
                raise ValueError(f"Unknown sub-category: {selection.selected_sub_category_id}")

        for assistance_id in selection.used_assistance_ids:
            if self.catalog.assistance_type(assistance_id) is None:
                raise ValueError(f"Unknown assistance type: {assistance_id}")

        if selection.selected_assistance_id is not None:
            assistance = self.catalog.assistance_type(selection.selected_assistance_id)
            if assistance is None:
                raise ValueError(f"Unknown assistance type: {selection.selected_assistance_id}")
            level_id = selection.selected_assistance_level_id
            if level_id is not None and assistance.level(level_id) is None:
                raise ValueError(f"Unknown assistance level: {level_id}")
        elif selection.show_assistance_modal:
            raise ValueError("Assistance dialog open without an assistance type")

        if selection.assistance_modal_step == ModalStep.JUSTIFICATION:
            if not self.catalog.has_justifications(selection.selected_assistance_id):
                raise ValueError("Justification step for an assistance type without justifications")
            if selection.selected_assistance_level_id is None:
                raise ValueError("Justification step without an assistance level")

    def flush(self) -> bool:
        """Write any pending snapshot immediately"""
        if self._saver is None:
            return False
        return self._saver.flush()

    def shutdown(self) -> None:
        """Cancel the pending rephrase and flush the pending save"""
        with self._lock:
            self._cancel_rephrase()
        self.flush()

    # ========================
    # Dispatch plumbing
    # ========================

    def _check_allowed(self, command: Command) -> None:
        action = command.ACTION
        if action in GLOBAL_ACTIONS:
            return

        if self._session is None:
            raise WizardRejection("No builder session is open.")
        if action in SESSION_ACTIONS:
            return

        rule = STEP_RULES[action]
        state = self._session.selection
        if state.current_step not in rule.from_steps:
            raise WizardRejection(f"'{action}' is not available at step {state.current_step}.")

        open_dialog = self._open_dialog(state)
        if rule.dialog != open_dialog:
            if open_dialog is None:
                raise WizardRejection(f"'{action}' requires the {rule.dialog.value} dialog.")
            raise WizardRejection(f"'{action}' is not available while the {open_dialog.value} dialog is open.")

        if rule.modal_step is not None and state.assistance_modal_step != rule.modal_step:
            raise WizardRejection(f"'{action}' is only available at the {rule.modal_step.value} step.")

    @staticmethod
    def _open_dialog(state: SelectionState) -> Optional[Dialog]:
        if state.show_parameters_modal:
            return Dialog.PARAMETERS
        if state.show_assistance_modal:
            return Dialog.ASSISTANCE
        return None

    @property
    def _selection(self) -> SelectionState:
        return self._session.selection

    def _next_step(self, command: Command) -> int:
        state = self._selection
        return STEP_RULES[command.ACTION].target(state.intervention_kind, state.current_step)

    def _commit(self, new_state: SelectionState, add_to_history: bool = True) -> None:
        session = self._session
        if add_to_history:
            session.history.push(session.selection)
        session.selection = new_state
        self._schedule_save()

    def _schedule_save(self) -> None:
        if self._saver is not None:
            self._saver.schedule(self.snapshot)

    def _end_session(self) -> None:
        self._cancel_rephrase()
        session = self._session
        if session is not None:
            session.timer.stop()
            session.history.clear()
        self._session = None

    # ========================
    # Session lifecycle
    # ========================

    def _open_builder(self, command: OpenBuilder) -> Optional[str]:
        try:
            kind = InterventionKind(command.kind)
        except ValueError:
            raise WizardRejection(f"Unknown intervention kind: {command.kind}")

        if self._session is not None:
            logger.warning(
                f"Opening builder for {kind.value} replaces the open "
                f"{self._session.kind.value} session"
            )

        self._cancel_rephrase()
        self._session = NoteSession(SelectionState.initial(kind))
        logger.info(f"Builder session opened: {kind.value}")
        self._schedule_save()
        return None

    def _close_builder(self, command: CloseBuilder) -> Optional[str]:
        logger.info(f"Builder session closed without finalizing: {self._session.kind.value}")
        self._end_session()
        self._schedule_save()
        return None

    def _finalize_note(self, command: FinalizeNote) -> Optional[str]:
        if command.narrative is not None and not isinstance(command.narrative, str):
            raise WizardRejection("Narrative must be text.")

        session = self._session
        narrative = command.narrative if command.narrative is not None else session.selection.current_narrative
        text = ensure_terminal_punctuation(tidy_punctuation(narrative))

        self.ledger.fold(session.kind, text)
        logger.info(f"Note finalized for {session.kind.ledger_key} ({len(text)} characters)")
        self._end_session()
        self._schedule_save()
        return None

    def _edit_narrative(self, command: EditNarrative) -> Optional[str]:
        if not isinstance(command.text, str):
            raise WizardRejection("Narrative must be text.")
        self._commit(self._selection.evolve(current_narrative=command.text), add_to_history=False)
        return None

    def _go_back(self, command: GoBack) -> Optional[str]:
        session = self._session
        previous = session.history.pop()
        if previous is None:
            return "Nothing to undo."
        session.selection = previous
        self._schedule_save()
        return None

    def _add_new_sentence(self, command: AddNewSentence) -> Optional[str]:
        session = self._session
        self.ledger.fold(session.kind, session.selection.current_narrative)

        self._cancel_rephrase()
        session.selection = SelectionState.initial(session.kind)
        session.history.clear()
        session.timer.start()
        logger.info(f"New sentence started for {session.kind.ledger_key}")
        self._schedule_save()
        return None

    def _save_all_notes(self, command: SaveAllNotes) -> Optional[str]:
        if not isinstance(command.notes, Mapping):
            raise WizardRejection("Notes must be a mapping of note keys to text.")
        try:
            self.ledger.replace(command.notes)
        except ValueError as e:
            raise WizardRejection(str(e)) from e
        self._schedule_save()
        return "Notes Saved!"

    def _clear_saved_state(self, command: ClearSavedState) -> Optional[str]:
        if self._saver is not None:
            self._saver.cancel()
        if self.persistence is not None:
            self.persistence.clear()
        self.ledger.clear()
        self._end_session()
        logger.info("Saved session state cleared")
        return None

    # ========================
    # Rephrase (delayed)
    # ========================

    def _rephrase_note(self, command: RephraseNote) -> Optional[str]:
        if self.is_rephrasing:
            raise WizardRejection("Rephrasing already in progress.")
        if not self._selection.selected_phrase_texts:
            raise WizardRejection(NOTHING_TO_REPHRASE)

        self._rephrase_generation += 1
        self._rephrase_done.clear()
        timer = threading.Timer(
            self.rephrase_delay, self._complete_rephrase, args=(self._rephrase_generation,)
        )
        timer.daemon = True
        self._rephrase_timer = timer
        timer.start()
        logger.info(f"Rephrase scheduled ({self.rephrase_delay}s)")
        return "Analyzing..."

    def _cancel_rephrase(self) -> None:
        """Drop the pending rephrase; a timer that already fired finds itself stale"""
        if self._rephrase_timer is not None:
            self._rephrase_timer.cancel()
            self._rephrase_timer = None
            logger.info("Pending rephrase cancelled")
        self._rephrase_generation += 1
        self._rephrase_done.set()

    def _complete_rephrase(self, generation: int) -> None:
        with self._lock:
            if generation != self._rephrase_generation:
                logger.info("Rephrase result discarded: request was cancelled")
                return
            try:
                session = self._session
                narrative = self.synthesizer.synthesize(session.selection, self.catalog)
                self._commit(session.selection.evolve(current_narrative=narrative), add_to_history=True)
                logger.info("Narrative rephrased")
            except NothingToRephrase as e:
                logger.info(f"Rephrase skipped: {e}")
            except Exception:
                logger.exception("Rephrase failed")
            finally:
                self._rephrase_timer = None
                self._rephrase_done.set()

    # ========================
    # Steps 1-3: intervention path
    # ========================

    def _select_category(self, command: SelectCategory) -> Optional[str]:
        state = self._selection
        category = self.catalog.category(state.intervention_kind, command.category_id)
        if category is None:
            raise WizardRejection(f"Unknown category: {command.category_id}")

        self._commit(state.evolve(
            current_step=self._next_step(command),
            selected_category_id=category.id,
            selected_sub_category_id=None,
            selected_context=category.context,
        ))
        return None

    def _select_sub_category(self, command: SelectSubCategory) -> Optional[str]:
        state = self._selection
        category = self.catalog.category(state.intervention_kind, state.selected_category_id)
        sub = category.sub_category(command.sub_category_id) if category else None
        if sub is None:
            raise WizardRejection(f"Unknown sub-category: {command.sub_category_id}")

        self._commit(state.evolve(
            current_step=self._next_step(command),
            selected_sub_category_id=sub.id,
            selected_context=sub.context,
        ))
        return None

    def _select_phrase(self, command: SelectPhrase) -> Optional[str]:
        state = self._selection
        phrase = command.phrase
        if state.has_phrase(phrase):
            phrases = tuple(p for p in state.selected_phrase_texts if p != phrase)
        else:
            candidates = self.catalog.phrases_for(
                state.intervention_kind, state.selected_category_id, state.selected_sub_category_id
            )
            if phrase not in candidates:
                raise WizardRejection(f"Unknown intervention phrase: {phrase}")
            phrases = state.selected_phrase_texts + (phrase,)

        self._commit(state.evolve(selected_phrase_texts=phrases), add_to_history=False)
        return None

    def _toggle_custom_phrase_input(self, command: ToggleCustomPhraseInput) -> Optional[str]:
        state = self._selection
        self._commit(
            state.evolve(show_custom_phrase_input=not state.show_custom_phrase_input),
            add_to_history=False,
        )
        return None

    def _save_custom_phrase(self, command: SaveCustomPhrase) -> Optional[str]:
        state = self._selection
        if not isinstance(command.phrase, str) or not command.phrase.strip():
            raise WizardRejection("Please enter a custom intervention.")

        phrase = command.phrase.strip()
        if state.has_phrase(phrase):
            return "Intervention already selected."

        self._commit(
            state.evolve(
                selected_phrase_texts=state.selected_phrase_texts + (phrase,),
                show_custom_phrase_input=False,
            ),
            add_to_history=False,
        )
        return None

    def _confirm_interventions(self, command: ConfirmInterventions) -> Optional[str]:
        state = self._selection
        if not state.selected_phrase_texts:
            raise WizardRejection("Please select at least one intervention.")

        sentence = f"Patient engaged in {join_phrases(state.selected_phrase_texts)}."
        narrative = sentence if state.is_new_sentence else append_to_narrative(state.current_narrative, sentence)

        self._commit(state.evolve(
            current_narrative=narrative,
            show_parameters_modal=True,
            show_custom_phrase_input=False,
            is_new_sentence=False,
        ))
        return None

    def _close_parameters_modal(self, command: CloseParametersModal) -> Optional[str]:
        self._commit(self._selection.evolve(
            current_step=self._next_step(command),
            show_parameters_modal=False,
        ))
        return None

    def _save_parameters(self, command: SaveParameters) -> Optional[str]:
        state = self._selection
        if not isinstance(command.details, Mapping):
            raise WizardRejection("Session parameters must be a mapping of group keys to values.")

        for key, values in command.details.items():
            group = self.catalog.parameter_group(key)
            if group is None:
                raise WizardRejection(f"Unknown session parameter: {key}")
            if not isinstance(values, (list, tuple)) or not all(value in group.options for value in values):
                raise WizardRejection(f"Invalid values for session parameter '{key}'")

        # Catalog order for groups and values
        pairs = []
        for group in self.catalog.parameter_groups:
            chosen = command.details.get(group.key) or ()
            values = tuple(option for option in group.options if option in chosen)
            if values:
                pairs.append((group.key, values))
        pairs = tuple(pairs)

        clause = resolve_parameter_clause(self.catalog, pairs)
        self._commit(state.evolve(
            current_step=self._next_step(command),
            show_parameters_modal=False,
            session_parameters=pairs,
            current_narrative=splice_parameters(state.current_narrative, clause),
        ))
        return None

    # ========================
    # Steps 4-5
    # ========================

    def _select_reasoning(self, command: SelectReasoning) -> Optional[str]:
        state = self._selection
        if command.reasoning not in self.catalog.reasoning_options(state.selected_context):
            raise WizardRejection(f"Unknown clinical rationale: {command.reasoning}")

        self._commit(state.evolve(
            current_step=self._next_step(command),
            selected_reasoning_text=command.reasoning,
            current_narrative=append_to_narrative(
                state.current_narrative, f"Intervention was provided {command.reasoning}."
            ),
        ))
        return None

    def _select_goal(self, command: SelectGoal) -> Optional[str]:
        state = self._selection
        if command.goal not in self.catalog.patient_goals:
            raise WizardRejection(f"Unknown patient goal: {command.goal}")

        self._commit(state.evolve(
            current_step=self._next_step(command),
            selected_goal_text=command.goal,
            current_narrative=append_to_narrative(
                state.current_narrative, f"This addresses the patient goal of \"{command.goal}\"."
            ),
        ))
        return None

    # ========================
    # Step 6: assistance dialog
    # ========================

    def _select_assistance_type(self, command: SelectAssistanceType) -> Optional[str]:
        state = self._selection
        if self.catalog.assistance_type(command.assistance_id) is None:
            raise WizardRejection(f"Unknown assistance type: {command.assistance_id}")
        if state.is_assistance_used(command.assistance_id):
            raise WizardRejection("This assistance type has already been added.")

        self._commit(state.evolve(
            show_assistance_modal=True,
            assistance_modal_step=ModalStep.LEVEL,
            selected_assistance_id=command.assistance_id,
            selected_assistance_level_id=None,
            selected_justification=None,
        ))
        return None

    def _close_assistance_modal(self, command: CloseAssistanceModal) -> Optional[str]:
        self._commit(self._selection.evolve(
            show_assistance_modal=False,
            assistance_modal_step=ModalStep.LEVEL,
            selected_justification=None,
        ))
        return None

    def _select_assistance_level(self, command: SelectAssistanceLevel) -> Optional[str]:
        state = self._selection
        assistance = self.catalog.assistance_type(state.selected_assistance_id)
        if assistance is None or assistance.level(command.level_id) is None:
            raise WizardRejection(f"Unknown assistance level: {command.level_id}")

        chosen = state.evolve(selected_assistance_level_id=command.level_id)
        if self.catalog.has_justifications(assistance.id):
            self._commit(
                chosen.evolve(assistance_modal_step=ModalStep.JUSTIFICATION, selected_justification=None),
                add_to_history=False,
            )
        else:
            next_step = STEP_RULES[AddWithoutJustification.ACTION].target(
                state.intervention_kind, state.current_step
            )
            self._resolve_assistance(chosen, justification=None, next_step=next_step)
        return None

    def _select_justification(self, command: SelectJustification) -> Optional[str]:
        state = self._selection
        if command.justification not in self.catalog.justification_options(state.selected_assistance_id):
            raise WizardRejection(f"Unknown justification: {command.justification}")

        self._commit(state.evolve(selected_justification=command.justification), add_to_history=False)
        return None

    def _back_in_modal(self, command: BackInModal) -> Optional[str]:
        self._commit(
            self._selection.evolve(assistance_modal_step=ModalStep.LEVEL, selected_justification=None),
            add_to_history=False,
        )
        return None

    def _add_with_justification(self, command: AddWithJustification) -> Optional[str]:
        state = self._selection
        if not state.selected_justification:
            raise WizardRejection("Please select a justification.")
        self._resolve_assistance(state, state.selected_justification, self._next_step(command))
        return None

    def _add_without_justification(self, command: AddWithoutJustification) -> Optional[str]:
        state = self._selection
        if not state.selected_assistance_level_id:
            raise WizardRejection("Please select an assistance level.")
        self._resolve_assistance(state, None, self._next_step(command))
        return None

    def _resolve_assistance(self, state: SelectionState, justification: Optional[str], next_step: int) -> None:
        """Record the chosen level, append its sentence and close the dialog"""
        assistance = self.catalog.assistance_type(state.selected_assistance_id)
        level = assistance.level(state.selected_assistance_level_id)

        sentence = f"Patient required {level.text} {justification}." if justification else f"Patient required {level.text}."
        record = AssistanceRecord(assistance.id, level.id, justification)

        self._commit(state.evolve(
            current_step=next_step,
            current_narrative=append_to_narrative(state.current_narrative, sentence),
            show_assistance_modal=False,
            assistance_modal_step=ModalStep.LEVEL,
            used_assistance_ids=state.used_assistance_ids + (assistance.id,),
            assistance_records=state.assistance_records + (record,),
        ))
        logger.info(f"Assistance recorded: {assistance.id}/{level.id}")

    def _skip_assistance(self, command: SkipAssistance) -> Optional[str]:
        self._commit(self._selection.evolve(current_step=self._next_step(command)))
        return None

    # ========================
    # Step 7: difficulty
    # ========================

    def _select_difficulty(self, command: SelectDifficulty) -> Optional[str]:
        state = self._selection
        reason = command.reason
        if reason in state.selected_difficulty_reasons:
            reasons = tuple(r for r in state.selected_difficulty_reasons if r != reason)
        else:
            if reason not in Catalog.flatten(self.catalog.difficulty_groups):
                raise WizardRejection(f"Unknown difficulty reason: {reason}")
            reasons = state.selected_difficulty_reasons + (reason,)

        self._commit(state.evolve(selected_difficulty_reasons=reasons), add_to_history=False)
        return None

    def _add_difficulty(self, command: AddDifficulty) -> Optional[str]:
        state = self._selection
        narrative = state.current_narrative
        if state.selected_difficulty_reasons:
            reasons = ' and '.join(state.selected_difficulty_reasons)
            narrative = append_to_narrative(narrative, f"Performance was limited {reasons}.")

        self._commit(state.evolve(
            current_step=self._next_step(command),
            active_tab=ActiveTab.RESPONSE,
            current_narrative=narrative,
        ))
        return None

    # ========================
    # Steps 8-11: response / outcome / plan
    # ========================

    def _switch_tab(self, command: SwitchTab) -> Optional[str]:
        try:
            tab = ActiveTab(command.tab)
        except ValueError:
            raise WizardRejection(f"Unknown tab: {command.tab}")
        self._commit(self._selection.evolve(active_tab=tab), add_to_history=False)
        return None

    def _select_response(self, command: SelectResponse) -> Optional[str]:
        state = self._selection
        self._require_option(command.response, self.catalog.response_groups, 'response')
        self._commit(state.evolve(
            current_step=self._next_step(command),
            active_tab=ActiveTab.OUTCOME,
            selected_response=command.response,
            current_narrative=append_to_narrative(state.current_narrative, f"{command.response}."),
        ))
        return None

    def _select_outcome(self, command: SelectOutcome) -> Optional[str]:
        state = self._selection
        self._require_option(command.outcome, self.catalog.outcome_groups, 'outcome')
        self._commit(state.evolve(
            current_step=self._next_step(command),
            active_tab=ActiveTab.PLAN,
            selected_outcome=command.outcome,
            current_narrative=append_to_narrative(state.current_narrative, f"{command.outcome}."),
        ))
        return None

    def _select_plan(self, command: SelectPlan) -> Optional[str]:
        state = self._selection
        self._require_option(command.plan, self.catalog.plan_groups, 'plan')
        self._commit(state.evolve(
            current_step=self._next_step(command),
            selected_plan=command.plan,
            current_narrative=append_to_narrative(state.current_narrative, f"Plan: {command.plan}."),
        ))
        return None

    @staticmethod
    def _require_option(value: Any, groups, what: str) -> None:
        if value not in Catalog.flatten(groups):
            raise WizardRejection(f"Unknown {what}: {value}")
