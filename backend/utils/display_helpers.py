"""
Display Helpers - Convert selection state to a renderer-friendly step view

Used by the Flask API and the console harness. The core never depends on
this module; it only reads SelectionState and the Catalog.
"""

from typing import Any, Dict, List, Optional

from backend.core.catalog import Catalog
from backend.core.selection_state import SelectionState
from backend.core.step_graph import MAX_PROGRESS_STEPS, TAB_STEPS, ActiveTab, ModalStep, progress_percent


# Step number -> heading shown above the options
STEP_TITLES = {
    1: 'Select Intervention Category',
    2: 'Select Sub-Category',
    3: 'Select Intervention Phrase(s)',
    4: 'Select Clinical Rationale',
    5: 'Link to Patient Goal',
    6: 'Select Assistance Provided (Optional)',
    7: 'Why was it difficult? (Optional)',
    8: 'Response, Outcome and Plan',
    9: 'Response, Outcome and Plan',
    10: 'Response, Outcome and Plan',
    11: 'Review and Finalize Note',
}

STEP_HINTS = {
    6: "Add all needed assistance types, then click 'Continue'.",
    11: 'Edit the narrative if needed, then finalize the note.',
}

# Tab -> (action, payload key)
TAB_ACTIONS = {
    ActiveTab.RESPONSE: ('select-response', 'response'),
    ActiveTab.OUTCOME: ('select-outcome', 'outcome'),
    ActiveTab.PLAN: ('select-plan', 'plan'),
}


def _option(action: str, payload: Dict[str, Any], label: str,
            selected: bool = False, disabled: bool = False,
            group: Optional[str] = None, description: str = '') -> Dict[str, Any]:
    option = {
        'action': action,
        'payload': payload,
        'label': label,
        'selected': selected,
        'disabled': disabled,
    }
    if group:
        option['group'] = group
    if description:
        option['description'] = description
    return option


def format_step_header(selection: SelectionState) -> str:
    """e.g. 'Step 4 of 11'"""
    return f"Step {selection.current_step} of {MAX_PROGRESS_STEPS}"


def _step_options(selection: SelectionState, catalog: Catalog) -> List[Dict[str, Any]]:
    step = selection.current_step
    kind = selection.intervention_kind

    if step == 1:
        return [
            _option('select-category', {'category_id': c.id}, c.name)
            for c in catalog.categories_for(kind)
        ]

    if step == 2:
        category = catalog.category(kind, selection.selected_category_id)
        subs = category.sub_categories if category else ()
        return [
            _option('select-sub-category', {'sub_category_id': s.id}, s.name)
            for s in subs
        ]

    if step == 3:
        phrases = catalog.phrases_for(kind, selection.selected_category_id, selection.selected_sub_category_id)
        options = [
            _option('select-phrase', {'phrase': p}, p, selected=selection.has_phrase(p))
            for p in phrases
        ]
        # Custom phrases are shown selected after the catalog ones
        options.extend(
            _option('select-phrase', {'phrase': p}, p, selected=True, group='custom')
            for p in selection.selected_phrase_texts if p not in phrases
        )
        return options

    if step == 4:
        return [
            _option('select-reasoning', {'reasoning': r}, r)
            for r in catalog.reasoning_options(selection.selected_context)
        ]

    if step == 5:
        return [_option('select-goal', {'goal': g}, g) for g in catalog.patient_goals]

    if step == 6:
        return [
            _option('select-assistance-type', {'assistance_id': a.id}, a.name,
                    disabled=selection.is_assistance_used(a.id))
            for a in catalog.assistance_types
        ]

    if step == 7:
        return [
            _option('select-difficulty', {'reason': opt}, opt,
                    selected=opt in selection.selected_difficulty_reasons, group=group.name)
            for group in catalog.difficulty_groups
            for opt in group.options
        ]

    if step in TAB_STEPS:
        action, key = TAB_ACTIONS[selection.active_tab]
        groups = {
            ActiveTab.RESPONSE: catalog.response_groups,
            ActiveTab.OUTCOME: catalog.outcome_groups,
            ActiveTab.PLAN: catalog.plan_groups,
        }[selection.active_tab]
        return [
            _option(action, {key: opt}, opt, group=group.name)
            for group in groups
            for opt in group.options
        ]

    return []


def _step_controls(selection: SelectionState) -> List[str]:
    """Step-level buttons currently enabled"""
    step = selection.current_step
    if step == 3:
        controls = ['toggle-custom-phrase-input']
        if selection.show_custom_phrase_input:
            controls.append('save-custom-phrase')
        if selection.selected_phrase_texts:
            controls.append('confirm-interventions')
        return controls
    if step == 6:
        return ['skip-assistance']
    if step == 7:
        return ['add-difficulty']
    return []


def describe_dialog(selection: SelectionState, catalog: Catalog) -> Optional[Dict[str, Any]]:
    """
    View of the open dialog, if any.

    Returns:
        dict with 'name', 'options' and 'controls', or None
    """
    if selection.show_parameters_modal:
        return {
            'name': 'parameters',
            'title': 'Session Details',
            'options': [
                _option('save-parameters', {'details': {group.key: [opt]}}, opt,
                        selected=opt in selection.parameters.get(group.key, []), group=group.name)
                for group in catalog.parameter_groups
                for opt in group.options
            ],
            'controls': ['save-parameters', 'close-parameters-modal'],
        }

    if not selection.show_assistance_modal:
        return None

    assistance = catalog.assistance_type(selection.selected_assistance_id)
    if assistance is None:
        return None

    if selection.assistance_modal_step == ModalStep.LEVEL:
        return {
            'name': 'assistance',
            'step': ModalStep.LEVEL.value,
            'title': assistance.name,
            'options': [
                _option('select-assistance-level', {'level_id': level.id}, level.text,
                        selected=level.id == selection.selected_assistance_level_id,
                        description=level.description)
                for level in assistance.levels
            ],
            'controls': ['close-assistance-modal'],
        }

    controls = ['back-in-modal', 'add-no-justify']
    if selection.selected_justification:
        controls.append('add-with-justification')
    return {
        'name': 'assistance',
        'step': ModalStep.JUSTIFICATION.value,
        'title': f"{assistance.name}: Justification (Optional)",
        'options': [
            _option('select-justification', {'justification': j}, j,
                    selected=j == selection.selected_justification)
            for j in catalog.justification_options(assistance.id)
        ],
        'controls': controls + ['close-assistance-modal'],
    }


def describe_step(selection: SelectionState, catalog: Catalog) -> Dict[str, Any]:
    """
    Convert selection state to a step view for display.

    Args:
        selection: Current selection state
        catalog: Loaded catalog

    Returns:
        dict: {
            'step': 6,
            'total': 11,
            'header': 'Step 6 of 11',
            'progress': 55,
            'title': 'Select Assistance Provided (Optional)',
            'hint': "...",
            'kind': 'Skilled Intervention: 97535 Self Care',
            'options': [
                {'action': 'select-assistance-type', 'payload': {...},
                 'label': 'Physical Assistance', 'selected': False, 'disabled': True},
                ...
            ],
            'controls': ['skip-assistance'],
            'tabs': None,
            'dialog': None
        }
    """
    step = selection.current_step
    tabs = None
    if step in TAB_STEPS:
        tabs = [
            {'tab': tab.value, 'label': tab.value.capitalize(), 'active': tab == selection.active_tab}
            for tab in ActiveTab
        ]

    return {
        'step': step,
        'total': MAX_PROGRESS_STEPS,
        'header': format_step_header(selection),
        'progress': progress_percent(step),
        'title': STEP_TITLES.get(step, ''),
        'hint': STEP_HINTS.get(step),
        'kind': selection.intervention_kind.label if selection.intervention_kind else None,
        'options': _step_options(selection, catalog),
        'controls': _step_controls(selection),
        'tabs': tabs,
        'dialog': describe_dialog(selection, catalog),
    }
