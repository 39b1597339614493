"""
Rephrasing Synthesizer - Regenerates the narrative from structured selections

Responsibilities:
- Resolve used assistance types, session parameters and option picks
  into sentence fragments via the catalog
- Render one randomly chosen lead sentence, then append the remaining
  sentences in fixed order
- Apply lexical replacements to the trailing sentences, then punctuation
  cleanup to the whole narrative

Design principles:
- Pure with respect to SelectionState (returns a string, mutates nothing)
- Randomness comes from an injected random.Random; choose() is the only
  selection policy, so a seeded source pins the output
- Every lead template contains each selected phrase, the rationale text
  and the goal text verbatim when they are present
- Timing (the delay before completion) belongs to WizardEngine, not here
"""

import logging
import random
import re
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from backend.core.catalog import Catalog
from backend.core.narrative import (
    append_to_narrative,
    format_parameter_clause,
    tidy_punctuation,
)
from backend.core.selection_state import SelectionState

logger = logging.getLogger(__name__)

T = TypeVar('T')

STRONG_VERBS = (
    'facilitated in',
    'instructed in',
    'trained in',
    'guided through',
)

# (pattern, replacement), applied in order
LEXICAL_REPLACEMENTS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r'helped', re.IGNORECASE), 'provided assistance for'),
)

NOTHING_TO_REPHRASE = "Please select at least one intervention to rephrase."


class NothingToRephrase(ValueError):
    """No intervention phrase is selected"""


def choose(rng: random.Random, candidates: Sequence[T]) -> T:
    """
    Uniform choice over a fixed candidate list.

    Raises:
        ValueError: If candidates is empty
    """
    if not candidates:
        raise ValueError("No candidates to choose from")
    return candidates[rng.randrange(len(candidates))]


def resolve_parameter_clause(catalog: Catalog, session_parameters: Iterable[Tuple[str, Sequence[str]]]) -> str:
    """
    Parameter clause for the chosen session parameters.

    Group keys missing from the catalog fall back to the key as unit name.
    """
    groups = []
    for key, values in session_parameters:
        group = catalog.parameter_group(key)
        groups.append((group.name if group else key, values))
    return format_parameter_clause(groups)


def resolve_assistance(catalog: Catalog, selection: SelectionState) -> List[str]:
    """
    Level text (plus justification) for every resolved assistance type.

    Returns:
        list: De-duplicated clauses in resolution order
    """
    clauses: List[str] = []
    for record in selection.assistance_records:
        assistance = catalog.assistance_type(record.assistance_id)
        level = assistance.level(record.level_id) if assistance else None
        if level is None:
            logger.warning(
                f"Assistance record not in catalog: {record.assistance_id}/{record.level_id}"
            )
            continue
        text = level.text
        if record.justification:
            text += f" {record.justification}"
        if text not in clauses:
            clauses.append(text)
    return clauses


# ========================
# Lead sentence templates
# ========================

def _trailing_rationale(data: Dict[str, str]) -> str:
    sentence = f"Patient was {data['verb']} {data['interventions']}{data['params']}"
    if data['reasoning']:
        sentence += f" {data['reasoning']}"
    if data['goal']:
        sentence += f", addressing the patient goal of \"{data['goal']}\""
    return sentence + '.'


def _goal_first(data: Dict[str, str]) -> str:
    sentence = f"Patient was {data['verb']} {data['interventions']}{data['params']}"
    if data['goal']:
        sentence += f" to address the goal of \"{data['goal']}\""
    if data['reasoning']:
        sentence += f"; intervention was provided {data['reasoning']}"
    return sentence + '.'


def _leading_rationale(data: Dict[str, str]) -> str:
    if data['reasoning']:
        sentence = f"Intervention was provided {data['reasoning']}: patient was "
    else:
        sentence = "Patient was "
    sentence += f"{data['verb']} {data['interventions']}{data['params']}"
    if data['goal']:
        sentence += f" in support of the goal of \"{data['goal']}\""
    return sentence + '.'


TEMPLATES: Tuple[Callable[[Dict[str, str]], str], ...] = (
    _trailing_rationale,
    _goal_first,
    _leading_rationale,
)


class RephrasingSynthesizer:
    """
    Builds an alternative narrative for the current selections.

    Two calls on identical input may return different strings; with the
    same seed they return the same string.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Args:
            rng: Random source (seed it to make output reproducible)
        """
        self.rng = rng if rng is not None else random.Random()

    def synthesize(self, selection: SelectionState, catalog: Catalog) -> str:
        """
        Render a replacement narrative.

        Args:
            selection: Snapshot to rephrase (not modified)
            catalog: Catalog for assistance and parameter lookups

        Returns:
            str: New narrative

        Raises:
            NothingToRephrase: If no intervention phrase is selected
        """
        if not selection.selected_phrase_texts:
            raise NothingToRephrase(NOTHING_TO_REPHRASE)

        params = resolve_parameter_clause(catalog, selection.session_parameters)
        data = {
            'verb': choose(self.rng, STRONG_VERBS),
            'interventions': ', '.join(selection.selected_phrase_texts),
            'params': f" for {params}" if params else '',
            'reasoning': selection.selected_reasoning_text or '',
            'goal': selection.selected_goal_text or '',
        }
        template = choose(self.rng, TEMPLATES)
        lead = template(data)

        # Lexical replacements touch the trailing sentences only; the lead
        # sentence keeps phrase, rationale and goal text verbatim
        tail = ''
        assistance = resolve_assistance(catalog, selection)
        if assistance:
            tail = append_to_narrative(tail, f"Patient required {' and '.join(assistance)}.")
        if selection.selected_difficulty_reasons:
            reasons = ' and '.join(selection.selected_difficulty_reasons)
            tail = append_to_narrative(tail, f"Performance was limited {reasons}.")
        if selection.selected_response:
            tail = append_to_narrative(tail, f"{selection.selected_response}.")
        if selection.selected_outcome:
            tail = append_to_narrative(tail, f"{selection.selected_outcome}.")
        if selection.selected_plan:
            tail = append_to_narrative(tail, f"Plan: {selection.selected_plan}.")

        for pattern, replacement in LEXICAL_REPLACEMENTS:
            tail = pattern.sub(replacement, tail)

        narrative = append_to_narrative(lead, tail) if tail else lead
        logger.debug(f"Rephrased with template '{template.__name__}', verb '{data['verb']}'")
        return tidy_punctuation(narrative)
