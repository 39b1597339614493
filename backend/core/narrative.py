"""
Narrative Accumulator - Sentence stitching for the clinical note

Pure text-joining helpers. No state, no catalog access.

Rules:
- append_to_narrative() starts a new sentence, terminating the current
  text with a period when it has no terminal punctuation
- splice_parameters() extends the CURRENT sentence instead
- tidy_punctuation() is best-effort cleanup, not an invariant
"""

import re
from typing import Iterable, List, Sequence, Tuple

TERMINAL_PUNCTUATION = ('.', '!', '?')

_REPEATED_PERIODS = re.compile(r'\.{2,}')
_SPACE_BEFORE_PERIOD = re.compile(r'\s+\.')
_REPEATED_SPACES = re.compile(r' {2,}')


def append_to_narrative(current: str, addition: str) -> str:
    """
    Append a sentence to the narrative.

    Args:
        current: Existing narrative (may be empty or whitespace)
        addition: Text to append

    Returns:
        str: Joined narrative

    Examples:
        >>> append_to_narrative("", "  Plan: continue.  ")
        'Plan: continue.'
        >>> append_to_narrative("Patient engaged in dressing", "Plan: continue.")
        'Patient engaged in dressing. Plan: continue.'
    """
    if not current.strip():
        return addition.strip()

    narrative = current.strip()
    if not narrative.endswith(TERMINAL_PUNCTUATION):
        narrative += '.'
    return f"{narrative} {addition.strip()}"


def ensure_terminal_punctuation(text: str) -> str:
    """Strip text and add a period unless it already ends a sentence"""
    text = text.strip()
    if text and not text.endswith(TERMINAL_PUNCTUATION):
        text += '.'
    return text


def lower_first(text: str) -> str:
    return text[:1].lower() + text[1:]


def join_phrases(phrases: Sequence[str]) -> str:
    """
    Join intervention phrases for "Patient engaged in ...".

    Lower-cases the first letter of each phrase. Commas between all but
    the last two, " and " before the last. A single phrase has no connective.

    Examples:
        >>> join_phrases(["Therapeutic exercise"])
        'therapeutic exercise'
        >>> join_phrases(["Grooming", "Dressing", "Bathing"])
        'grooming, dressing and bathing'
    """
    lowered = [lower_first(p) for p in phrases]
    if not lowered:
        return ''
    if len(lowered) == 1:
        return lowered[0]
    return ', '.join(lowered[:-1]) + ' and ' + lowered[-1]


def format_parameter_clause(groups: Iterable[Tuple[str, Sequence[str]]]) -> str:
    """
    Build the session parameter clause.

    Args:
        groups: (unit name, chosen values) pairs in display order

    Returns:
        str: e.g. '3 sets; 10, 15 repetitions' ('' when nothing was chosen)
    """
    parts: List[str] = []
    for name, values in groups:
        if values:
            parts.append(f"{', '.join(values)} {name}")
    return '; '.join(parts)


def splice_parameters(narrative: str, clause: str) -> str:
    """
    Extend the current sentence with " for {clause}."

    Removes one trailing period from the narrative first. Returns the
    narrative unchanged when the clause is empty.
    """
    if not clause:
        return narrative
    base = narrative.strip()
    if base.endswith('.'):
        base = base[:-1]
    return f"{base} for {clause}."


def tidy_punctuation(text: str) -> str:
    """
    Collapse repeated periods, "space-period" sequences and double spaces.
    """
    text = _SPACE_BEFORE_PERIOD.sub('.', text)
    text = _REPEATED_PERIODS.sub('.', text)
    text = _REPEATED_SPACES.sub(' ', text)
    return text.strip()
