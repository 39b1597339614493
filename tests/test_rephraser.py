"""
Test Rephrasing Synthesizer - seeded output, verbatim content, clause omission

Run with: python3 -m pytest tests/test_rephraser.py
"""

import copy
import random
import unittest

import pytest

from backend.core.catalog import Catalog
from backend.core.rephraser import (
    NOTHING_TO_REPHRASE,
    STRONG_VERBS,
    NothingToRephrase,
    RephrasingSynthesizer,
    choose,
    resolve_assistance,
    resolve_parameter_clause,
)
from backend.core.selection_state import AssistanceRecord, SelectionState
from backend.utils.intervention_kinds import InterventionKind

from conftest import CATALOG_DATA


def make_selection(**overrides):
    fields = dict(
        current_step=11,
        intervention_kind=InterventionKind.THERAPEUTIC,
        selected_category_id='mobility',
        selected_sub_category_id='transfers',
        selected_context='transfers',
        selected_phrase_texts=('Sit to stand transfers', 'Therapeutic exercise'),
        selected_reasoning_text='to improve strength',
        selected_goal_text='Return home',
        used_assistance_ids=('physical',),
        assistance_records=(AssistanceRecord('physical', 'min', 'due to impaired balance'),),
        selected_difficulty_reasons=('by fatigue', 'by pain'),
        selected_response='Patient tolerated treatment well',
        selected_outcome='Patient is making progress toward goals',
        selected_plan='continue current plan of care',
        session_parameters=(('sets', ('3',)),),
    )
    fields.update(overrides)
    return SelectionState(**fields)


class TestSynthesize(unittest.TestCase):

    def setUp(self):
        self.catalog = Catalog.from_dict(copy.deepcopy(CATALOG_DATA))

    def test_same_seed_same_output(self):
        selection = make_selection()
        first = RephrasingSynthesizer(random.Random(42)).synthesize(selection, self.catalog)
        second = RephrasingSynthesizer(random.Random(42)).synthesize(selection, self.catalog)
        self.assertEqual(first, second)

    def test_content_is_verbatim_for_every_seed(self):
        selection = make_selection()
        for seed in range(20):
            text = RephrasingSynthesizer(random.Random(seed)).synthesize(selection, self.catalog)

            self.assertIn('Sit to stand transfers, Therapeutic exercise', text)
            self.assertIn('to improve strength', text)
            self.assertIn('"Return home"', text)
            self.assertIn(' for 3 sets', text)
            self.assertTrue(any(verb in text for verb in STRONG_VERBS), text)

    def test_trailing_sentences_in_fixed_order(self):
        text = RephrasingSynthesizer(random.Random(3)).synthesize(make_selection(), self.catalog)

        tail = (
            "Patient required minimal assistance due to impaired balance. "
            "Performance was limited by fatigue and by pain. "
            "Patient tolerated treatment well. "
            "Patient is making progress toward goals. "
            "Plan: continue current plan of care."
        )
        self.assertTrue(text.endswith(tail), text)

    def test_selection_not_modified(self):
        selection = make_selection()
        before = selection.to_json()
        RephrasingSynthesizer(random.Random(1)).synthesize(selection, self.catalog)
        self.assertEqual(selection.to_json(), before)

    def test_missing_goal_and_rationale_omit_clauses(self):
        selection = make_selection(
            selected_reasoning_text=None,
            selected_goal_text=None,
            assistance_records=(),
            used_assistance_ids=(),
            selected_difficulty_reasons=(),
            selected_response=None,
            selected_outcome=None,
            selected_plan=None,
            session_parameters=(),
        )
        for seed in range(20):
            text = RephrasingSynthesizer(random.Random(seed)).synthesize(selection, self.catalog)

            self.assertNotIn('""', text)
            self.assertNotIn('goal', text)
            self.assertNotIn('Intervention was provided', text)
            self.assertTrue(text.startswith('Patient was '), text)
            self.assertTrue(text.endswith('Sit to stand transfers, Therapeutic exercise.'), text)

    def test_nothing_to_rephrase(self):
        selection = make_selection(selected_phrase_texts=())
        with self.assertRaises(NothingToRephrase) as ctx:
            RephrasingSynthesizer().synthesize(selection, self.catalog)
        self.assertEqual(str(ctx.exception), NOTHING_TO_REPHRASE)


def test_lexical_replacement_applies_to_trailing_sentences(catalog):
    selection = make_selection(selected_response='Patient helped with cleanup')
    text = RephrasingSynthesizer(random.Random(0)).synthesize(selection, catalog)

    assert 'Patient provided assistance for with cleanup.' in text
    assert 'helped' not in text


def test_selected_phrases_kept_verbatim_despite_replacements(catalog):
    selection = make_selection(selected_phrase_texts=('Helped with dressing', 'Grooming'))
    for seed in range(20):
        text = RephrasingSynthesizer(random.Random(seed)).synthesize(selection, catalog)
        assert 'Helped with dressing, Grooming' in text, text


def test_assistance_joined_and_deduplicated(catalog):
    selection = make_selection(
        assistance_records=(
            AssistanceRecord('physical', 'mod', None),
            AssistanceRecord('verbal', 'cues', None),
            AssistanceRecord('physical', 'mod', None),
        ),
    )
    assert resolve_assistance(catalog, selection) == ['moderate assistance', 'verbal cues']

    text = RephrasingSynthesizer(random.Random(5)).synthesize(selection, catalog)
    assert 'Patient required moderate assistance and verbal cues.' in text


def test_assistance_record_missing_from_catalog_is_skipped(catalog):
    selection = make_selection(assistance_records=(AssistanceRecord('tactile', 'light', None),))
    assert resolve_assistance(catalog, selection) == []


def test_parameter_clause_uses_group_names(catalog):
    clause = resolve_parameter_clause(catalog, [('sets', ('2', '3')), ('reps', ('10',)), ('laps', ('4',))])
    assert clause == '2, 3 sets; 10 repetitions; 4 laps'


def test_choose_is_uniform_over_candidates():
    rng = random.Random(11)
    picks = {choose(rng, ('a', 'b', 'c')) for _ in range(200)}
    assert picks == {'a', 'b', 'c'}


def test_choose_empty_raises():
    with pytest.raises(ValueError):
        choose(random.Random(), [])
