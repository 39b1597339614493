"""
Shared fixtures: a small in-memory catalog and engines built on it.
"""

import copy
import random
import sys
import os
from pathlib import Path

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backend.core.catalog import Catalog
from backend.core.rephraser import RephrasingSynthesizer
from backend.core.wizard_engine import WizardEngine

REPO_ROOT = Path(__file__).resolve().parent.parent
CATALOG_PATH = REPO_ROOT / "data" / "catalog.json"

CATALOG_DATA = {
    "interventionData": {
        "self-care": {
            "adl": {
                "name": "ADL Training",
                "context": "adl",
                "phrases": ["Upper body dressing", "Grooming", "Toilet transfers"],
            },
            "bathing": {
                "name": "Bathing",
                "phrases": ["Tub transfer bench training"],
            },
        },
        "therapeutic": {
            "mobility": {
                "name": "Functional Mobility",
                "subInterventions": {
                    "transfers": {
                        "name": "Transfers",
                        "context": "transfers",
                        "phrases": ["Sit to stand transfers", "Therapeutic exercise"],
                    },
                },
            },
        },
    },
    "clinicalReasoning": {
        "contextual": {
            "adl": ["to improve independence with dressing"],
            "transfers": ["to improve strength"],
        },
        "general": ["to promote independence"],
    },
    "patientGoals": ["Return home", "Dress independently"],
    "assistanceLevels": [
        {
            "id": "physical",
            "name": "Physical Assistance",
            "levels": [
                {"id": "min", "text": "minimal assistance", "description": "75% effort"},
                {"id": "mod", "text": "moderate assistance", "description": "50% effort"},
            ],
        },
        {
            "id": "verbal",
            "name": "Verbal Cueing",
            "levels": [
                {"id": "cues", "text": "verbal cues", "description": "Occasional cues"},
            ],
        },
    ],
    "assistanceJustifications": {
        "physical": {"options": ["due to impaired balance", "due to decreased strength"]},
    },
    "difficultyReasons": {
        "physical": {"name": "Physical", "options": ["by fatigue", "by pain"]},
    },
    "responseOptions": {
        "participation": {"name": "Participation", "options": ["Patient tolerated treatment well"]},
    },
    "outcomeOptions": {
        "progress": {"name": "Progress", "options": ["Patient is making progress toward goals"]},
    },
    "sessionPlans": {
        "continuation": {"name": "Continuation", "options": ["continue current plan of care"]},
    },
    "sessionParameters": {
        "sets": {"name": "sets", "options": ["2", "3"]},
        "reps": {"name": "repetitions", "options": ["10", "15"]},
    },
}


@pytest.fixture
def catalog_data():
    """Fresh, mutable copy of the raw catalog document"""
    return copy.deepcopy(CATALOG_DATA)


@pytest.fixture
def catalog(catalog_data):
    return Catalog.from_dict(catalog_data)


@pytest.fixture
def engine(catalog):
    """In-memory engine with a seeded synthesizer and no rephrase delay"""
    wizard = WizardEngine(
        catalog,
        synthesizer=RephrasingSynthesizer(random.Random(7)),
        rephrase_delay=0,
    )
    yield wizard
    wizard.shutdown()


def run_actions(engine, actions):
    """Dispatch (action, payload) pairs, failing on the first rejection"""
    result = None
    for action, payload in actions:
        result = engine.dispatch(action, payload)
        assert result.to_json()['accepted'], f"{action} rejected: {result.to_json()}"
    return result


THERAPEUTIC_FLOW = [
    ('open-builder', {'kind': '97530'}),
    ('select-category', {'category_id': 'mobility'}),
    ('select-sub-category', {'sub_category_id': 'transfers'}),
    ('select-phrase', {'phrase': 'Therapeutic exercise'}),
    ('confirm-interventions', {}),
    ('close-parameters-modal', {}),
    ('select-reasoning', {'reasoning': 'to improve strength'}),
    ('select-goal', {'goal': 'Return home'}),
    ('select-assistance-type', {'assistance_id': 'physical'}),
    ('select-assistance-level', {'level_id': 'min'}),
    ('select-justification', {'justification': 'due to impaired balance'}),
    ('add-with-justification', {}),
    ('skip-assistance', {}),
    ('select-difficulty', {'reason': 'by fatigue'}),
    ('add-difficulty', {}),
    ('select-response', {'response': 'Patient tolerated treatment well'}),
    ('select-outcome', {'outcome': 'Patient is making progress toward goals'}),
    ('select-plan', {'plan': 'continue current plan of care'}),
]

# History-producing transitions in THERAPEUTIC_FLOW (after open-builder)
THERAPEUTIC_FLOW_HISTORY = 13

THERAPEUTIC_NARRATIVE = (
    'Patient engaged in therapeutic exercise. '
    'Intervention was provided to improve strength. '
    'This addresses the patient goal of "Return home". '
    'Patient required minimal assistance due to impaired balance. '
    'Performance was limited by fatigue. '
    'Patient tolerated treatment well. '
    'Patient is making progress toward goals. '
    'Plan: continue current plan of care.'
)
