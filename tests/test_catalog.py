"""
Test Catalog - loading, startup-fatal errors and lookups

Run with: python3 -m pytest tests/test_catalog.py
"""

import json

import pytest

from backend.core.catalog import Catalog, CatalogError, REQUIRED_SECTIONS, load_catalog
from backend.utils.intervention_kinds import InterventionKind

from conftest import CATALOG_PATH


class TestCatalogLoading:
    """load_catalog() and Catalog.from_dict()"""

    def test_shipped_catalog_loads(self):
        catalog = load_catalog(str(CATALOG_PATH))

        assert catalog.categories_for(InterventionKind.SELF_CARE)
        assert catalog.categories_for(InterventionKind.THERAPEUTIC)
        assert catalog.assistance_types
        assert catalog.patient_goals

    def test_shipped_therapeutic_categories_have_sub_categories(self):
        catalog = load_catalog(str(CATALOG_PATH))
        for category in catalog.categories_for(InterventionKind.THERAPEUTIC):
            assert category.sub_categories, f"{category.id} has no sub-interventions"

    def test_missing_file_is_fatal(self, tmp_path):
        with pytest.raises(CatalogError):
            load_catalog(str(tmp_path / "missing.json"))

    def test_invalid_json_is_fatal(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CatalogError):
            load_catalog(str(path))

    @pytest.mark.parametrize("section", REQUIRED_SECTIONS)
    def test_missing_section_is_fatal(self, catalog_data, section):
        del catalog_data[section]
        with pytest.raises(CatalogError) as exc_info:
            Catalog.from_dict(catalog_data)
        assert section in str(exc_info.value)

    def test_malformed_section_is_fatal(self, catalog_data):
        catalog_data['assistanceLevels'] = [{'id': 'physical'}]
        with pytest.raises(CatalogError):
            Catalog.from_dict(catalog_data)

    def test_non_object_document_is_fatal(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps(["not", "an", "object"]), encoding="utf-8")
        with pytest.raises(CatalogError):
            load_catalog(str(path))


class TestCatalogLookups:

    def test_category_context_falls_back_to_id(self, catalog):
        bathing = catalog.category(InterventionKind.SELF_CARE, 'bathing')
        assert bathing.context == 'bathing'
        assert catalog.category(InterventionKind.SELF_CARE, 'adl').context == 'adl'

    def test_category_lookup_is_per_kind(self, catalog):
        assert catalog.category(InterventionKind.THERAPEUTIC, 'adl') is None
        assert catalog.category(InterventionKind.SELF_CARE, 'nope') is None

    def test_phrases_for_self_care(self, catalog):
        phrases = catalog.phrases_for(InterventionKind.SELF_CARE, 'adl')
        assert phrases == ("Upper body dressing", "Grooming", "Toilet transfers")

    def test_phrases_for_therapeutic_sub_category(self, catalog):
        phrases = catalog.phrases_for(InterventionKind.THERAPEUTIC, 'mobility', 'transfers')
        assert "Therapeutic exercise" in phrases
        assert catalog.phrases_for(InterventionKind.THERAPEUTIC, 'mobility', 'nope') == ()
        assert catalog.phrases_for(InterventionKind.THERAPEUTIC, None) == ()

    def test_reasoning_contextual_then_general(self, catalog):
        options = catalog.reasoning_options('transfers')
        assert options == ("to improve strength", "to promote independence")
        assert catalog.reasoning_options(None) == ("to promote independence",)
        assert catalog.reasoning_options('unknown') == ("to promote independence",)

    def test_assistance_and_justifications(self, catalog):
        physical = catalog.assistance_type('physical')
        assert physical.level('min').text == "minimal assistance"
        assert physical.level('nope') is None
        assert catalog.has_justifications('physical')
        assert not catalog.has_justifications('verbal')
        assert catalog.assistance_type('nope') is None

    def test_flatten_and_parameter_groups(self, catalog):
        assert Catalog.flatten(catalog.difficulty_groups) == ["by fatigue", "by pain"]
        assert catalog.parameter_group('reps').name == "repetitions"
        assert catalog.parameter_group('nope') is None
