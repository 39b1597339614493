"""
Catalog - Immutable controlled vocabulary for the note builder

Responsibilities:
- Load the catalog JSON document once at startup
- Convert it into frozen contract objects (backend.contracts)
- Answer lookups for the wizard engine, synthesizer and renderers

Design principles:
- Read-only after construction
- Missing or malformed catalog is startup-fatal (CatalogError)
- No knowledge of wizard steps or selection state
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from backend.contracts import (
    AssistanceLevel,
    AssistanceType,
    InterventionCategory,
    OptionGroup,
    SubCategory,
)
from backend.utils.intervention_kinds import InterventionKind

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = "data/catalog.json"

REQUIRED_SECTIONS = (
    'interventionData',
    'clinicalReasoning',
    'patientGoals',
    'assistanceLevels',
    'difficultyReasons',
    'responseOptions',
    'outcomeOptions',
    'sessionPlans',
    'sessionParameters',
)


class CatalogError(Exception):
    """Catalog missing or unparseable; the engine must not start"""


@dataclass(frozen=True)
class Catalog:
    """
    Structured, immutable view of the catalog document.

    Attributes:
        categories: kind catalog key -> ordered categories
        contextual_reasoning: context tag -> rationale options
        general_reasoning: rationale options offered for every context
        patient_goals: goal options
        assistance_types: ordered assistance types
        justifications: assistance type id -> justification options
        difficulty_groups / response_groups / outcome_groups / plan_groups:
            ordered option groups
        parameter_groups: ordered session parameter groups
    """
    categories: Dict[str, Tuple[InterventionCategory, ...]]
    contextual_reasoning: Dict[str, Tuple[str, ...]]
    general_reasoning: Tuple[str, ...]
    patient_goals: Tuple[str, ...]
    assistance_types: Tuple[AssistanceType, ...]
    justifications: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    difficulty_groups: Tuple[OptionGroup, ...] = ()
    response_groups: Tuple[OptionGroup, ...] = ()
    outcome_groups: Tuple[OptionGroup, ...] = ()
    plan_groups: Tuple[OptionGroup, ...] = ()
    parameter_groups: Tuple[OptionGroup, ...] = ()

    # ========================
    # Construction
    # ========================

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Catalog":
        """
        Build a Catalog from the raw JSON document.

        Args:
            data: Parsed catalog document

        Returns:
            Catalog: Frozen catalog

        Raises:
            CatalogError: If a required section is missing or has the wrong shape
        """
        if not isinstance(data, dict):
            raise CatalogError("Catalog document must be a JSON object")

        missing = [name for name in REQUIRED_SECTIONS if name not in data]
        if missing:
            raise CatalogError(f"Catalog missing sections: {', '.join(missing)}")

        try:
            categories = {
                kind.catalog_key: _parse_categories(data['interventionData'].get(kind.catalog_key, {}))
                for kind in InterventionKind
            }
            reasoning = data['clinicalReasoning']
            return cls(
                categories=categories,
                contextual_reasoning={
                    tag: tuple(options)
                    for tag, options in reasoning.get('contextual', {}).items()
                },
                general_reasoning=tuple(reasoning.get('general', [])),
                patient_goals=tuple(data['patientGoals']),
                assistance_types=tuple(
                    AssistanceType(
                        id=item['id'],
                        name=item['name'],
                        levels=tuple(
                            AssistanceLevel(
                                id=level['id'],
                                text=level['text'],
                                description=level.get('description', ''),
                            )
                            for level in item['levels']
                        ),
                    )
                    for item in data['assistanceLevels']
                ),
                justifications={
                    assistance_id: tuple(entry.get('options', []))
                    for assistance_id, entry in data.get('assistanceJustifications', {}).items()
                },
                difficulty_groups=_parse_groups(data['difficultyReasons']),
                response_groups=_parse_groups(data['responseOptions']),
                outcome_groups=_parse_groups(data['outcomeOptions']),
                plan_groups=_parse_groups(data['sessionPlans']),
                parameter_groups=_parse_groups(data['sessionParameters']),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise CatalogError(f"Malformed catalog: {type(e).__name__}: {e}") from e

    # ========================
    # Intervention path
    # ========================

    def categories_for(self, kind: InterventionKind) -> Tuple[InterventionCategory, ...]:
        return self.categories.get(kind.catalog_key, ())

    def category(self, kind: InterventionKind, category_id: str) -> Optional[InterventionCategory]:
        for category in self.categories_for(kind):
            if category.id == category_id:
                return category
        return None

    def phrases_for(
        self,
        kind: InterventionKind,
        category_id: Optional[str],
        sub_category_id: Optional[str] = None
    ) -> Tuple[str, ...]:
        """
        Candidate phrases for the chosen catalog path.

        Self-care categories (or a therapeutic category without a chosen
        sub-category) return the category's own phrases.
        """
        category = self.category(kind, category_id) if category_id else None
        if category is None:
            return ()
        if not kind.has_sub_categories or not sub_category_id:
            return category.phrases
        sub = category.sub_category(sub_category_id)
        return sub.phrases if sub else ()

    # ========================
    # Option lists
    # ========================

    def reasoning_options(self, context: Optional[str]) -> Tuple[str, ...]:
        """Contextual rationale for the context tag, then the general list"""
        contextual = self.contextual_reasoning.get(context, ()) if context else ()
        return contextual + self.general_reasoning

    def assistance_type(self, assistance_id: str) -> Optional[AssistanceType]:
        for assistance in self.assistance_types:
            if assistance.id == assistance_id:
                return assistance
        return None

    def justification_options(self, assistance_id: str) -> Tuple[str, ...]:
        return self.justifications.get(assistance_id, ())

    def has_justifications(self, assistance_id: str) -> bool:
        return bool(self.justification_options(assistance_id))

    def parameter_group(self, key: str) -> Optional[OptionGroup]:
        for group in self.parameter_groups:
            if group.key == key:
                return group
        return None

    @staticmethod
    def flatten(groups: Tuple[OptionGroup, ...]) -> List[str]:
        """All options of a group list, in catalog order"""
        return [option for group in groups for option in group.options]


def _parse_groups(raw: Dict[str, Any]) -> Tuple[OptionGroup, ...]:
    return tuple(
        OptionGroup(key=key, name=group['name'], options=tuple(group.get('options', [])))
        for key, group in raw.items()
    )


def _parse_categories(raw: Dict[str, Any]) -> Tuple[InterventionCategory, ...]:
    categories = []
    for key, category in raw.items():
        subs = tuple(
            SubCategory(
                id=sub_key,
                name=sub['name'],
                context=sub.get('context') or sub_key,
                phrases=tuple(sub.get('phrases', [])),
            )
            for sub_key, sub in category.get('subInterventions', {}).items()
        )
        categories.append(
            InterventionCategory(
                id=key,
                name=category['name'],
                context=category.get('context') or key,
                phrases=tuple(category.get('phrases', [])),
                sub_categories=subs,
            )
        )
    return tuple(categories)


def load_catalog(path: str = DEFAULT_CATALOG_PATH) -> Catalog:
    """
    Load the catalog document from disk.

    Args:
        path: Path to catalog JSON file

    Returns:
        Catalog: Frozen catalog

    Raises:
        CatalogError: If the file is missing, unreadable, not JSON, or malformed
    """
    catalog_file = Path(path)
    if not catalog_file.exists():
        logger.error(f"Catalog not found: {path}")
        raise CatalogError(f"Catalog not found: {path}")

    try:
        with open(catalog_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read catalog {path}: {e}")
        raise CatalogError(f"Could not load clinical data from {path}: {e}") from e

    catalog = Catalog.from_dict(data)
    logger.info(
        f"Catalog loaded from {path} "
        f"({sum(len(c) for c in catalog.categories.values())} categories, "
        f"{len(catalog.assistance_types)} assistance types)"
    )
    return catalog
