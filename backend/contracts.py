"""
Catalog contracts for the clinical note builder.

This module defines immutable data structures that describe the
controlled vocabulary the wizard offers. These are NOT validators -
they define shape and semantics; structural checks live in the
catalog loader.

Design principles:
- Frozen dataclasses (immutable after creation)
- Tuples instead of lists so instances are hashable and shareable
- No dependencies on other backend modules
- Definition layer only (no enforcement)

Contents:
- AssistanceLevel: one selectable level of an assistance type
- AssistanceType: assistance category with its ordered levels
- OptionGroup: named list of options (difficulty, response, outcome,
  plan, session parameters)
- SubCategory / InterventionCategory: catalog path to intervention phrases

Usage:
    from backend.contracts import AssistanceType, OptionGroup
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class AssistanceLevel:
    """
    One level of an assistance type.

    Attributes:
        id: Level identifier, unique within its assistance type (e.g. 'min')
        text: Narrative fragment inserted after "Patient required ..."
            Example: 'minimal assistance (25%)'
        description: Operator-facing explanation of the level
    """
    id: str
    text: str
    description: str = ""


@dataclass(frozen=True)
class AssistanceType:
    """
    Assistance category (physical, verbal cueing, ...) with ordered levels.

    Attributes:
        id: Assistance type identifier (e.g. 'physical')
        name: Display name
        levels: Ordered levels, lowest to highest
    """
    id: str
    name: str
    levels: Tuple[AssistanceLevel, ...] = ()

    def level(self, level_id: str) -> Optional[AssistanceLevel]:
        for level in self.levels:
            if level.id == level_id:
                return level
        return None


@dataclass(frozen=True)
class OptionGroup:
    """
    Named group of plain-text options.

    Used for difficulty reasons, response/outcome/plan options and
    session parameter groups. For session parameters, `name` is the
    unit appended after the chosen values ("3 sets").
    """
    key: str
    name: str
    options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SubCategory:
    """Therapeutic sub-intervention with its own context tag and phrases"""
    id: str
    name: str
    context: str
    phrases: Tuple[str, ...] = ()


@dataclass(frozen=True)
class InterventionCategory:
    """
    Top-level intervention category for one intervention kind.

    Attributes:
        id: Category key within the kind's subtree
        name: Display name
        context: Context tag used to filter clinical rationale options.
            Falls back to the category id when the catalog omits it.
        phrases: Candidate phrases (self-care categories)
        sub_categories: Sub-interventions (therapeutic categories)
    """
    id: str
    name: str
    context: str
    phrases: Tuple[str, ...] = ()
    sub_categories: Tuple[SubCategory, ...] = ()

    def sub_category(self, sub_category_id: str) -> Optional[SubCategory]:
        for sub in self.sub_categories:
            if sub.id == sub_category_id:
                return sub
        return None
