"""
Intervention kind enum for the note builder.

Invariants:
- Exactly one kind is active per builder session
- The kind selects the catalog subtree, the step sequence and the ledger entry
- Kinds are identified by their billing code for JSON serialization

Design:
- InterventionKind is a string-based enum (value = billing code)
- Catalog keys and ledger keys are derived, never stored separately
- WizardEngine owns the active kind; NotesLedger keys entries by it
"""

from enum import Enum


class InterventionKind(str, Enum):
    """
    Skilled intervention billing categories.

    SELF_CARE (97535):
        Self care / home management training.
        Categories carry phrases directly, no sub-category step.

    THERAPEUTIC (97530):
        Therapeutic activities.
        Every category is split into sub-interventions (step 2).
    """
    SELF_CARE = "97535"
    THERAPEUTIC = "97530"

    @property
    def catalog_key(self) -> str:
        """Key of this kind's subtree under catalog 'interventionData'"""
        return "self-care" if self is InterventionKind.SELF_CARE else "therapeutic"

    @property
    def ledger_key(self) -> str:
        """Key of this kind's entry in the notes ledger"""
        return "selfCare" if self is InterventionKind.SELF_CARE else "therapeutic"

    @property
    def has_sub_categories(self) -> bool:
        return self is InterventionKind.THERAPEUTIC

    @property
    def label(self) -> str:
        if self is InterventionKind.SELF_CARE:
            return "Skilled Intervention: 97535 Self Care"
        return "Skilled Intervention: 97530 Therapeutic Activities"

    @classmethod
    def from_ledger_key(cls, ledger_key: str) -> "InterventionKind":
        for kind in cls:
            if kind.ledger_key == ledger_key:
                return kind
        raise ValueError(f"Unknown ledger key: {ledger_key}")


# Single source of truth for valid kind codes
VALID_KINDS = {kind.value for kind in InterventionKind}

# Ledger keys in display order
LEDGER_KEYS = tuple(kind.ledger_key for kind in InterventionKind)
