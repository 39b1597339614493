"""
Notes Ledger - Finalized narrative text per intervention kind

Outlives builder sessions. Owned by the enclosing application
(WizardEngine instance), persisted alongside the session snapshot.
"""

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from backend.core.narrative import append_to_narrative
from backend.utils.intervention_kinds import InterventionKind, LEDGER_KEYS

logger = logging.getLogger(__name__)


class NotesLedger:
    """Accumulated note text keyed by ledger key ('selfCare', 'therapeutic')"""

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._entries: Dict[str, str] = {key: '' for key in LEDGER_KEYS}
        if entries:
            self.replace(entries)

    def get(self, kind: InterventionKind) -> str:
        return self._entries[kind.ledger_key]

    def fold(self, kind: InterventionKind, text: str) -> str:
        """
        Append text to the kind's entry (accumulator-joined).

        Blank text leaves the entry unchanged.

        Returns:
            str: Updated entry
        """
        if not text.strip():
            return self._entries[kind.ledger_key]

        updated = append_to_narrative(self._entries[kind.ledger_key], text)
        self._entries[kind.ledger_key] = updated
        logger.info(f"Ledger '{kind.ledger_key}' updated ({len(updated)} characters)")
        return updated

    def replace(self, entries: Mapping[str, str]) -> None:
        """
        Overwrite entries with operator-edited text.

        Raises:
            ValueError: On an unknown ledger key or non-string text
        """
        for key, text in entries.items():
            if key not in self._entries:
                raise ValueError(f"Unknown ledger key: {key}")
            if not isinstance(text, str):
                raise ValueError(f"Ledger text for '{key}' must be a string")
        for key, text in entries.items():
            self._entries[key] = text

    def clear(self) -> None:
        for key in self._entries:
            self._entries[key] = ''

    def export_text(self, kind: InterventionKind) -> str:
        """Plain text of one entry, for copy/export"""
        return self._entries[kind.ledger_key].strip()

    def save_to_file(self, kind: InterventionKind, output_path: str) -> str:
        """
        Write one entry to a text file.

        Returns:
            str: Absolute path to the saved file
        """
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(self.export_text(kind))

        logger.info(f"Note '{kind.ledger_key}' saved to {output_file}")
        return str(output_file.absolute())

    def to_json(self) -> Dict[str, str]:
        return dict(self._entries)

    @staticmethod
    def from_json(data: Mapping[str, str]) -> "NotesLedger":
        if not isinstance(data, Mapping):
            raise ValueError("Notes data must be a mapping")
        return NotesLedger({key: text for key, text in data.items() if key in LEDGER_KEYS})
