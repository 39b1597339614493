"""
Session persistence for the note builder.

One JSON document under a fixed storage key holds the in-progress
selection state (history excluded) and the notes ledger.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

STORAGE_KEY = "otClinicalDocBuilderState"
DEFAULT_STORAGE_DIR = "outputs/sessions"
SAVE_DEBOUNCE_SECONDS = 0.5


class SessionPersistence:
    """
    Reads and writes the persisted session snapshot.

    Layout:
        outputs/sessions/
            otClinicalDocBuilderState.json

    Snapshot shape:
        {
            'state': {...} or None,   # SelectionState.to_json()
            'notes': {...},           # NotesLedger.to_json()
            'session_time': int
        }

    Failure policy:
    - Write errors are logged; the caller keeps working in memory
    - Corrupt or invalid stored data is logged and discarded
    """

    def __init__(self, base_dir: str = DEFAULT_STORAGE_DIR, storage_key: str = STORAGE_KEY):
        """
        Initialize persistence layer.

        Args:
            base_dir: Directory holding the snapshot file
            storage_key: Fixed storage identifier (file stem)
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.base_dir / f"{storage_key}.json"
        logger.info(f"SessionPersistence initialized: {self.path}")

    def save(self, snapshot: Dict[str, Any]) -> bool:
        """
        Write the snapshot, replacing the previous one.

        Args:
            snapshot: JSON-safe session snapshot

        Returns:
            bool: True when written, False on failure (logged)
        """
        tmp_path = self.path.with_suffix('.json.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(snapshot, f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save session state: {e}")
            return False

        logger.debug(f"Session state saved: {self.path.name}")
        return True

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Load the stored snapshot.

        Returns:
            dict if a valid snapshot exists, None otherwise (corrupt data
            is removed)
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Discarding unreadable session state: {e}")
            self.clear()
            return None

        if not isinstance(data, dict) or not isinstance(data.get('notes', {}), dict):
            logger.warning("Discarding session state with unexpected shape")
            self.clear()
            return None

        logger.info(f"Loaded session state: {self.path.name}")
        return data

    def exists(self) -> bool:
        return self.path.exists()

    def clear(self) -> None:
        """Remove the stored snapshot (no error if absent)"""
        try:
            self.path.unlink()
            logger.info("Stored session state cleared")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to clear session state: {e}")


class DebouncedSaver:
    """
    Coalesces rapid successive saves into one write.

    Each schedule() call restarts the quiet-period timer. The snapshot is
    taken from the provider at flush time, so only the latest state is
    written. Flushes are serialized: a later flush reads its snapshot
    only after the earlier write has finished.
    """

    def __init__(self, persistence: SessionPersistence, delay: float = SAVE_DEBOUNCE_SECONDS):
        self.persistence = persistence
        self.delay = delay
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._provider: Optional[Callable[[], Dict[str, Any]]] = None

    def schedule(self, provider: Callable[[], Dict[str, Any]]) -> None:
        with self._lock:
            self._provider = provider
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    @property
    def pending(self) -> bool:
        return self._provider is not None

    def flush(self) -> bool:
        """
        Write the pending snapshot now.

        Returns:
            bool: True if a snapshot was written
        """
        with self._lock:
            provider = self._provider
            self._provider = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

        if provider is None:
            return False

        with self._write_lock:
            try:
                snapshot = provider()
            except Exception as e:
                logger.error(f"Failed to build session snapshot: {e}")
                return False

            return self.persistence.save(snapshot)

    def cancel(self) -> None:
        """Drop the pending write"""
        with self._lock:
            self._provider = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
