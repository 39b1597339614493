"""
Utility helpers for the clinical note builder

Session timing, ID and filename generation.
"""

import time
import uuid
from datetime import datetime


def generate_session_id(short=True):
    """
    Generate unique builder session identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Session ID

    Examples:
        >>> generate_session_id()
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def generate_note_filename(prefix="note", extension="txt"):
    """
    Generate timestamped filename with unique ID

    Format: {prefix}_{YYYYMMDD_HHMMSS}_{short_uuid}.{extension}

    Examples:
        >>> generate_note_filename(prefix="selfCare")
        'selfCare_20251126_153045_a3f7e2b9.txt'
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    short_id = generate_session_id(short=True)
    return f"{prefix}_{timestamp}_{short_id}.{extension}"


def format_time(seconds):
    """
    Format elapsed seconds as MM:SS

    Examples:
        >>> format_time(75)
        '01:15'
    """
    mins, secs = divmod(int(seconds), 60)
    return f"{mins:02d}:{secs:02d}"


class SessionTimer:
    """
    Elapsed-time tracking for a builder session.

    Reads a monotonic clock on demand, so it never blocks (and is never
    blocked by) state transitions. A restored session resumes from the
    persisted offset.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._started_at = None
        self._offset = 0

    def start(self, offset_seconds=0):
        """(Re)start counting from offset_seconds"""
        self._offset = int(offset_seconds)
        self._started_at = self._clock()

    def stop(self):
        """Freeze the elapsed value"""
        if self._started_at is not None:
            self._offset = self.elapsed
            self._started_at = None

    @property
    def running(self):
        return self._started_at is not None

    @property
    def elapsed(self):
        """Elapsed whole seconds"""
        if self._started_at is None:
            return self._offset
        return self._offset + int(self._clock() - self._started_at)

    def display(self):
        return format_time(self.elapsed)
