"""
Prefill cache: hands the last registration over to the next verification.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class PrefillEntry:
    """Identifiers and credential from a successful registration."""
    identifiers: Tuple[str, ...]
    credential: str


class PrefillCache:
    """
    Holds the most recent successful registration for the session.

    record() arms a one-shot "just registered" flag; consume() returns the
    entry only while the flag is armed and always disarms it. The stored
    entry itself is kept for the whole session.
    """

    def __init__(self):
        self._entry: Optional[PrefillEntry] = None
        self._just_registered = False

    def record(self, identifiers: List[str], credential: str) -> None:
        self._entry = PrefillEntry(tuple(identifiers), credential)
        self._just_registered = True

    def consume(self) -> Optional[PrefillEntry]:
        armed, self._just_registered = self._just_registered, False
        return self._entry if armed else None

    @property
    def just_registered(self) -> bool:
        return self._just_registered

    @property
    def entry(self) -> Optional[PrefillEntry]:
        return self._entry
