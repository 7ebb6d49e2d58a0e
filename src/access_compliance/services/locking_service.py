"""Per-person critical sections for eligibility updates."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Generator


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class PersonLockRegistry:
    """Hands out one mutex per employee ID.

    Callers for the same employee are serialized; callers for different
    employees never share a lock. Entries are dropped once no caller holds
    or waits on them, so the registry does not grow with the employee base.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    @contextmanager
    def hold(self, employee_id: str) -> Generator[None, None, None]:
        """Hold the lock for ``employee_id`` for the duration of the block."""
        with self._guard:
            entry = self._entries.get(employee_id)
            if entry is None:
                entry = self._entries[employee_id] = _LockEntry()
            entry.holders += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[employee_id]

    def active_keys(self) -> set[str]:
        """Employee IDs currently held or waited on."""
        with self._guard:
            return set(self._entries)


# Shared by every reconciler in the process unless one is injected.
default_person_locks = PersonLockRegistry()
