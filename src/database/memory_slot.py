"""
In-process session slot.

All instances share one module-level dictionary, which makes the slot
process-wide in the same way a browser's local storage is origin-wide.
"""

import threading
from typing import Dict, Optional

_PROCESS_SLOTS: Dict[str, str] = {}
_PROCESS_LOCK = threading.Lock()


class InMemorySessionSlot:
    """Keyed string store held in memory for the lifetime of the process."""

    def __init__(self, storage: Optional[Dict[str, str]] = None):
        """
        Args:
            storage: Private dictionary to use instead of the process-wide one
        """
        if storage is None:
            self._storage = _PROCESS_SLOTS
            self._lock = _PROCESS_LOCK
        else:
            self._storage = storage
            self._lock = threading.Lock()

    def read(self, key: str) -> Optional[str]:
        with self._lock:
            return self._storage.get(key)

    def write(self, key: str, value: str) -> None:
        with self._lock:
            self._storage[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._storage.pop(key, None)
