import threading
from typing import Dict, Mapping, Optional


class _Entry:
    __slots__ = ('destination', 'done')

    def __init__(self, destination: Optional[str] = None):
        self.destination = destination
        self.done = threading.Event()
        if destination is not None:
            self.done.set()


class DuplicateIndex:
    """
    Content fingerprint -> destination first assigned to that content.

    `check_and_insert` is one indivisible step under the lock: the first caller
    for a fingerprint becomes its owner, everyone else is a duplicate. The owner
    learns its destination only later, so duplicates block until the owner
    calls `resolve` (or `release` if it failed, in which case one of the
    waiters takes over ownership).
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {
            fp: _Entry(dest) for fp, dest in (initial or {}).items()
        }

    def check_and_insert(self, fingerprint: str) -> Optional[str]:
        """Returns None when the caller now owns the fingerprint, else the canonical destination."""
        while True:
            with self._lock:
                entry = self._entries.get(fingerprint)
                if entry is None:
                    self._entries[fingerprint] = _Entry()
                    return None

            entry.done.wait()
            if entry.destination is not None:
                return entry.destination
            # Owner gave up; race for ownership again

    def resolve(self, fingerprint: str, destination: str):
        with self._lock:
            entry = self._entries[fingerprint]
            entry.destination = destination
        entry.done.set()

    def release(self, fingerprint: str):
        with self._lock:
            entry = self._entries.pop(fingerprint, None)
        if entry is not None:
            entry.done.set()

    def snapshot(self) -> Dict[str, str]:
        """Resolved entries only; in-flight claims are left out."""
        with self._lock:
            return {fp: e.destination for fp, e in self._entries.items() if e.destination is not None}

    def __contains__(self, fingerprint: str) -> bool:
        with self._lock:
            return fingerprint in self._entries
