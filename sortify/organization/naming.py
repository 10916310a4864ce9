import threading
from typing import Dict, Mapping, Optional

from .. import config
from ..models import DestinationPath, ResolvedTimestamp


def render_base_name(ts: ResolvedTimestamp, ext: str) -> DestinationPath:
    """Canonical destination for a timestamp, before any tie-break ordinal."""
    dt = ts.value
    folder = config.FOLDER_PATTERN.format(
        year=dt.year, month=dt.month, month_name=config.MONTH_NAMES[dt.month - 1]
    )
    stem = config.STEM_PATTERN.format(
        year=dt.year, month=dt.month, day=dt.day,
        hour=dt.hour, minute=dt.minute, second=dt.second,
        millis=ts.milliseconds,
    )
    return DestinationPath(folder=folder, stem=stem, ext=ext)


class TieBreakRegistry:
    """
    Base name -> next unused ordinal, shared by all workers for one run.

    `claim` is the single read-and-increment under the lock; the first claim for
    a base name gets 1 (no suffix), later ones 2, 3, ... in arrival order.
    """

    def __init__(self, initial: Optional[Mapping[str, int]] = None):
        self._lock = threading.Lock()
        self._next: Dict[str, int] = dict(initial or {})

    def claim(self, base_key: str) -> int:
        with self._lock:
            ordinal = self._next.get(base_key, 1)
            self._next[base_key] = ordinal + 1
            return ordinal

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._next)

    def __len__(self):
        with self._lock:
            return len(self._next)


class NameGenerator:
    def __init__(self, registry: TieBreakRegistry):
        self.registry = registry

    def assign(self, ts: ResolvedTimestamp, ext: str) -> DestinationPath:
        """Renders the base name and claims the next ordinal for it."""
        base = render_base_name(ts, ext)
        return base.with_ordinal(self.registry.claim(base.base_key))

    def reassign(self, dest: DestinationPath) -> DestinationPath:
        """Fresh ordinal for a destination found occupied on disk."""
        return dest.with_ordinal(self.registry.claim(dest.base_key))
