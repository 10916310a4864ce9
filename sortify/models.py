import os
import stat
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from . import config
from .exceptions import SourceReadError


@dataclass(frozen=True)
class MediaFile:
    """
    A source file queued for organization.
    Built once per file and never mutated.
    """
    path: Path              # absolute
    size_bytes: int
    mtime: float
    ext: str                # lower-case, without the dot; '' if none

    @classmethod
    def from_path(cls, path: Path) -> "MediaFile":
        path = Path(os.path.abspath(path))
        try:
            st = path.lstat()
        except OSError as e:
            raise SourceReadError(f"Cannot stat {path}: {e}") from e

        if stat.S_ISLNK(st.st_mode):
            raise SourceReadError(f"Skipped symlink: {path}")
        if not stat.S_ISREG(st.st_mode):
            raise SourceReadError(f"Not a regular file: {path}")

        return cls(path=path, size_bytes=st.st_size, mtime=st.st_mtime, ext=normalize_extension(path))


def normalize_extension(path: Path) -> str:
    ext = path.suffix[1:].lower()
    return config.MALFORMED_EXTS.get(ext, ext)


@dataclass(frozen=True)
class ResolvedTimestamp:
    """Capture time (naive, millisecond precision) and the extractor that produced it."""
    value: datetime
    source: str

    def __post_init__(self):
        # Keep only whole milliseconds
        micros = self.value.microsecond - self.value.microsecond % 1000
        if micros != self.value.microsecond:
            object.__setattr__(self, 'value', self.value.replace(microsecond=micros))

    @property
    def milliseconds(self) -> int:
        return self.value.microsecond // 1000


@dataclass(frozen=True)
class DestinationPath:
    """
    Relative destination: YYYY/MM-Mon/YYYYMMDD_HHMMSS.fff[-N].ext

    `ordinal` 1 renders without a suffix; 2 and up render as '-N'.
    """
    folder: str
    stem: str
    ext: str
    ordinal: int = 1

    @property
    def base_key(self) -> str:
        """Tie-break registry key: the path without any ordinal."""
        return f"{self.folder}/{self.stem}{self._dotted_ext()}"

    @property
    def name(self) -> str:
        suffix = f"-{self.ordinal}" if self.ordinal > 1 else ""
        return f"{self.stem}{suffix}{self._dotted_ext()}"

    @property
    def relative(self) -> str:
        return f"{self.folder}/{self.name}"

    def ordinal_of(self, name: str) -> Optional[int]:
        """Ordinal encoded in a sibling file name sharing this base name, else None."""
        suffix = self._dotted_ext()
        if not name.startswith(self.stem) or not name.endswith(suffix):
            return None
        middle = name[len(self.stem):len(name) - len(suffix)]
        if not middle:
            return 1
        digits = middle[1:]
        if middle[0] == '-' and digits.isdigit() and int(digits) > 1:
            return int(digits)
        return None

    def with_ordinal(self, ordinal: int) -> "DestinationPath":
        return replace(self, ordinal=ordinal)

    def under(self, root: Path) -> Path:
        return root.joinpath(*self.relative.split('/'))

    def _dotted_ext(self) -> str:
        return f".{self.ext}" if self.ext else ""

    def __str__(self):
        return self.relative


class OutcomeStatus(str, Enum):
    ORGANIZED = 'organized'
    DUPLICATE = 'duplicate'
    FAILED = 'failed'


class ErrorKind(str, Enum):
    SOURCE_UNREADABLE = 'source_unreadable'
    NAMING_COLLISION = 'naming_collision'
    ORGANIZE_IO = 'organize_io'
    UNEXPECTED = 'unexpected'


@dataclass(frozen=True)
class Outcome:
    """Terminal record for one source file."""
    source: Path
    status: OutcomeStatus
    destination: Optional[str] = None     # Organized: new path; Duplicate: canonical path
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    provenance: Optional[str] = None

    @classmethod
    def organized(cls, source: Path, destination: str, provenance: Optional[str] = None) -> "Outcome":
        return cls(source, OutcomeStatus.ORGANIZED, destination=destination, provenance=provenance)

    @classmethod
    def duplicate(cls, source: Path, of: str, provenance: Optional[str] = None) -> "Outcome":
        return cls(source, OutcomeStatus.DUPLICATE, destination=of, provenance=provenance)

    @classmethod
    def failed(cls, source: Path, kind: ErrorKind, message: str, provenance: Optional[str] = None) -> "Outcome":
        return cls(source, OutcomeStatus.FAILED, error_kind=kind, message=message, provenance=provenance)


@dataclass
class RunSummary:
    outcomes: List[Outcome] = field(default_factory=list)
    not_processed: int = 0
    cancelled: bool = False

    def add(self, outcome: Outcome):
        self.outcomes.append(outcome)

    def _with_status(self, status: OutcomeStatus) -> List[Outcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def organized(self) -> List[Outcome]:
        return self._with_status(OutcomeStatus.ORGANIZED)

    @property
    def duplicates(self) -> List[Outcome]:
        return self._with_status(OutcomeStatus.DUPLICATE)

    @property
    def failed(self) -> List[Outcome]:
        return self._with_status(OutcomeStatus.FAILED)


@dataclass
class RunSettings:
    """Per-run configuration, filled from the command line."""
    output_dir: Path
    workers: Optional[int] = None          # None -> os.cpu_count()
    limit: int = 0                         # 0 -> all files
    mode: str = config.DEFAULT_MODE
    dry_run: bool = False
    index_path: Optional[Path] = None      # None -> no persisted index
    extractors: List[str] = field(default_factory=lambda: list(config.DEFAULT_EXTRACTORS))
    use_exiftool: bool = True
    exiftool_timeout: float = config.EXIFTOOL_TIMEOUT
    show_progress: bool = False
