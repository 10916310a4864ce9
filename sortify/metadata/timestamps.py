"""
Timestamp parsing and tag-priority selection shared by the tag based extractors.

Tags are looked up by their exiftool names (DateTimeOriginal, SubSecTime, ...);
extractors translate their library's tag names before calling in here.
"""
import re
from datetime import datetime
from typing import Mapping, Optional

from .. import config
from ..exceptions import ExtractionError

# 2024:12:19 14:30:52.123+01:00 / 2024-12-19T14:30:52Z / 2024-12-19 14:30:52
_TIMESTAMP_RE = re.compile(
    r'^(\d{4})[:-](\d{2})[:-](\d{2})[ T](\d{2}):(\d{2}):(\d{2})'
    r'(?:\.(\d+))?'
    r'(?:\s*(?:Z|[+-]\d{2}:?\d{2}))?$'
)


def parse_timestamp(raw: str) -> datetime:
    """
    Parses an EXIF / ISO style timestamp into a naive datetime with millisecond precision.
    Timezone offsets are dropped; the wall-clock time is kept.

    Raises ValueError for anything unparseable (including all-zero dates).
    """
    clean = str(raw).replace('UTC', '').strip()
    m = _TIMESTAMP_RE.match(clean)
    if not m:
        raise ValueError(f"Unrecognized timestamp: {raw!r}")

    year, month, day, hour, minute, second = (int(g) for g in m.groups()[:6])
    subsec = m.group(7) or '0'
    millis = int(subsec[:3].ljust(3, '0'))

    return datetime(year, month, day, hour, minute, second, millis * 1000)


def is_zero_timestamp(raw: str) -> bool:
    return not str(raw).replace(':', '').replace(' ', '').replace('0', '')


def select_best_timestamp(tags: Mapping[str, object]) -> datetime:
    """Picks the most precise timestamp available, photo or video rules depending on the tags."""
    if config.VIDEO_MARKER_FIELDS.intersection(tags):
        dt = _first_parseable(tags, config.VIDEO_FIELDS)
    else:
        dt = _photo_timestamp(tags)

    if dt is None:
        dt = _last_resort(tags)
    if dt is None:
        raise ExtractionError("No valid timestamp in metadata")
    return dt


def _photo_timestamp(tags: Mapping[str, object]) -> Optional[datetime]:
    # 1. Pre-combined sub-second composites
    dt = _first_parseable(tags, config.PHOTO_SUBSEC_FIELDS)
    if dt:
        return dt

    # 2. Base timestamp + separate sub-second field
    for base_field, subsec_field in config.PHOTO_COMBINED_FIELDS:
        base, subsec = tags.get(base_field), tags.get(subsec_field)
        if base is None or subsec is None:
            continue
        digits = str(subsec).strip()
        if not digits.isdigit():
            continue
        try:
            return parse_timestamp(f"{str(base).strip()}.{digits.ljust(3, '0')}")
        except ValueError:
            continue

    # 3. Base timestamps alone
    return _first_parseable(tags, config.PHOTO_FALLBACK_FIELDS)


def _last_resort(tags: Mapping[str, object]) -> Optional[datetime]:
    raw = tags.get(config.LAST_RESORT_FIELD)
    if raw is None or is_zero_timestamp(str(raw)):
        return None
    try:
        return parse_timestamp(str(raw))
    except ValueError:
        return None


def _first_parseable(tags: Mapping[str, object], fields) -> Optional[datetime]:
    for name in fields:
        raw = tags.get(name)
        if raw is None:
            continue
        try:
            return parse_timestamp(str(raw))
        except ValueError:
            continue
    return None
