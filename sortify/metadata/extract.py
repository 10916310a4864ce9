import json
import logging
import shutil
import subprocess
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .. import config
from ..exceptions import ExtractionError
from ..models import MediaFile, ResolvedTimestamp
from .timestamps import parse_timestamp, select_best_timestamp

# Optional imports handled gracefully: a missing library only disables its extractor
try:
    import exifread
except ImportError:
    exifread = None

try:
    from PIL import Image
except ImportError:
    Image = None

# Type hint 'Any' prevents Pylance from complaining about "None" having no attribute "parse"
MediaInfo: Any = None
try:
    from pymediainfo import MediaInfo
except ImportError:
    MediaInfo = None


class Extractor:
    """
    One timestamp source. `attempt` returns a ResolvedTimestamp or raises ExtractionError.

    Implementations must be safe to call from several worker threads at once,
    so they keep no per-call state on the instance.
    """
    name = "base"

    def attempt(self, media: MediaFile) -> ResolvedTimestamp:
        raise NotImplementedError


class ExifReadExtractor(Extractor):
    """EXIF tags via 'exifread' (fast, Python-native)."""
    name = "exifread"

    def attempt(self, media: MediaFile) -> ResolvedTimestamp:
        if exifread is None:
            raise ExtractionError("exifread module not installed")
        if media.ext not in _image_exts():
            raise ExtractionError(f"exifread does not handle .{media.ext}")

        try:
            with media.path.open('rb') as f:
                # details=False skips makernotes and thumbnails
                tags = exifread.process_file(f, details=False)
        except Exception as e:
            raise ExtractionError(f"exifread failed: {e}") from e

        canonical = {
            config.EXIFREAD_TAG_MAP[key]: str(value).strip()
            for key, value in tags.items()
            if key in config.EXIFREAD_TAG_MAP
        }
        return ResolvedTimestamp(select_best_timestamp(canonical), self.name)


class PillowExtractor(Extractor):
    """EXIF via Pillow, including the Exif sub-IFD where DateTimeOriginal lives."""
    name = "pillow"

    def attempt(self, media: MediaFile) -> ResolvedTimestamp:
        if Image is None:
            raise ExtractionError("Pillow not installed")
        if media.ext not in _image_exts():
            raise ExtractionError(f"Pillow does not handle .{media.ext}")

        try:
            with Image.open(media.path) as img:
                exif = img.getexif()
                raw_tags: Dict[int, Any] = dict(exif)
                raw_tags.update(exif.get_ifd(config.PILLOW_EXIF_IFD))
        except Exception as e:
            raise ExtractionError(f"Pillow failed: {e}") from e

        canonical = {}
        for tag_id, name in config.PILLOW_TAG_MAP.items():
            value = raw_tags.get(tag_id)
            if value is None:
                continue
            if isinstance(value, bytes):
                value = value.decode('ascii', errors='ignore')
            canonical[name] = str(value).strip('\x00 ')
        return ResolvedTimestamp(select_best_timestamp(canonical), self.name)


class MediaInfoExtractor(Extractor):
    """Container dates via 'pymediainfo' (video)."""
    name = "mediainfo"

    def attempt(self, media: MediaFile) -> ResolvedTimestamp:
        if MediaInfo is None:
            raise ExtractionError("pymediainfo not installed")
        if media.ext not in _video_exts():
            raise ExtractionError(f"mediainfo does not handle .{media.ext}")

        try:
            mi = MediaInfo.parse(str(media.path))
        except Exception as e:
            raise ExtractionError(f"MediaInfo failed: {e}") from e

        for track in mi.tracks:
            if track.track_type != "General":
                continue
            # Priority: Recorded -> Encoded -> Tagged
            for field_name in config.MEDIAINFO_DATE_FIELDS:
                val = getattr(track, field_name, None)
                if not val:
                    continue
                try:
                    return ResolvedTimestamp(parse_timestamp(val), self.name)
                except ValueError:
                    continue

        raise ExtractionError("No usable date in MediaInfo general track")


class ExifToolExtractor(Extractor):
    """
    Wraps the 'exiftool' command line utility.
    Most compatible and slowest, so it always runs last. Every call is bounded by `timeout`.
    """
    name = "exiftool"

    def __init__(self, timeout: float = config.EXIFTOOL_TIMEOUT, binary: str = config.EXIFTOOL_BINARY):
        self.timeout = timeout
        self.binary = binary

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def attempt(self, media: MediaFile) -> ResolvedTimestamp:
        cmd = [self.binary, "-j", "-api", "LargeFileSupport=1", str(media.path)]
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExtractionError(f"exiftool timed out after {self.timeout}s") from e
        except OSError as e:
            raise ExtractionError(f"exiftool could not be started: {e}") from e

        if proc.returncode != 0:
            raise ExtractionError(f"exiftool exited with status {proc.returncode}")

        try:
            # Maker tags may carry raw bytes; only the date fields need to decode
            data_list = json.loads(proc.stdout.decode('utf-8', errors='replace'))
            tags = data_list[0]
        except (ValueError, IndexError, KeyError, TypeError) as e:
            raise ExtractionError(f"Malformed exiftool output: {e}") from e
        if not isinstance(tags, dict):
            raise ExtractionError("Malformed exiftool output: expected an object")

        return ResolvedTimestamp(select_best_timestamp(tags), self.name)


EXTRACTOR_TYPES = {
    ExifReadExtractor.name: ExifReadExtractor,
    PillowExtractor.name: PillowExtractor,
    MediaInfoExtractor.name: MediaInfoExtractor,
}


class ExtractorChain:
    """
    Tries extractors in priority order and falls through on ExtractionError.
    The file's own mtime (whole seconds) is the terminal fallback, so `resolve` always returns.
    """

    def __init__(self, extractors: Iterable[Extractor]):
        self.extractors: List[Extractor] = list(extractors)

    @classmethod
    def build(cls,
              order: Optional[Iterable[str]] = None,
              use_exiftool: bool = True,
              exiftool_timeout: float = config.EXIFTOOL_TIMEOUT) -> "ExtractorChain":
        names = list(order) if order is not None else list(config.DEFAULT_EXTRACTORS)
        extractors: List[Extractor] = []
        for name in names:
            if name == ExifToolExtractor.name:
                # Subprocess position is fixed: always last
                continue
            if name not in EXTRACTOR_TYPES:
                raise ValueError(f"Unknown extractor: {name}")
            extractors.append(EXTRACTOR_TYPES[name]())

        if use_exiftool:
            exiftool = ExifToolExtractor(timeout=exiftool_timeout)
            if exiftool.available():
                extractors.append(exiftool)
            else:
                logging.info("exiftool not found on PATH; subprocess extraction disabled.")

        return cls(extractors)

    def resolve(self, media: MediaFile) -> ResolvedTimestamp:
        for extractor in self.extractors:
            try:
                ts = extractor.attempt(media)
                logging.log(config.TRACE, f"{extractor.name} -> {ts.value.isoformat()} for {media.path}")
                return ts
            except ExtractionError as e:
                logging.debug(f"{extractor.name} failed for {media.path}: {e}")

        logging.debug(f"Using file modification time for: {media.path}")
        return mtime_timestamp(media)


def mtime_timestamp(media: MediaFile) -> ResolvedTimestamp:
    dt = datetime.fromtimestamp(media.mtime).replace(microsecond=0)
    return ResolvedTimestamp(dt, "mtime")


def _image_exts():
    return {e.lstrip('.') for e in config.IMAGE_EXTS}


def _video_exts():
    return {e.lstrip('.') for e in config.VIDEO_EXTS}
