"""
Configuration constants for sortify.
"""
import logging

# --- File Type Definitions ---
IMAGE_EXTS = {'.jpg', '.jpeg', '.png', '.tif', '.tiff', '.hif', '.heic', '.cr2', '.dng'}
VIDEO_EXTS = {'.mov', '.mp4', '.avi', '.3gp', '.m4v', '.mkv'}
MEDIA_EXTS = IMAGE_EXTS | VIDEO_EXTS

# Some exporters write a stray '%' into the extension
MALFORMED_EXTS = {
    '%jpg': 'jpg',
    '%jpeg': 'jpg',
    '%mov': 'mov',
    '%mp4': 'mp4',
}

# --- Metadata Parsing ---
# Default priority of the in-process extractors (fastest / most specific first).
# The exiftool subprocess is always appended after these.
DEFAULT_EXTRACTORS = ['exifread', 'pillow', 'mediainfo']
EXIFTOOL_BINARY = 'exiftool'
EXIFTOOL_TIMEOUT = 10.0  # seconds per invocation

PHOTO_SUBSEC_FIELDS = ['SubSecCreateDate', 'SubSecDateTimeOriginal', 'SubSecModifyDate']
PHOTO_COMBINED_FIELDS = [
    ('DateTimeOriginal', 'SubSecTimeOriginal'),
    ('ModifyDate', 'SubSecTime'),
    ('DateTimeDigitized', 'SubSecTimeDigitized'),
]
PHOTO_FALLBACK_FIELDS = ['DateTimeOriginal', 'ModifyDate', 'DateTimeDigitized']
VIDEO_FIELDS = ['DateTimeOriginal', 'NikonDateTime', 'MediaCreateDate', 'MediaModifyDate', 'ModifyDate']
VIDEO_MARKER_FIELDS = {'MediaCreateDate', 'MediaModifyDate'}
LAST_RESORT_FIELD = 'CreateDate'

# exifread tag names -> canonical (exiftool style) names
EXIFREAD_TAG_MAP = {
    'EXIF DateTimeOriginal': 'DateTimeOriginal',
    'EXIF DateTimeDigitized': 'DateTimeDigitized',
    'Image DateTime': 'ModifyDate',
    'EXIF SubSecTimeOriginal': 'SubSecTimeOriginal',
    'EXIF SubSecTimeDigitized': 'SubSecTimeDigitized',
    'EXIF SubSecTime': 'SubSecTime',
}

# Pillow numeric EXIF tags -> canonical names
PILLOW_TAG_MAP = {
    0x0132: 'ModifyDate',
    0x9003: 'DateTimeOriginal',
    0x9004: 'DateTimeDigitized',
    0x9290: 'SubSecTime',
    0x9291: 'SubSecTimeOriginal',
    0x9292: 'SubSecTimeDigitized',
}
PILLOW_EXIF_IFD = 0x8769

# pymediainfo General track attributes, in priority order
MEDIAINFO_DATE_FIELDS = ['recorded_date', 'encoded_date', 'tagged_date']

# --- Hashing ---
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading

# --- Organization ---
MONTH_NAMES = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
               'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']
FOLDER_PATTERN = "{year:04d}/{month:02d}-{month_name}"
STEM_PATTERN = "{year:04d}{month:02d}{day:02d}_{hour:02d}{minute:02d}{second:02d}.{millis:03d}"

TRANSFER_MODES = ('move', 'copy', 'symlink')
DEFAULT_MODE = 'move'

# Bound on fresh ordinals requested when the destination is already occupied on disk
MAX_COLLISION_RETRIES = 16

TEMP_PREFIX = '.sortify-partial-'

# --- Persistence ---
INDEX_FILENAME = '.sortify_index.db'
LOG_FILENAME = 'sortify.log'

# --- Logging ---
TRACE = 5
logging.addLevelName(TRACE, 'TRACE')
