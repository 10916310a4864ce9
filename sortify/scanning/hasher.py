from pathlib import Path

import xxhash

from .. import config
from ..exceptions import FileHashError


class ContentHasher:
    """
    Content fingerprint for duplicate detection.

    xxh3-64 over the whole file, read in HASH_CHUNK_SIZE chunks so memory stays
    bounded regardless of file size. Not meant for security.
    """

    def __init__(self, chunk_size: int = config.HASH_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def fingerprint(self, path: Path) -> str:
        h = xxhash.xxh3_64()
        try:
            with open(path, 'rb') as f:
                while chunk := f.read(self.chunk_size):
                    h.update(chunk)
        except OSError as e:
            raise FileHashError(f"Failed to hash {path}: {e}") from e
        return h.hexdigest()
