import errno
import logging
import os
import shutil
import tempfile
from pathlib import Path

from .. import config
from ..exceptions import FileOperationError, NamingCollisionError
from ..models import DestinationPath, MediaFile

# errno values meaning "no hard link possible here", so fall back to copying
_NO_LINK_ERRNOS = {errno.EXDEV, errno.EPERM, errno.EMLINK, errno.ENOTSUP, errno.EOPNOTSUPP}


class Organizer:
    """
    Places one source file at its destination.

    Never overwrites: every publish step fails with EEXIST when the target is
    taken, which surfaces as NamingCollisionError. Copies go through a hidden
    temp file in the target directory, so a failed transfer leaves no partial
    file under the final name.
    """

    def __init__(self, dest_root: Path, mode: str = config.DEFAULT_MODE, dry_run: bool = False):
        if mode not in config.TRANSFER_MODES:
            raise ValueError(f"Invalid mode: {mode}. Must be one of {', '.join(config.TRANSFER_MODES)}")
        self.dest_root = dest_root
        self.mode = mode
        self.dry_run = dry_run

    def transfer(self, media: MediaFile, dest: DestinationPath) -> Path:
        target = dest.under(self.dest_root)

        if os.path.lexists(target):
            raise NamingCollisionError(target)

        if self.dry_run:
            logging.info(f"[DRY RUN] {self.mode.capitalize()} {media.path} -> {target}")
            return target

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"Failed to create directory {target.parent}: {e}") from e

        try:
            if self.mode == 'move':
                self._move(media.path, target)
            elif self.mode == 'copy':
                self._copy(media.path, target)
            else:
                os.symlink(media.path, target)
        except FileExistsError as e:
            raise NamingCollisionError(target) from e
        except OSError as e:
            raise FileOperationError(f"Failed to {self.mode} {media.path} -> {target}: {e}") from e

        logging.log(config.TRACE, f"{self.mode}: {media.path} -> {target}")
        return target

    def _move(self, src: Path, target: Path):
        try:
            os.link(src, target)
        except OSError as e:
            if e.errno not in _NO_LINK_ERRNOS:
                raise
            logging.debug(f"Cross-device move for {src}, using copy+delete")
            self._copy(src, target)

        # The target is published at this point; a leftover source is only a warning
        try:
            os.unlink(src)
        except OSError as e:
            logging.warning(f"Organized {src} -> {target} but could not remove the source: {e}")

    def _copy(self, src: Path, target: Path):
        fd, tmp = tempfile.mkstemp(prefix=config.TEMP_PREFIX, dir=target.parent)
        os.close(fd)
        try:
            shutil.copy2(src, tmp)
            self._publish(Path(tmp), target)
        finally:
            if os.path.lexists(tmp):
                os.unlink(tmp)

    def _publish(self, tmp: Path, target: Path):
        try:
            os.link(tmp, target)
            return
        except OSError as e:
            if e.errno not in _NO_LINK_ERRNOS:
                raise
        # No hard links on this filesystem: reserve the name exclusively, then replace it
        fd = os.open(target, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        os.close(fd)
        os.replace(tmp, target)
