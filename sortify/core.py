import logging
import os
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Optional, Sequence

from tqdm import tqdm

from . import config
from .database.db import DBManager
from .database.ops import DBOperations
from .exceptions import (
    DatabaseError,
    FileHashError,
    FileOperationError,
    NamingCollisionError,
    PoolFatalError,
    SourceReadError,
)
from .metadata.extract import ExtractorChain
from .models import (
    DestinationPath,
    ErrorKind,
    MediaFile,
    Outcome,
    OutcomeStatus,
    ResolvedTimestamp,
    RunSettings,
    RunSummary,
)
from .organization.dedupe import DuplicateIndex
from .organization.mover import Organizer
from .organization.naming import NameGenerator, TieBreakRegistry
from .scanning.hasher import ContentHasher


def prepare_destination(output_dir: Path) -> Path:
    """Creates the destination root if needed and proves it is writable."""
    root = Path(os.path.abspath(output_dir))
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PoolFatalError(f"Cannot create destination root {root}: {e}") from e

    try:
        with tempfile.TemporaryFile(dir=root):
            pass
    except OSError as e:
        raise PoolFatalError(f"Destination root {root} is not writable: {e}") from e
    return root


class WorkerPool:
    """
    Runs the per-file pipeline over a bounded thread pool:
    extract timestamp -> fingerprint -> duplicate check -> name -> transfer.

    Each task handles one file start to finish. Outcomes come back through the
    futures and are gathered in the calling thread.
    """

    def __init__(self,
                 settings: RunSettings,
                 chain: Optional[ExtractorChain] = None,
                 hasher: Optional[ContentHasher] = None):
        self.settings = settings
        if chain is None:
            try:
                chain = ExtractorChain.build(
                    settings.extractors,
                    use_exiftool=settings.use_exiftool,
                    exiftool_timeout=settings.exiftool_timeout,
                )
            except ValueError as e:
                raise PoolFatalError(str(e)) from e
        self.chain = chain
        self.hasher = hasher or ContentHasher()
        self._cancel = threading.Event()

        # Per-run shared state, set up in run()
        self.registry: Optional[TieBreakRegistry] = None
        self.index: Optional[DuplicateIndex] = None
        self.names: Optional[NameGenerator] = None
        self.organizer: Optional[Organizer] = None

    def cancel(self):
        """Stops new files from starting; files already in progress finish."""
        self._cancel.set()

    def run(self, files: Sequence[Path]) -> RunSummary:
        workers = self._validate()
        dest_root = prepare_destination(self.settings.output_dir)

        files = list(files)
        if self.settings.limit and self.settings.limit < len(files):
            logging.info(f"Limiting to {self.settings.limit} files (given {len(files)})")
            files = files[:self.settings.limit]

        db = None
        if self.settings.index_path:
            db = DBManager(self.settings.index_path, read_only=self.settings.dry_run)
        try:
            fingerprints: Dict[str, str] = {}
            tiebreaks: Dict[str, int] = {}
            if db:
                db_ops = DBOperations(db.connect())
                fingerprints = db_ops.load_fingerprints()
                tiebreaks = db_ops.load_tiebreaks()
                logging.info(f"Loaded index: {len(fingerprints)} fingerprints, {len(tiebreaks)} base names")
        except DatabaseError as e:
            if db:
                db.close()
            raise PoolFatalError(f"Cannot load index {self.settings.index_path}: {e}") from e

        self.registry = TieBreakRegistry(tiebreaks)
        self.index = DuplicateIndex(fingerprints)
        self.names = NameGenerator(self.registry)
        self.organizer = Organizer(dest_root, mode=self.settings.mode, dry_run=self.settings.dry_run)

        logging.info(f"Processing {len(files)} files with {workers} workers "
                     f"(Mode={self.settings.mode}, DryRun={self.settings.dry_run})")

        summary = RunSummary()
        try:
            self._dispatch(files, workers, summary)
        finally:
            if db:
                self._save_index(db)
                db.close()

        summary.cancelled = self._cancel.is_set()
        return summary

    # --- Scheduling ---

    def _validate(self) -> int:
        workers = self.settings.workers
        if workers is None:
            workers = os.cpu_count() or 1
        if not isinstance(workers, int) or workers < 1:
            raise PoolFatalError(f"Invalid worker count: {workers}")
        if self.settings.limit < 0:
            raise PoolFatalError(f"Invalid file limit: {self.settings.limit}")
        if self.settings.mode not in config.TRANSFER_MODES:
            raise PoolFatalError(f"Invalid mode: {self.settings.mode}")
        return workers

    def _dispatch(self, files: Sequence[Path], workers: int, summary: RunSummary):
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sortify-worker")
        futures: Dict[Future, Path] = {}
        collected = set()
        pbar = tqdm(total=len(files), desc="Organizing", unit="file", disable=not self.settings.show_progress)

        try:
            for path in files:
                futures[executor.submit(self._process_one, Path(path))] = Path(path)

            for future in as_completed(futures):
                collected.add(future)
                self._collect(future, futures[future], summary)
                pbar.update(1)
        except KeyboardInterrupt:
            logging.warning("Cancellation requested; letting in-flight files finish...")
            self._cancel.set()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
            pbar.close()

        # Anything left was either finished during shutdown or never started
        for future, path in futures.items():
            if future in collected:
                continue
            if future.cancelled():
                summary.not_processed += 1
            else:
                self._collect(future, path, summary)

    def _collect(self, future: Future, path: Path, summary: RunSummary):
        try:
            outcome = future.result()
        except Exception as e:
            logging.exception(f"Unexpected error processing {path}")
            outcome = Outcome.failed(path, ErrorKind.UNEXPECTED, f"{type(e).__name__}: {e}")

        if outcome is None:
            summary.not_processed += 1
        else:
            summary.add(outcome)

    # --- Per-file pipeline (runs on worker threads) ---

    def _process_one(self, path: Path) -> Optional[Outcome]:
        if self._cancel.is_set():
            return None

        try:
            media = MediaFile.from_path(path)
        except SourceReadError as e:
            logging.warning(str(e))
            return Outcome.failed(path, ErrorKind.SOURCE_UNREADABLE, str(e))

        ts = self.chain.resolve(media)

        fingerprint = self._fingerprint(media)
        if fingerprint is not None:
            canonical = self.index.check_and_insert(fingerprint)
            if canonical is not None:
                logging.debug(f"Duplicate: {media.path} == {canonical}")
                return Outcome.duplicate(media.path, canonical, ts.source)

        try:
            outcome = self._place(media, ts, fingerprint)
        except BaseException:
            if fingerprint is not None:
                self.index.release(fingerprint)
            raise

        if fingerprint is not None:
            if outcome.status == OutcomeStatus.FAILED:
                self.index.release(fingerprint)
            else:
                self.index.resolve(fingerprint, outcome.destination)
        return outcome

    def _fingerprint(self, media: MediaFile) -> Optional[str]:
        try:
            return self.hasher.fingerprint(media.path)
        except FileHashError as e:
            # Fail open: treat as unique content
            logging.debug(f"{e}; treating as non-duplicate")
            return None

    def _place(self, media: MediaFile, ts: ResolvedTimestamp, fingerprint: Optional[str]) -> Outcome:
        dest = self.names.assign(ts, media.ext)
        searched_siblings = False

        for _ in range(config.MAX_COLLISION_RETRIES + 1):
            try:
                self.organizer.transfer(media, dest)
                return Outcome.organized(media.path, dest.relative, ts.source)
            except NamingCollisionError as e:
                if self._same_content(media, Path(e.path), fingerprint):
                    logging.debug(f"Already organized: {media.path} == {e.path}")
                    return Outcome.duplicate(media.path, dest.relative, ts.source)
                if not searched_siblings:
                    # An earlier run may have put this content under another ordinal
                    searched_siblings = True
                    existing = self._find_on_disk_copy(media, dest, fingerprint)
                    if existing is not None:
                        logging.debug(f"Already organized: {media.path} == {existing.relative}")
                        return Outcome.duplicate(media.path, existing.relative, ts.source)
                logging.debug(f"{e}; requesting a new ordinal")
                dest = self.names.reassign(dest)
            except FileOperationError as e:
                logging.warning(str(e))
                return Outcome.failed(media.path, ErrorKind.ORGANIZE_IO, str(e), ts.source)

        msg = f"Destination still occupied after {config.MAX_COLLISION_RETRIES} retries: {dest.relative}"
        logging.warning(f"{media.path}: {msg}")
        return Outcome.failed(media.path, ErrorKind.NAMING_COLLISION, msg, ts.source)

    def _find_on_disk_copy(self,
                           media: MediaFile,
                           dest: DestinationPath,
                           fingerprint: Optional[str]) -> Optional[DestinationPath]:
        """Checks every ordinal of `dest`'s base name present on disk for the same content."""
        root = self.organizer.dest_root
        try:
            with os.scandir(dest.under(root).parent) as it:
                names = [entry.name for entry in it]
        except OSError:
            return None

        ordinals = sorted(o for o in (dest.ordinal_of(name) for name in names) if o is not None)
        for ordinal in ordinals:
            if ordinal == dest.ordinal:
                continue
            candidate = dest.with_ordinal(ordinal)
            if self._same_content(media, candidate.under(root), fingerprint):
                return candidate
        return None

    def _same_content(self, media: MediaFile, existing: Path, fingerprint: Optional[str]) -> bool:
        try:
            if os.path.samefile(media.path, existing):
                return True
            if fingerprint is None or os.path.getsize(existing) != media.size_bytes:
                return False
            return self.hasher.fingerprint(existing) == fingerprint
        except (OSError, FileHashError):
            return False

    def _save_index(self, db: DBManager):
        if self.settings.dry_run:
            logging.info("[DRY RUN] Index not updated.")
            return
        try:
            db_ops = DBOperations(db.connect())
            db_ops.save_fingerprints(self.index.snapshot())
            db_ops.save_tiebreaks(self.registry.snapshot())
        except DatabaseError as e:
            logging.error(f"Failed to save index: {e}")
