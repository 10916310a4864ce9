import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Set

from . import config
from .core import WorkerPool, prepare_destination
from .exceptions import PoolFatalError
from .models import RunSettings
from .reporting import ReportGenerator
from .scanning.filesystem import DiskScanner

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(message)s"


def verbosity_level(verbose: int) -> int:
    """-v = INFO, -vv = DEBUG, -vvv = TRACE; warnings only by default."""
    levels = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}
    return levels.get(verbose, config.TRACE)


def setup_logging(verbose: int):
    """Console logging; the file handler is attached once the destination is known to be writable."""
    logging.basicConfig(
        level=verbosity_level(verbose),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def attach_log_file(dest_root: Path):
    handler = logging.FileHandler(dest_root / config.LOG_FILENAME, encoding='utf-8')
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)


def _extractor_list(value: str) -> List[str]:
    return [name.strip() for name in value.split(",") if name.strip()]


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(
        prog="sortify",
        description="Organize image and video files by capture timestamp: "
                    "YYYY/MM-Mon/YYYYMMDD_HHMMSS.fff[-N].ext, with duplicate detection.",
    )
    p.add_argument("-v", "--verbose", action="count", default=0,
                   help="Increase verbosity (-v=INFO, -vv=DEBUG, -vvv=TRACE)")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-o", "--output-dir", type=Path, default=Path("."),
                        help="Destination root for organized files (default: current directory)")
    common.add_argument("-w", "--workers", type=int, default=None,
                        help="Number of parallel workers (default: CPU count)")
    common.add_argument("-m", "--mode", choices=config.TRANSFER_MODES, default=config.DEFAULT_MODE,
                        help="File operation mode (default: move)")
    common.add_argument("--dry-run", action="store_true", help="Simulate actions without modifying disk")
    common.add_argument("--index", type=Path, default=None,
                        help=f"Persisted duplicate/tie-break index (default: OUTPUT/{config.INDEX_FILENAME})")
    common.add_argument("--no-index", action="store_true", help="Do not load or save a persisted index")
    common.add_argument("--extractors", type=_extractor_list, default=list(config.DEFAULT_EXTRACTORS),
                        help="Comma separated in-process extractor order "
                             f"(default: {','.join(config.DEFAULT_EXTRACTORS)}); exiftool always runs last")
    common.add_argument("--no-exiftool", action="store_true", help="Never call the exiftool subprocess")
    common.add_argument("--exiftool-timeout", type=float, default=config.EXIFTOOL_TIMEOUT,
                        help="Seconds before an exiftool call is abandoned")
    common.add_argument("--report-csv", type=Path, default=None, help="Write a per-file CSV report")
    common.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    sub = p.add_subparsers(dest="command", required=True)

    files = sub.add_parser("files", parents=[common], help="Process one or more files")
    files.add_argument("files", nargs="+", type=Path, help="Files to process")

    batch = sub.add_parser("batch", parents=[common],
                           help="Process all media files in one or more directories recursively")
    batch.add_argument("directories", nargs="+", type=Path, help="Directories to process")
    batch.add_argument("--limit", type=int, default=0, help="Limit number of files to process (0=all)")

    return p.parse_args(argv)


def build_settings(args) -> RunSettings:
    output_dir = args.output_dir.resolve()
    index_path = None
    if not args.no_index:
        index_path = args.index if args.index else output_dir / config.INDEX_FILENAME

    return RunSettings(
        output_dir=output_dir,
        workers=args.workers,
        limit=getattr(args, "limit", 0),
        mode=args.mode,
        dry_run=args.dry_run,
        index_path=index_path,
        extractors=args.extractors,
        use_exiftool=not args.no_exiftool,
        exiftool_timeout=args.exiftool_timeout,
        show_progress=not args.no_progress,
    )


def output_skip_dirs(output_dir: Path, roots: List[Path]) -> Set[Path]:
    """Output tree to leave out of a batch scan, unless it is a scanned root or contains one."""
    if any(output_dir == root or output_dir in root.parents for root in roots):
        return set()
    return {output_dir}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    settings = build_settings(args)
    logging.info("=== sortify started ===")
    logging.info(f"Dest:   {settings.output_dir}")

    try:
        pool = WorkerPool(settings)
        dest_root = prepare_destination(settings.output_dir)
        attach_log_file(dest_root)

        if args.command == "batch":
            if settings.limit < 0:
                raise PoolFatalError(f"Invalid file limit: {settings.limit}")
            roots = [d.resolve() for d in args.directories]
            sources = DiskScanner().collect(roots, limit=settings.limit,
                                            skip_dirs=output_skip_dirs(settings.output_dir, roots))
        else:
            sources = list(args.files)

        logging.info(f"Total files to process: {len(sources)}")
        summary = pool.run(sources)
    except PoolFatalError as e:
        logging.error(f"Fatal: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return 1

    reporter = ReportGenerator(summary)
    print(reporter.format_summary())
    if args.report_csv:
        reporter.write_csv(args.report_csv)

    return 1 if summary.cancelled else 0


if __name__ == "__main__":
    sys.exit(main())
