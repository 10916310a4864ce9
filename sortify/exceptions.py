"""
Custom exception hierarchy for sortify.

Per-file errors are recovered or turned into a Failed outcome by the worker;
only PoolFatalError stops a whole run.
"""


class SortifyError(Exception):
    """Base exception for all sortify errors."""
    pass


class ExtractionError(SortifyError):
    """Raised when one extractor cannot produce a timestamp for a file."""
    pass


class FileHashError(SortifyError):
    """Raised when file content cannot be streamed for fingerprinting."""
    pass


class SourceReadError(SortifyError):
    """Raised when the source file itself cannot be read or is not a regular file."""
    pass


class NamingCollisionError(SortifyError):
    """Raised when a destination path is already occupied on disk."""

    def __init__(self, path):
        super().__init__(f"Destination already exists: {path}")
        self.path = path


class FileOperationError(SortifyError):
    """Raised when file copy/move operations fail."""
    pass


class DatabaseError(SortifyError):
    """Raised when the persisted index cannot be read or written."""
    pass


class PoolFatalError(SortifyError):
    """Raised when the run cannot start (bad destination root or configuration)."""
    pass
