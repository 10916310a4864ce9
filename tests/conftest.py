import pytest
import sqlite3
from datetime import datetime

from sortify.core import WorkerPool
from sortify.database.schema import init_schema
from sortify.database.ops import DBOperations
from sortify.exceptions import ExtractionError
from sortify.metadata.extract import Extractor, ExtractorChain
from sortify.models import ResolvedTimestamp, RunSettings

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def db_ops(conn):
    """Returns a DBOperations instance attached to the in-memory DB."""
    return DBOperations(conn)


class FixedExtractor(Extractor):
    """Answers from a {file name: datetime} table; unknown names fail."""
    name = "fixed"

    def __init__(self, table):
        self.table = table

    def attempt(self, media):
        dt = self.table.get(media.path.name)
        if dt is None:
            raise ExtractionError("no fixture timestamp")
        return ResolvedTimestamp(dt, self.name)


class FailingExtractor(Extractor):
    name = "failing"

    def attempt(self, media):
        raise ExtractionError("always fails")


SCENARIO_DT = datetime(2024, 12, 19, 14, 30, 52, 123000)


@pytest.fixture
def src_dir(tmp_path):
    d = tmp_path / "src"
    d.mkdir()
    return d

@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / "out"

@pytest.fixture
def make_pool(out_dir):
    """Factory for a WorkerPool over a FixedExtractor, copying into `out_dir` by default."""
    def _make(table=None, chain=None, **overrides):
        opts = dict(output_dir=out_dir, workers=4, mode="copy")
        opts.update(overrides)
        if chain is None:
            chain = ExtractorChain([FixedExtractor(table or {})])
        return WorkerPool(RunSettings(**opts), chain=chain)
    return _make
