import pytest
from sqlalchemy.orm import sessionmaker

from database import init_db, make_engine
from pipeline.orchestrator import IngestionPipeline
from pipeline.writer import SqlRecordStore

from fakes import FAST_SETTINGS, FakeAnalyzer, FakeBlobStore, FakeExtractor, InMemoryRecordStore


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    return SqlRecordStore(session_factory)


@pytest.fixture
def services():
    return {
        "blob_store": FakeBlobStore(),
        "image_extractor": FakeExtractor(),
        "audio_extractor": FakeExtractor(),
        "analyzer": FakeAnalyzer(),
        "record_store": InMemoryRecordStore(),
    }


@pytest.fixture
def make_pipeline(services):
    def _make(**overrides):
        wired = {**services, **overrides}
        return IngestionPipeline(settings=FAST_SETTINGS, **wired), wired

    return _make
