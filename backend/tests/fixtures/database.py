"""Database fixtures

Each test gets its own SQLite file under tmp_path with the schema created.
"""
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from analyser.models.database import create_engine_for, init_db
from analyser.repositories.analysis_repository import AnalysisRepository


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'analyser_test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def repository(session_factory):
    """AnalysisRepository bound to the test database."""
    return AnalysisRepository(session_factory)
