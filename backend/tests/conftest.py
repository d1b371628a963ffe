"""
Pytest Configuration and Fixtures
"""

import os
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

# Settings are read at import time; point them at throwaway locations first
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="motionswap-test-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DATA_DIR}/app.db")
os.environ.setdefault("BLOB_ROOT", os.path.join(_TEST_DATA_DIR, "blobs"))
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("AI_GATEWAY_API_KEY", "test-gateway-key")
os.environ.setdefault("RESEND_API_KEY", "")

from motionswap.models import Base  # noqa: E402
from motionswap.models.generation import GenerationModel  # noqa: E402,F401
from motionswap.services.blob_storage import BlobStorage  # noqa: E402


@pytest.fixture
def test_db_path() -> Generator[str, None, None]:
    """Create temporary database file"""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.db', delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def test_db_engine(test_db_path: str) -> Generator:
    """Create test database engine"""
    engine = create_engine(
        f"sqlite:///{test_db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    """Session factory bound to the test database"""
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def test_db_session(session_factory) -> Generator[Session, None, None]:
    """Create test database session"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for file operations"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def blob_storage(temp_dir: Path) -> BlobStorage:
    """Blob storage rooted in a temporary directory"""
    return BlobStorage(root=str(temp_dir / "blobs"), url_prefix="/blobs")


class FakeSleep:
    """Records requested delays instead of waiting"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


def assert_generation_invariants(generation) -> None:
    """Status-dependent columns agree with the status"""
    assert (generation.video_url is not None) == (generation.status == "completed")
    assert (generation.error_details is not None) == (generation.status == "failed")
    if generation.status in ("completed", "failed"):
        assert generation.completed_at is not None
    else:
        assert generation.completed_at is None


@pytest.fixture
def check_invariants():
    return assert_generation_invariants


# Environment fixtures
@pytest.fixture
def mock_env_vars():
    """Mock environment variables"""
    os.environ["AI_GATEWAY_API_KEY"] = "test-gateway-key"
    os.environ["AI_GATEWAY_BASE_URL"] = "https://gateway.test"
    os.environ["RESEND_API_KEY"] = "re_test_key"

    yield

    # Cleanup
    os.environ.pop("AI_GATEWAY_BASE_URL", None)
    os.environ["RESEND_API_KEY"] = ""
    os.environ["AI_GATEWAY_API_KEY"] = "test-gateway-key"
