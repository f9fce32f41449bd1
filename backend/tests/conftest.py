import os
import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set env vars BEFORE any app imports
# Locally: backend/tests/conftest.py → ../../config/settings.yaml
_here = Path(__file__).parent
_candidates = [
    _here.parent.parent / "config" / "settings.yaml",  # project root (local)
    _here.parent / "config" / "settings.yaml",         # inside backend dir
]
_settings_path = next((p for p in _candidates if p.exists()), _candidates[0])
os.environ["RENTALHUB_SETTINGS_PATH"] = str(_settings_path)
os.environ["BACKUP_DIR"] = tempfile.mkdtemp(prefix="rentalhub-backups-")
os.environ.pop("ANTHROPIC_API_KEY", None)

# Use a temp file-based SQLite so all connections share the same database
_db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_db_file.close()
_TEST_DB_URL = f"sqlite:///{_db_file.name}"
os.environ["DATABASE_URL"] = _TEST_DB_URL

from rentalhub.core.site_settings import clear_site_settings_cache  # noqa: E402
from rentalhub.db.database import Base, get_db  # noqa: E402
from rentalhub.main import app  # noqa: E402
from rentalhub.models.client import Client  # noqa: E402
from rentalhub.models.property import Property  # noqa: E402
from rentalhub.utils.settings_loader import clear_settings_cache  # noqa: E402

_test_engine = create_engine(_TEST_DB_URL, connect_args={"check_same_thread": False})
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)


@pytest.fixture(autouse=True)
def setup_db():
    """Create all tables before each test, drop after."""
    clear_settings_cache()
    clear_site_settings_cache()
    Base.metadata.create_all(bind=_test_engine)
    yield
    Base.metadata.drop_all(bind=_test_engine)


@pytest.fixture
def db():
    session = _TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def backup_dir(tmp_path, monkeypatch):
    directory = tmp_path / "backups"
    monkeypatch.setenv("BACKUP_DIR", str(directory))
    return directory


@pytest.fixture
def make_property(db):
    def _make(name="Sunset Villa", estimated_monthly="25000.00", status="Available"):
        prop = Property(
            property_name=name,
            address="12 Mabini St, Makati",
            estimated_monthly=None if estimated_monthly is None else Decimal(estimated_monthly),
            status=status,
        )
        db.add(prop)
        db.commit()
        db.refresh(prop)
        return prop

    return _make


@pytest.fixture
def make_client(db):
    counter = {"n": 0}

    def _make(name="Juan Dela Cruz"):
        counter["n"] += 1
        tenant = Client(name=name, email=f"tenant{counter['n']}@example.com")
        db.add(tenant)
        db.commit()
        db.refresh(tenant)
        return tenant

    return _make


@pytest.fixture
def today():
    return date.today()
