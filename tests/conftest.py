"""Shared pytest fixtures for Keystone tests.

Fixtures:
    - temp_db: Fresh SQLite database in a temp file
    - memory_db: Fresh in-memory SQLite database
    - mock_config: Test configuration with temp paths
    - sample_property: Sample Property record
    - sample_lead: Sample Lead record
    - populated_db: memory_db holding the sample property (id 1) and lead (id 1)
    - reference_instant: Monday 2026-06-01 09:00 America/Chicago
    - interview_engine: FeedbackInterviewEngine on populated_db
    - scheduler: VoiceSchedulingInterpreter on populated_db
    - schedule_book: ScheduleBook on populated_db
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Generator
from zoneinfo import ZoneInfo

import pytest

from keystone.core.config import Config, reset_config
from keystone.db.database import Database
from keystone.db.models import Lead, Property
from keystone.engine.bookings import ScheduleBook
from keystone.engine.interview import FeedbackInterviewEngine
from keystone.engine.question_graph import reset_graphs
from keystone.engine.voice_scheduler import VoiceSchedulingInterpreter

CHICAGO = ZoneInfo("America/Chicago")


@pytest.fixture(autouse=True)
def _reset_registries() -> Generator[None, None, None]:
    """Each test starts with built-in graphs and a fresh config cache."""
    reset_graphs()
    reset_config()
    yield
    reset_graphs()
    reset_config()


@pytest.fixture
def temp_db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a temporary database for testing.

    Yields:
        Database connected to temp file, cleaned up after test
    """
    db_path = tmp_path / "test.db"
    db = Database(str(db_path))
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def memory_db() -> Generator[Database, None, None]:
    """Create an in-memory database for fast tests.

    Yields:
        Database using :memory:, no cleanup needed
    """
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def mock_config(tmp_path: Path) -> Config:
    """Test configuration with temp paths."""
    return Config(
        db_path=tmp_path / "test.db",
        log_path=tmp_path / "logs",
        timezone="America/Chicago",
        debug=True,
    )


@pytest.fixture
def sample_property() -> Property:
    """Sample Property record for testing."""
    return Property(
        name="Maple Court 2B",
        address="412 Maple Ct, Austin, TX",
        bedrooms="2",
        rent=Decimal("1850"),
    )


@pytest.fixture
def sample_lead() -> Lead:
    """Sample Lead record for testing."""
    return Lead(
        name="Casey Jordan",
        email="casey@example.com",
        phone="512-555-0142",
        source="website",
    )


@pytest.fixture
def populated_db(memory_db: Database, sample_property: Property, sample_lead: Lead) -> Database:
    """Database pre-populated with sample data.

    Contains:
        - 1 property (Maple Court 2B, id 1)
        - 1 lead (Casey Jordan, id 1, interested in property 1)
    """
    property_id = memory_db.create_property(sample_property)
    sample_lead.property_id = property_id
    memory_db.create_lead(sample_lead)
    return memory_db


@pytest.fixture
def reference_instant() -> datetime:
    """A known Monday morning: 2026-06-01 09:00 America/Chicago."""
    return datetime(2026, 6, 1, 9, 0, tzinfo=CHICAGO)


@pytest.fixture
def interview_engine(
    populated_db: Database, mock_config: Config, reference_instant: datetime
) -> FeedbackInterviewEngine:
    """Interview engine with a fixed clock."""
    return FeedbackInterviewEngine(populated_db, mock_config, clock=lambda: reference_instant)


@pytest.fixture
def scheduler(
    populated_db: Database, mock_config: Config, reference_instant: datetime
) -> VoiceSchedulingInterpreter:
    """Voice scheduling interpreter with a fixed clock."""
    return VoiceSchedulingInterpreter(populated_db, mock_config, clock=lambda: reference_instant)


@pytest.fixture
def schedule_book(populated_db: Database, mock_config: Config) -> ScheduleBook:
    """Manual schedule entries on the populated database."""
    return ScheduleBook(populated_db, mock_config)


# Markers for different test types
def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "database: marks tests requiring database")
