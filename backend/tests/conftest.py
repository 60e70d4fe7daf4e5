"""Shared test fixtures for API integration tests."""
import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from traintracker.main import app
from traintracker.database import build_engine, get_db, init_db
from traintracker.modules import geofence_loader
from traintracker.modules.geofence import CrossingPoint, GeofenceConfig, Zone
from traintracker.modules.geofence_loader import GeofenceSnapshot
from traintracker.utils.geo import GeoPoint


# Square around (40.0, -96.0), roughly 1.1 km on a side
SQUARE = (
    GeoPoint(39.995, -96.005),
    GeoPoint(39.995, -95.995),
    GeoPoint(40.005, -95.995),
    GeoPoint(40.005, -96.005),
)
TEST_SQUARE = (
    GeoPoint(41.0, -97.0),
    GeoPoint(41.0, -96.99),
    GeoPoint(41.01, -96.99),
    GeoPoint(41.01, -97.0),
)


@pytest.fixture
def zones():
    return (
        Zone(id="main", name="Main Zone", polygon=SQUARE),
        Zone(id="home", name="Home Test", polygon=TEST_SQUARE, is_test_zone=True),
    )


@pytest.fixture
def crossings():
    return (
        CrossingPoint(id="west", name="West Crossing", lat=40.0, lng=-96.0),
        CrossingPoint(id="east", name="East Crossing", lat=40.0, lng=-95.98),
    )


@pytest.fixture
def geofence_snapshot(zones, crossings):
    """Pin the process-wide snapshot so routes never read the real YAML."""
    snapshot = GeofenceSnapshot(config=GeofenceConfig(), zones=zones, crossings=crossings)
    previous = geofence_loader._SNAPSHOT
    geofence_loader._SNAPSHOT = snapshot
    yield snapshot
    geofence_loader._SNAPSHOT = previous


@pytest.fixture
def mock_db():
    """MagicMock database session; returns None for all queries by default."""
    session = MagicMock()
    # Default: query().filter().first() returns None (not found)
    session.query.return_value.filter.return_value.first.return_value = None
    session.query.return_value.order_by.return_value.first.return_value = None
    session.query.return_value.filter.return_value.order_by.return_value.all.return_value = []
    session.query.return_value.filter.return_value.order_by.return_value.limit.return_value.all.return_value = []
    return session


@pytest.fixture
def api_client(mock_db, geofence_snapshot):
    """TestClient with DB dependency overridden to use a MagicMock session."""
    def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def sqlite_db():
    """Real in-memory SQLite session with the train_reports table."""
    engine = build_engine("sqlite:///:memory:")
    init_db(bind=engine)
    session = sessionmaker(bind=engine)()
    yield session
    session.close()
    engine.dispose()
