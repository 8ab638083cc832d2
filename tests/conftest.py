"""
Shared fixtures: an in-memory entity fetch port and a small HUVR dataset.
"""
# --- Standard library imports ---
from collections import Counter
from copy import deepcopy
import threading

# --- Third party imports ---
import pytest
import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# --- Local imports ---
from huvr_export.db.session import Base
from huvr_export.services.huvr_client import HuvrApiError, HuvrNotFoundError, snake_to_pascal

# API filter names that do not map onto a PascalCase record key
_FILTER_FIELDS = {"asset_search": "AssetId"}


class FakeFetchPort:
    """Entity fetch port over in-memory records that counts every call."""

    def __init__(self, data, failing_ids=(), on_fetch_one=None):
        self.data = data
        self.failing_ids = set(failing_ids)
        self.on_fetch_one = on_fetch_one
        self.fetch_all_calls = Counter()
        self.fetch_one_calls = Counter()
        self._lock = threading.Lock()

    def fetch_all(self, entity_type, filters=None, max_items=None, cancel_event=None):
        with self._lock:
            self.fetch_all_calls[entity_type] += 1
        records = [
            r for r in self.data.get(entity_type, [])
            if all(
                str(r.get(_FILTER_FIELDS.get(k, snake_to_pascal(k)))) == str(v)
                for k, v in (filters or {}).items()
            )
        ]
        if max_items is not None:
            records = records[:max_items]
        return deepcopy(records)

    def fetch_one(self, entity_type, entity_id):
        with self._lock:
            self.fetch_one_calls[entity_type] += 1
        if self.on_fetch_one is not None:
            self.on_fetch_one(entity_type, entity_id)
        if entity_id in self.failing_ids:
            raise HuvrApiError(f"{entity_type} {entity_id} failed", status_code=500)
        for record in self.data.get(entity_type, []):
            if record.get("Id") == entity_id:
                return deepcopy(record)
        raise HuvrNotFoundError(f"{entity_type} {entity_id} not found", status_code=404)


class FakeMediaResponse:
    def __init__(self, status_code=200, content=b"", content_type=None, reason="OK"):
        self.status_code = status_code
        self.content = content
        self.reason = reason
        self.headers = {"Content-Type": content_type} if content_type else {}

    @property
    def ok(self):
        return self.status_code < 400


class FakeMediaSession:
    """Serves files by URL; unknown URLs get a 404 and ``broken`` URLs a connection error."""

    def __init__(self, files=None, broken=()):
        self.files = files or {}
        self.broken = set(broken)
        self.requested = []
        self.closed = False

    def get(self, url, timeout=None):
        self.requested.append(url)
        if url in self.broken:
            raise requests.ConnectionError(f"cannot reach {url}")
        if url not in self.files:
            return FakeMediaResponse(404, reason="Not Found")
        content, content_type = self.files[url]
        return FakeMediaResponse(200, content, content_type)

    def close(self):
        self.closed = True


def sample_data():
    return {
        "Asset": [
            {"Id": "A1", "Name": "Pump", "LibraryId": "L1", "Status": "Active"},
            {"Id": "A2", "Name": "Valve", "Status": "Retired"},
        ],
        "Project": [
            {
                "Id": "P1", "AssetId": "A1", "Name": "Q1 Inspection", "Status": "Open",
                "Parent": {"Id": "A1", "Name": "Pump"},
                "Library": {"Id": "L1", "Name": "Standard Library"},
                "Tags": ["ut", "visual"],
            },
            {"Id": "P2", "AssetId": "A9", "Name": "Q2 Inspection", "Status": "Closed"},
            {"Id": "P3", "AssetId": "A2", "Name": "Valve Survey", "Status": "Open"},
        ],
        "Defect": [
            {"Id": "D1", "ProjectId": "P1", "AssetId": "A1", "Title": "Pitting", "Severity": "High",
             "Status": "Open", "DefectType": "Corrosion", "IdentifiedBy": "U1"},
            {"Id": "D2", "ProjectId": "P1", "AssetId": "A1", "Title": "Crack", "Severity": "Medium",
             "Status": "Closed", "DefectType": "Mechanical"},
            {"Id": "D3", "ProjectId": "P2", "AssetId": "A9", "Title": "Leak", "Severity": "High",
             "Status": "Open"},
        ],
        "Measurement": [
            {"Id": "M1", "ProjectId": "P1", "AssetId": "A1", "MeasurementType": "Thickness", "Value": 12.5, "Unit": "mm"},
            {"Id": "M2", "ProjectId": "P3", "AssetId": "A2", "MeasurementType": "Thickness", "Value": 9.0, "Unit": "mm"},
        ],
        "InspectionMedia": [
            {"Id": "IM1", "ProjectId": "P1", "FileName": "pump.jpg", "DownloadUrl": "https://files.test/media/pump.jpg"},
            {"Id": "IM2", "ProjectId": "P3", "FileName": "valve.jpg"},
        ],
        "DefectOverlay": [
            {
                "Id": "O1", "DefectId": "D1", "MediaId": "IM1",
                "DisplayUrl": "https://files.test/overlays/O1",
                "Media": {
                    "Id": "IM1", "FileName": "pump.jpg",
                    "DownloadUrl": "https://files.test/media/pump.jpg",
                    "ThumbnailUrl": "https://files.test/thumbs/pump.jpg",
                },
            },
        ],
        "Checklist": [
            {"Id": "C1", "ProjectId": "P1", "Name": "Pre-inspection"},
        ],
        "User": [
            {"Id": "U1", "Email": "jo.smith@example.com", "FirstName": "Jo", "LastName": "Smith", "IsActive": True},
            {"Id": "U2", "Email": "sam.lee@example.com", "FirstName": "Sam", "LastName": "Lee", "IsActive": False},
        ],
        "Task": [
            {"Id": "T1", "Title": "Inspect pump", "ProjectId": "P1", "AssignedTo": "U1"},
            {"Id": "T2", "Title": "Orphan task", "ProjectId": "P404"},
        ],
        "Library": [
            {"Id": "L1", "Name": "Standard Library"},
        ],
        "LibraryMedia": [
            {"Id": "LM1", "LibraryId": "L1", "Name": "Procedure.pdf"},
            {"Id": "LM2", "LibraryId": "L2", "Name": "Other.pdf"},
        ],
    }


@pytest.fixture
def data():
    return sample_data()


@pytest.fixture
def port(data):
    return FakeFetchPort(data)


@pytest.fixture
def db_session():
    """SQLite in-memory session with all tables created."""
    import huvr_export.models  # noqa: F401 - register models

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


def media_files():
    return {
        "https://files.test/media/pump.jpg": (b"pump-bytes", "image/jpeg"),
        "https://files.test/overlays/O1": (b"overlay-bytes", "image/png"),
        "https://files.test/thumbs/pump.jpg": (b"thumb-bytes", "image/jpeg; charset=binary"),
    }


@pytest.fixture
def media_session():
    return FakeMediaSession(media_files())
