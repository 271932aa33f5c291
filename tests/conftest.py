import json
import logging
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from leadview.main import app
from leadview.schemas.filter import FieldCatalog, FieldDefinition, SortKind, ValueKind
from leadview.services.filter_service import FilterService

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

@pytest.fixture(autouse=True)
def setup_logging():
    # Configure logging for tests
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

@pytest.fixture
def client():
    return TestClient(app)

@pytest.fixture
def service():
    return FilterService()

@pytest.fixture
def now():
    return NOW

@pytest.fixture
def catalog():
    return FieldCatalog(
        fields=[
            FieldDefinition(key="company", value_kind=ValueKind.TEXT),
            FieldDefinition(key="notes", value_kind=ValueKind.TEXT),
            FieldDefinition(key="x", value_kind=ValueKind.TEXT, sort_kind=SortKind.NUMBER),
            FieldDefinition(key="y", value_kind=ValueKind.TEXT),
            FieldDefinition(key="stage", value_kind=ValueKind.SELECT, options=["new", "closed"]),
            FieldDefinition(key="qualified", value_kind=ValueKind.SELECT, options=["true", "false"], default="false"),
            FieldDefinition(key="updated_at", value_kind=ValueKind.DATE_BUCKET),
        ],
        search_fields=["company", "notes"],
        default_sort_field="updated_at",
    )

@pytest.fixture
def contacts():
    return [
        {
            "id": 1,
            "first_name": "Ada",
            "last_name": "Lovelace",
            "full_name": None,
            "email": "ada@acme.com",
            "company": "Acme Inc",
            "stage": "new",
            "epv": 1500,
            "meeting_booked": True,
            "updated_at": "2024-06-14T09:00:00Z",
            "created_at": "2024-01-10T00:00:00Z",
        },
        {
            "id": 2,
            "first_name": "Grace",
            "last_name": "Hopper",
            "full_name": "Grace Hopper",
            "email": "grace@navy.mil",
            "company": "Navy LLC",
            "stage": "closed",
            "epv": "200",
            "meeting_booked": None,
            "updated_at": "2024-06-01T09:00:00Z",
            "created_at": "2024-05-20T00:00:00Z",
        },
        {
            "id": 3,
            "first_name": "Alan",
            "last_name": "Turing",
            "full_name": "Alan Turing",
            "email": "alan@bletchley.uk",
            "company": None,
            "stage": "engaged",
            "epv": None,
            "meeting_booked": False,
            "updated_at": None,
            "created_at": "2023-12-01T00:00:00Z",
        },
    ]

@pytest.fixture
def contacts_file(tmp_path, contacts):
    path = tmp_path / "contacts.jsonl"
    path.write_text("\n".join(json.dumps(row) for row in contacts))
    return str(path)
