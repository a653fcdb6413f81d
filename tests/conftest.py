"""
Pytest configuration and shared fixtures for Congregation Hub tests.

Provides custom markers, a test environment, and an in-memory stand-in for
the Supabase query builder so services can be exercised without a database.
"""

import copy
import os
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src/ to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

# Keep test runs from writing a log file into the working directory
os.environ.setdefault("LOG_FILE", os.devnull)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "api: marks tests that test API endpoints")
    config.addinivalue_line("markers", "integration: marks tests that test component integration")
    config.addinivalue_line("markers", "external: marks tests that require external services")


@pytest.fixture(scope="session", autouse=True)
def test_environment():
    """Set up test environment variables."""
    os.environ["TESTING"] = "true"

    test_env_vars = {
        "SUPABASE_URL": "https://test.supabase.co",
        "SUPABASE_KEY": "test_supabase_key",
    }

    original_values = {}
    for key, value in test_env_vars.items():
        if key not in os.environ:
            original_values[key] = None
            os.environ[key] = value
        else:
            original_values[key] = os.environ[key]

    yield

    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable subset of the postgrest query builder backed by a dict of lists."""

    def __init__(self, tables, name):
        self.rows = tables.setdefault(name, [])
        self.operation = "select"
        self.payload = None
        self.predicates = []
        self.order_by = None
        self.descending = False
        self.max_rows = None

    def select(self, *columns):
        self.operation = "select"
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.predicates.append(lambda row: row.get(column) == value)
        return self

    def is_(self, column, value):
        self.predicates.append(lambda row: row.get(column) is None)
        return self

    def in_(self, column, values):
        self.predicates.append(lambda row: row.get(column) in values)
        return self

    def contains(self, column, values):
        self.predicates.append(lambda row: all(v in (row.get(column) or []) for v in values))
        return self

    def order(self, column, desc=False):
        self.order_by = column
        self.descending = desc
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _matches(self, row):
        return all(predicate(row) for predicate in self.predicates)

    def execute(self):
        if self.operation == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            for payload in payloads:
                self.rows.append(copy.deepcopy(payload))
            return FakeResponse(copy.deepcopy(payloads))

        matched = [row for row in self.rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))

        if self.operation == "delete":
            for row in matched:
                self.rows.remove(row)
            return FakeResponse(copy.deepcopy(matched))

        if self.order_by:
            matched.sort(key=lambda row: str(row.get(self.order_by) or ""), reverse=self.descending)
        if self.max_rows is not None:
            matched = matched[: self.max_rows]
        return FakeResponse(copy.deepcopy(matched))


class FakeSupabase:
    """In-memory Supabase client: ``table()`` queries plus a mockable ``auth``."""

    def __init__(self):
        self.tables = {}
        self.auth = Mock()

    def table(self, name):
        return FakeQuery(self.tables, name)

    def seed(self, name, *rows):
        self.tables.setdefault(name, []).extend(copy.deepcopy(list(rows)))

    def rows(self, name):
        return self.tables.get(name, [])


@pytest.fixture
def fake_db():
    """Provide an empty in-memory store."""
    return FakeSupabase()


@pytest.fixture
def sample_members():
    """Provide a small congregation."""
    return [
        {
            "id": "m1",
            "first_name": "Ruth",
            "last_name": "Adams",
            "display_name": "Ruth Adams",
            "email": "ruth@example.org",
            "church_id": "default_church",
            "address": {"postal_code": "30301"},
            "interests": ["music", "youth"],
            "ministry_ids": [],
        },
        {
            "id": "m2",
            "first_name": "Boaz",
            "last_name": "Miller",
            "display_name": "Boaz Miller",
            "email": "boaz@example.org",
            "church_id": "default_church",
            "address": {"postal_code": "30305-1234"},
            "interests": ["prayer"],
            "ministry_ids": [],
        },
        {
            "id": "m3",
            "first_name": "Naomi",
            "last_name": "Young",
            "display_name": "Naomi Young",
            "church_id": "default_church",
            "address": {"postal_code": "90210"},
            "interests": [],
            "ministry_ids": [],
        },
    ]


@pytest.fixture
def seeded_db(fake_db, sample_members):
    """Provide a store holding the sample members and a church with Stripe connected."""
    fake_db.seed("members", *sample_members)
    fake_db.seed("churches", {"id": "default_church", "name": "Grace Church", "stripe_account_id": "acct_123"})
    return fake_db


@pytest.fixture
def mock_http_response():
    """Provide a mock HTTP response for tests."""
    mock_response = Mock()
    mock_response.status_code = 200
    mock_response.ok = True
    mock_response.headers = {"Content-Type": "application/json"}
    mock_response.json.return_value = {}
    return mock_response
