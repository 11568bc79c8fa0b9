"""
ProjectHub Test Suite — Shared fixtures and configuration.

The data context runs against ``FakeBackend``: an in-memory table store
that evaluates the structured filters of each Query, records every query it
sees and can be told to fail a given (table, operation).

Run:  pytest tests/ -v
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Tuple

import pytest

from projecthub.backend.auth import AuthUser
from projecthub.backend.client import BackendResponse, Filter, Query, resolve_cardinality
from projecthub.backend.realtime import ChangeFeed
from projecthub.data.context import DataContext
from projecthub.engine.cache import FileListStore
from projecthub.engine.context import UserContext
from projecthub.engine.errors import AccountError, BackendError


# ---------------------------------------------------------------------------
# Global state isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset config and acting-user singletons between tests."""
    import projecthub.engine.config as cfg_mod
    from projecthub.engine.context import clear_current_user

    cfg_mod._config = None
    clear_current_user()
    yield
    cfg_mod._config = None
    clear_current_user()


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------

def _matches(row: Dict[str, Any], f: Filter) -> bool:
    value = row.get(f.column)
    if f.op == "eq":
        return value == f.value or str(value) == str(f.value)
    if f.op == "neq":
        return not (value == f.value or str(value) == str(f.value))
    if f.op == "in":
        return str(value) in {str(v) for v in f.value}
    if f.op == "cs":
        return set(f.value).issubset(set(value or []))
    if f.op == "is":
        return value is f.value if f.value is None else bool(value) == f.value
    if f.op == "or":
        return any(_matches(row, sub) for sub in f.value)
    raise ValueError(f"unsupported filter op {f.op}")


def _project(row: Dict[str, Any], columns: Optional[str]) -> Dict[str, Any]:
    if not columns or "*" in columns:
        return dict(row)
    wanted = [c.strip() for c in columns.split(",") if c.strip()]
    return {c: row.get(c) for c in wanted}


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self._storage = storage
        self.name = name

    async def upload(self, path, content, content_type="application/octet-stream", upsert=False):
        self._storage.check("upload")
        self._storage.objects[(self.name, path)] = content
        return path

    async def remove(self, paths):
        self._storage.check("remove")
        for path in paths:
            self._storage.objects.pop((self.name, path), None)
            self._storage.removed.append((self.name, path))

    def get_public_url(self, path):
        return f"https://fake.backend/storage/v1/object/public/{self.name}/{path}"

    async def create_signed_url(self, path, expires_in):
        self._storage.check("sign")
        return f"https://fake.backend/storage/v1/object/sign/{self.name}/{path}?ttl={expires_in}"


class FakeStorage:
    def __init__(self):
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.removed: List[Tuple[str, str]] = []
        self.failures: Dict[str, Exception] = {}

    def check(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    def bucket(self, name: str) -> FakeBucket:
        return FakeBucket(self, name)


class FakeAuth:
    def __init__(self):
        self.sign_ups: List[Dict[str, Any]] = []
        self.error: Optional[str] = None

    async def sign_up(self, email, password, metadata=None):
        if self.error is not None:
            raise AccountError(self.error, remote_message=self.error)
        user_id = str(uuid.uuid4())
        self.sign_ups.append({"id": user_id, "email": email, "metadata": metadata or {}})
        return AuthUser(id=user_id, email=email, user_metadata=metadata or {})


class FakeBackend:
    """
    In-memory stand-in for BackendClient.

    ``tables`` maps table name → list of row dicts. ``fail(table, op)``
    makes the next matching queries raise BackendError until ``heal()``.
    """

    url = "https://fake.backend"

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            name: [dict(r) for r in rows] for name, rows in (tables or {}).items()
        }
        self.queries: List[Query] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.storage = FakeStorage()
        self.auth = FakeAuth()
        self.closed = False

    # ── Control ──

    def fail(self, table: str, operation: str, message: str = "boom", error: Optional[Exception] = None) -> None:
        self.failures[(table, operation)] = error or BackendError(message, table=table, operation=operation)

    def heal(self) -> None:
        self.failures.clear()

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def queries_for(self, table: str, operation: Optional[str] = None) -> List[Query]:
        return [
            q for q in self.queries
            if q.table == table and (operation is None or q.operation == operation)
        ]

    # ── BackendClient surface ──

    def table(self, name: str) -> Query:
        return Query(self, name)

    async def execute(self, query: Query) -> BackendResponse:
        self.queries.append(query)
        failure = self.failures.get((query.table, query.operation))
        if failure is not None:
            raise failure

        rows = self.rows(query.table)
        matched = [r for r in rows if all(_matches(r, f) for f in query.filters)]

        if query.method == "GET":
            for column, desc in reversed(query.ordering):
                matched.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
            if query.row_limit is not None:
                matched = matched[: query.row_limit]
            data = [_project(r, query.columns) for r in matched]

        elif query.method == "POST":
            body = query.body if isinstance(query.body, list) else [query.body]
            data = []
            for incoming in body:
                row = dict(incoming)
                row.setdefault("id", str(uuid.uuid4()))
                key = query.on_conflict or "id"
                existing = next((r for r in rows if query.upsert_mode and r.get(key) == row.get(key)), None)
                if existing is not None:
                    existing.update(row)
                    data.append(dict(existing))
                else:
                    rows.append(row)
                    data.append(dict(row))

        elif query.method == "PATCH":
            for r in matched:
                r.update(query.body)
            data = [dict(r) for r in matched]

        else:
            self.tables[query.table] = [r for r in rows if not any(r is m for m in matched)]
            data = [dict(r) for r in matched]

        if query.method != "GET" and not query.returning:
            data = []
        return BackendResponse(data=resolve_cardinality(query, data), count=len(matched))

    async def close(self) -> None:
        self.closed = True


class DictCache:
    """RedisCache double backed by a dict."""

    def __init__(self, available: bool = True):
        self.store: Dict[str, Any] = {}
        self._available = available

    def get_json(self, key):
        return self.store.get(key) if self._available else None

    def set_json(self, key, value, ttl=None):
        if not self._available:
            return False
        self.store[key] = value
        return True

    def delete(self, key):
        return self.store.pop(key, None) is not None

    @property
    def is_available(self):
        return self._available


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

MANAGER_ID = "u-manager"
EMPLOYEE_ID = "u-employee"
CLIENT_ID = "u-client"
OTHER_CLIENT_ID = "u-client-2"


def seed_tables() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "profiles": [
            {"id": MANAGER_ID, "full_name": "Arjun Singh", "role": "manager", "email": "arjun@example.com"},
            {"id": EMPLOYEE_ID, "full_name": "Rakesh Gupta", "role": "employee", "email": "rakesh@example.com"},
            {"id": CLIENT_ID, "full_name": "Priya Sharma", "role": "client", "email": "priya@example.com"},
            {"id": OTHER_CLIENT_ID, "full_name": "Rajesh Kumar", "role": "client", "email": "rajesh@example.com"},
        ],
        "projects": [
            {
                "id": "p1",
                "title": "Website for Xee Design",
                "client_id": CLIENT_ID,
                "assigned_employees": [EMPLOYEE_ID],
                "progress_percentage": 65,
                "status": "active",
                "priority": "high",
            },
            {
                "id": "p2",
                "title": "E-commerce Mobile App",
                "client_id": OTHER_CLIENT_ID,
                "assigned_employees": [],
                "progress_percentage": 30,
                "status": "active",
                "priority": "medium",
            },
        ],
        "files": [
            {
                "id": "f1",
                "project_id": "p1",
                "filename": "requirements.pdf",
                "uploaded_by": MANAGER_ID,
                "uploader_name": "Arjun Singh",
                "size": 2048,
                "file_type": "pdf",
                "storage_path": "p1/100-abc.pdf",
            },
            {
                "id": "f2",
                "project_id": "p2",
                "filename": "wireframes.png",
                "uploaded_by": OTHER_CLIENT_ID,
                "uploader_name": "Rajesh Kumar",
                "size": 4096,
                "file_type": "png",
            },
        ],
        "brochure_projects": [
            {"id": "b1", "project_id": "p1", "client_id": CLIENT_ID, "status": "ready_for_design"},
            {"id": "b2", "project_id": "p2", "client_id": OTHER_CLIENT_ID, "status": "draft"},
        ],
        "brochure_pages": [
            {"id": "pg1", "project_id": "b1", "page_number": 1, "content": {"body_content": "<p>Hi</p>"}, "is_locked": False},
            {"id": "pg2", "project_id": "b1", "page_number": 2, "content": {}, "is_locked": False},
            {"id": "pg3", "project_id": "b1", "page_number": 3, "content": {}, "is_locked": False},
            {"id": "pg4", "project_id": "b2", "page_number": 1, "content": {}, "is_locked": False},
        ],
        "tasks": [
            {"id": "t1", "project_id": "p1", "title": "Draft sitemap", "status": "open", "priority": "medium"},
        ],
        "global_comments": [],
        "page_comments": [],
        "leads": [],
        "stages": [],
        "comment_tasks": [],
        "meetings": [],
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def backend():
    return FakeBackend(seed_tables())


@pytest.fixture
def file_store():
    return FileListStore(DictCache())


@pytest.fixture
def ctx(backend, file_store):
    """Data context over the seeded fake backend (no user yet)."""
    return DataContext(backend=backend, feed=ChangeFeed(), file_store=file_store, profile_delay=0)


@pytest.fixture
def local_ctx():
    """Data context without a backend: sample data, local-only mutations."""
    return DataContext()


@pytest.fixture
def manager():
    return UserContext(user_id=MANAGER_ID, name="Arjun Singh", role="manager", email="arjun@example.com")


@pytest.fixture
def employee():
    return UserContext(user_id=EMPLOYEE_ID, name="Rakesh Gupta", role="employee")


@pytest.fixture
def client_user():
    return UserContext(user_id=CLIENT_ID, name="Priya Sharma", role="client")


@pytest.fixture
def other_client():
    return UserContext(user_id=OTHER_CLIENT_ID, name="Rajesh Kumar", role="client")
