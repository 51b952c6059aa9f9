"""
Pytest configuration: environment, an in-memory Supabase double and seed data.

FakeSupabase implements the slice of the supabase-py query builder this
service uses (select/insert/update/delete with eq/lt/order/limit, rpc and
storage buckets). Every execute() runs under one lock, which is what a single
SQL statement gives us in Postgres: conditional updates are atomic, separate
statements are not.
"""

import copy
import os
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timezone

import pytest

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("BACKGROUND_JOBS_ENABLED", "false")

from cachetools import TTLCache

from app.config import Settings
from app.features.handbooks.schemas import HANDBOOK_FIELDS
from app.features.campus.schemas import CAMPUS_CONTENT_FIELDS


PRIMARY_KEYS = {
    "users": "user_id",
    "user_academic_details": "academic_id",
    "colleges": "college_id",
    "user_handbooks": "handbook_id",
    "campus_ai_content": "campus_content_id",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, client: "FakeSupabase", table: str):
        self.client = client
        self.table = table
        self.action = "select"
        self.payload = None
        self.filters = []
        self._order = None
        self._limit = None

    # ── builder ──
    def select(self, *columns, count=None):
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.action, self.payload = "update", payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def lt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) < value)
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    # ── execution ──
    def execute(self) -> FakeResponse:
        with self.client.lock:
            self.client.query_log.append((self.table, self.action))
            self.client.raise_injected(f"{self.table}:{self.action}")
            rows = self.client.tables[self.table]

            if self.action == "insert":
                payloads = self.payload if isinstance(self.payload, list) else [self.payload]
                created = []
                for payload in payloads:
                    row = self.client.with_defaults(self.table, dict(payload))
                    rows.append(row)
                    self.client.record_status(self.table, row)
                    created.append(copy.deepcopy(row))
                return FakeResponse(created)

            matched = [row for row in rows if all(f(row) for f in self.filters)]

            if self.action == "update":
                for row in matched:
                    row.update(copy.deepcopy(self.payload))
                    row["updated_at"] = _now()
                    if "processing_status" in self.payload:
                        self.client.record_status(self.table, row)
                return FakeResponse([copy.deepcopy(r) for r in matched])

            if self.action == "delete":
                for row in matched:
                    rows.remove(row)
                return FakeResponse([copy.deepcopy(r) for r in matched])

            if self._order:
                column, desc = self._order
                present = [r for r in matched if r.get(column) is not None]
                missing = [r for r in matched if r.get(column) is None]
                matched = sorted(present, key=lambda r: r[column], reverse=desc) + missing
            if self._limit is not None:
                matched = matched[: self._limit]
            return FakeResponse([copy.deepcopy(r) for r in matched], count=len(matched))


class FakeRpc:
    def __init__(self, client: "FakeSupabase", name: str, params: dict):
        self.client = client
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        with self.client.lock:
            self.client.query_log.append((self.name, "rpc"))
            self.client.raise_injected(f"rpc:{self.name}")
            handler = getattr(self.client, f"_rpc_{self.name}")
            return FakeResponse(handler(self.params))


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        with self.storage.lock:
            if self.storage.fail_uploads:
                raise RuntimeError("storage unavailable")
            key = (self.name, path)
            if key in self.storage.objects:
                raise RuntimeError("The resource already exists")
            self.storage.objects[key] = bytes(file)
            self.storage.content_types[key] = (file_options or {}).get("content-type")
            return {"Key": f"{self.name}/{path}"}

    def download(self, path):
        with self.storage.lock:
            if self.storage.fail_downloads:
                raise RuntimeError("503 storage unavailable")
            key = (self.name, path)
            if key not in self.storage.objects:
                raise RuntimeError("Object not found")
            return self.storage.objects[key]

    def remove(self, paths):
        with self.storage.lock:
            removed = []
            for path in paths:
                if self.storage.objects.pop((self.name, path), None) is not None:
                    removed.append({"name": path})
            return removed


class FakeStorage:
    def __init__(self):
        self.lock = threading.Lock()
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str | None] = {}
        self.fail_uploads = False
        self.fail_downloads = False

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)

    def paths(self, bucket: str = "handbooks") -> list[str]:
        return [path for (name, path) in self.objects if name == bucket]


class FakeSupabase:
    """In-memory stand-in for supabase.Client used by the tests."""

    def __init__(self):
        self.lock = threading.RLock()
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.storage = FakeStorage()
        self.query_log: list[tuple[str, str]] = []
        self.status_history: dict[str, list[str]] = defaultdict(list)
        self._injected: dict[str, list[Exception]] = defaultdict(list)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict) -> FakeRpc:
        return FakeRpc(self, name, params)

    # ── test hooks ──
    def fail_next(self, target: str, error: Exception, times: int = 1) -> None:
        """Raise ``error`` on the next ``times`` calls to ``target`` ("table:action" or "rpc:name")."""
        self._injected[target].extend([error] * times)

    def raise_injected(self, target: str) -> None:
        if self._injected[target]:
            raise self._injected[target].pop(0)

    def calls(self, table: str, action: str = "select") -> int:
        return sum(1 for entry in self.query_log if entry == (table, action))

    def rows(self, table: str) -> list[dict]:
        with self.lock:
            return copy.deepcopy(self.tables[table])

    def row(self, table: str, pk: str) -> dict | None:
        key = PRIMARY_KEYS[table]
        with self.lock:
            for row in self.tables[table]:
                if row.get(key) == pk:
                    return row
        return None

    def record_status(self, table: str, row: dict) -> None:
        if table == "user_handbooks":
            self.status_history[row["handbook_id"]].append(row["processing_status"])

    def with_defaults(self, table: str, row: dict) -> dict:
        key = PRIMARY_KEYS.get(table)
        if key and not row.get(key):
            row[key] = str(uuid.uuid4())
        row.setdefault("created_at", _now())
        row.setdefault("updated_at", _now())
        if table == "user_handbooks":
            row.setdefault("processing_status", "uploaded")
            row.setdefault("upload_date", _now())
            for column in ("processing_started_at", "processed_date", "error_message", *HANDBOOK_FIELDS):
                row.setdefault(column, None)
        if table == "campus_ai_content":
            row.setdefault("content_version", 1)
            row.setdefault("is_active", True)
            row.setdefault("generated_at", _now())
            for column in CAMPUS_CONTENT_FIELDS:
                row.setdefault(column, None)
        return row

    # ── rpc: same steps as the publish_campus_content SQL function ──
    def _rpc_publish_campus_content(self, params: dict) -> dict:
        college_id = params["p_college_id"]
        rows = self.tables["campus_ai_content"]
        same_college = [r for r in rows if r["college_id"] == college_id]
        next_version = max((r["content_version"] for r in same_college), default=0) + 1
        for r in same_college:
            if r["is_active"]:
                r["is_active"] = False
                r["updated_at"] = _now()
        row = {"college_id": college_id, "content_version": next_version, "is_active": True}
        for column in CAMPUS_CONTENT_FIELDS:
            row[column] = params.get(f"p_{column}")
        row = self.with_defaults("campus_ai_content", row)
        rows.append(row)
        return copy.deepcopy(row)


# ==================== Fixtures ====================

@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        SUPABASE_URL="http://localhost:54321",
        SUPABASE_SERVICE_KEY="test-service-key",
        JWT_SECRET_KEY="test-jwt-secret",
        HANDBOOK_MAX_BYTES=100 * 1024 * 1024,
        HANDBOOK_LEASE_TTL_SECONDS=900,
        HANDBOOK_CLAIM_BATCH_SIZE=3,
        CAMPUS_PUBLISH_MAX_ATTEMPTS=4,
        BACKGROUND_JOBS_ENABLED=False,
    )


@pytest.fixture
def campus_cache() -> TTLCache:
    return TTLCache(maxsize=32, ttl=300)


@pytest.fixture
def academic_data(fake_db: FakeSupabase) -> dict:
    """Two students at the same college, each with their own enrollment."""
    college_id = str(uuid.uuid4())
    alice_id, bob_id = str(uuid.uuid4()), str(uuid.uuid4())
    alice_academic, bob_academic = str(uuid.uuid4()), str(uuid.uuid4())

    fake_db.table("colleges").insert({
        "college_id": college_id,
        "name": "Government Engineering College",
        "city": "Pune",
        "state": "Maharashtra",
        "university_name": "Savitribai Phule Pune University",
    }).execute()
    for user_id, academic_id, name in ((alice_id, alice_academic, "Alice"), (bob_id, bob_academic, "Bob")):
        fake_db.table("users").insert({
            "user_id": user_id,
            "name": name,
            "email": f"{name.lower()}@example.edu",
            "academic_id": academic_id,
        }).execute()
        fake_db.table("user_academic_details").insert({
            "academic_id": academic_id,
            "user_id": user_id,
            "college_id": college_id,
            "department_name": "Computer Engineering",
            "branch_name": "CSE",
            "admission_year": 2023,
            "graduation_year": 2027,
            "roll_number": f"{name.upper()}-001",
        }).execute()
    fake_db.query_log.clear()

    return {
        "college_id": college_id,
        "alice": alice_id,
        "alice_academic": alice_academic,
        "bob": bob_id,
        "bob_academic": bob_academic,
    }


def make_pdf(size: int = 2048) -> bytes:
    """PDF-looking bytes of exactly ``size`` bytes."""
    header = b"%PDF-1.7\n"
    return header + b"0" * max(0, size - len(header))


@pytest.fixture
def pdf_factory():
    return make_pdf


@pytest.fixture
def pdf_bytes() -> bytes:
    return make_pdf()
