import json
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.core.deps import get_ai_client
from app.core.security import create_access_token
from app.db.database import get_supabase
from app.main import app


def _comparable(value):
    """Timestamps compare as datetimes, everything else as-is."""
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return value


_OPERATORS = {
    "eq": lambda a, b: a == b,
    "neq": lambda a, b: a != b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
}


def _split_top_level(expr):
    """Split a PostgREST logic tree on commas outside parentheses."""
    terms, depth, current = [], 0, ""
    for ch in expr:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            terms.append(current)
            current = ""
        else:
            current += ch
    terms.append(current)
    return terms


def _parse_logic(expr):
    return [_parse_term(term) for term in _split_top_level(expr)]


def _parse_term(term):
    if term.startswith("and(") and term.endswith(")"):
        parts = _parse_logic(term[4:-1])
        return lambda row: all(part(row) for part in parts)
    if term.startswith("or(") and term.endswith(")"):
        parts = _parse_logic(term[3:-1])
        return lambda row: any(part(row) for part in parts)
    column, op, value = term.split(".", 2)
    value = value.strip('"')
    compare = _OPERATORS[op]
    return lambda row: row.get(column) is not None and compare(_comparable(str(row[column])), _comparable(value))


class SupabaseMock:
    """
    In-memory stand-in for the Supabase client.

    Rows live in `tables` (name -> list of dicts). Embedded relations such as
    `user:users(...)` are stored pre-joined on the row. Table names listed in
    `failing` raise on execute. `max_rows` caps every select like PostgREST.
    """

    def __init__(self):
        self.tables = defaultdict(list)
        self.failing = set()
        self.executed = []
        self.max_rows = None

    def table(self, name):
        return MockQuery(self, name)

    def seed(self, name, rows):
        for row in rows:
            self.tables[name].append(dict(row))
        return self


class MockQuery:
    """Mock PostgREST query builder."""

    def __init__(self, db, name):
        self.db = db
        self.name = name
        self._filters = []
        self._orders = []
        self._limit = None
        self._range = None
        self._negate = False
        self._op = "select"
        self._payload = None
        self._on_conflict = None

    # ─── Verbs ────────────────────────────────────────────────────────────────

    def select(self, *columns, count=None):
        self._op = "select"
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = data
        return self

    def upsert(self, data, on_conflict=None):
        self._op = "upsert"
        self._payload = data
        self._on_conflict = on_conflict or "id"
        return self

    def update(self, data):
        self._op = "update"
        self._payload = data
        return self

    def delete(self):
        self._op = "delete"
        return self

    # ─── Filters ──────────────────────────────────────────────────────────────

    @property
    def not_(self):
        self._negate = True
        return self

    def _add(self, predicate):
        negate, self._negate = self._negate, False
        self._filters.append((lambda row: not predicate(row)) if negate else predicate)
        return self

    def eq(self, column, value):
        return self._add(lambda row: row.get(column) == value)

    def neq(self, column, value):
        return self._add(lambda row: row.get(column) != value)

    def in_(self, column, values):
        values = list(values)
        return self._add(lambda row: row.get(column) in values)

    def is_(self, column, value):
        if value == "null":
            return self._add(lambda row: row.get(column) is None)
        return self._add(lambda row: row.get(column) is value)

    def gte(self, column, value):
        return self._add(
            lambda row: row.get(column) is not None and _comparable(row[column]) >= _comparable(value)
        )

    def lt(self, column, value):
        return self._add(
            lambda row: row.get(column) is not None and _comparable(row[column]) < _comparable(value)
        )

    def or_(self, filters):
        predicates = _parse_logic(filters)
        return self._add(lambda row: any(predicate(row) for predicate in predicates))

    def order(self, column, desc=False):
        self._orders.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    # ─── Execution ────────────────────────────────────────────────────────────

    def _matches(self, row):
        return all(predicate(row) for predicate in self._filters)

    def execute(self):
        self.db.executed.append((self.name, self._op))
        if self.name in self.db.failing:
            raise RuntimeError(f"table {self.name} unavailable")

        rows = self.db.tables[self.name]
        if self._op in ("insert", "upsert"):
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            written = []
            for item in payload:
                item = json.loads(json.dumps(item))
                if self._op == "upsert" and self._on_conflict in item:
                    rows[:] = [r for r in rows if r.get(self._on_conflict) != item[self._on_conflict]]
                item.setdefault("id", str(uuid4()))
                rows.append(item)
                written.append(item)
            return MockResponse(data=written, count=len(written))

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self._payload)
                    updated.append(row)
            return MockResponse(data=updated, count=len(updated))

        if self._op == "delete":
            removed = [r for r in rows if self._matches(r)]
            rows[:] = [r for r in rows if not self._matches(r)]
            return MockResponse(data=removed, count=len(removed))

        result = [dict(r) for r in rows if self._matches(r)]
        for column, desc in reversed(self._orders):
            result.sort(key=lambda r: (r.get(column) is None, _comparable(r.get(column))), reverse=desc)
        if self._range:
            start, end = self._range
            result = result[start:end + 1]
        if self._limit is not None:
            result = result[:self._limit]
        if self.db.max_rows is not None:
            result = result[:self.db.max_rows]
        return MockResponse(data=result, count=len(result))


class MockResponse:
    """Mock Supabase response."""

    def __init__(self, data=None, count=None, error=None):
        self.data = data if data is not None else []
        self.count = count
        self.error = error


class FakeAIClient:
    """Returns canned completions and records prompts."""

    def __init__(self, response="[]", error=None):
        self.response = response
        self.error = error
        self.prompts = []

    async def complete(self, prompt, model=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def supabase_mock():
    """Fixture for mocked Supabase client."""
    return SupabaseMock()


@pytest.fixture
def fake_ai():
    return FakeAIClient()


@pytest.fixture
def test_user():
    return {"id": str(uuid4()), "username": "testuser", "name": "Test User"}


@pytest.fixture
def auth_headers(test_user):
    """Auth headers fixture for authenticated requests."""
    access_token = create_access_token(subject=test_user["id"], expires_delta=timedelta(minutes=5))
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def client(supabase_mock, fake_ai):
    """Test client fixture with mocked dependencies."""
    app.dependency_overrides[get_supabase] = lambda: supabase_mock
    app.dependency_overrides[get_ai_client] = lambda: fake_ai

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
