"""
Shared fixtures: in-memory doubles for the data store and identity provider.

``InMemoryStore`` follows the ``DataStore`` contract closely enough for the
services to behave as they do against Supabase: equality filters (``None``
meaning IS NULL), multi-column ordering, FK-hinted embeds, unique
constraints raising ``ConflictError``, stop-and-report cascades, and
replace() rolling back when its insert fails.
"""
import copy
import uuid
from datetime import datetime, timezone

import pytest

from app.schemas.auth import AuthContext, Role
from app.services.errors import AccountExists, ConflictError, StoreError
from app.services.identity import InviteOutcome, Session
from app.services.store import execute_cascade, to_json, to_json_row

UNIQUE_KEYS = {
    "profiles": [("id",), ("email",)],
    "subjects": [("id",), ("name",)],
    "tutor_subjects": [("tutor_id", "subject_id")],
    "timesheets": [("id",)],
}
GENERATED_IDS = {"subjects", "timesheets"}

FIXED_NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def _unique_value(row, key):
    values = []
    for column in key:
        value = row.get(column)
        if value is None:
            return None
        # subjects.name and profiles.email are unique on lower(...)
        values.append(value.lower() if column in ("name", "email") else value)
    return tuple(values)


class InMemoryStore:
    def __init__(self):
        self.tables = {name: [] for name in UNIQUE_KEYS}
        self.calls = []
        self.fail_on = set()

    def _check(self, action, table):
        self.calls.append((action, table))
        if (action, table) in self.fail_on:
            raise StoreError(f"Simulated failure on {action} {table}")

    def _matches(self, row, filters):
        for column, value in (filters or {}).items():
            if row.get(column) != to_json(value):
                return False
        return True

    def _check_unique(self, table, candidate, ignore=None):
        for key in UNIQUE_KEYS[table]:
            value = _unique_value(candidate, key)
            if value is None:
                continue
            for row in self.tables[table]:
                if row is ignore:
                    continue
                if _unique_value(row, key) == value:
                    raise ConflictError(f"Duplicate value in {table}", constraint=",".join(key))

    def _embed(self, row, embed):
        for e in embed or ():
            target = next((r for r in self.tables[e.table] if r.get("id") == row.get(e.fk_column)), None)
            if target is None:
                row[e.alias] = None
            elif e.columns == "*":
                row[e.alias] = copy.deepcopy(target)
            else:
                row[e.alias] = {c.strip(): target.get(c.strip()) for c in e.columns.split(",")}
        return row

    def select(self, table, filters=None, columns="*", order=None, embed=None):
        self._check("select", table)
        rows = [copy.deepcopy(r) for r in self.tables[table] if self._matches(r, filters)]
        for o in reversed(list(order or ())):
            rows.sort(key=lambda r: (r.get(o.column) is None, r.get(o.column) or ""), reverse=o.desc)
        if columns != "*":
            wanted = [c.strip() for c in columns.split(",")]
            rows = [{c: r.get(c) for c in wanted} for r in rows]
        return [self._embed(r, embed) for r in rows]

    def insert(self, table, rows):
        self._check("insert", table)
        created = []
        for row in rows:
            row = to_json_row(row)
            if table in GENERATED_IDS:
                row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", FIXED_NOW.isoformat())
            self._check_unique(table, row)
            self.tables[table].append(row)
            created.append(copy.deepcopy(row))
        return created

    def update(self, table, filters, patch):
        self._check("update", table)
        patch = to_json_row(patch)
        updated = []
        for row in self.tables[table]:
            if self._matches(row, filters):
                self._check_unique(table, {**row, **patch}, ignore=row)
                row.update(patch)
                updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table, filters):
        self._check("delete", table)
        keep = [r for r in self.tables[table] if not self._matches(r, filters)]
        removed = len(self.tables[table]) - len(keep)
        self.tables[table] = keep
        return removed

    def replace(self, table, filters, rows):
        self._check("replace", table)
        snapshot = copy.deepcopy(self.tables[table])
        try:
            self.delete(table, filters)
            return self.insert(table, rows)
        except StoreError:
            self.tables[table] = snapshot
            raise

    def run_cascade(self, plan):
        execute_cascade(self, plan)

    def writes(self):
        return [c for c in self.calls if c[0] != "select"]


class FakeIdentity:
    def __init__(self, session=None):
        self.session = session
        self.accounts = {}
        self.invites = []
        self.created = []
        self.resets = []
        self.signed_out = False
        self.fail_reset = False
        self.fail_delete = False
        self.deleted = []

    def get_current_session(self):
        return self.session

    def sign_out(self):
        self.signed_out = True

    def _register(self, email):
        if email in self.accounts:
            raise AccountExists(f"{email} already registered")
        self.accounts[email] = str(uuid.uuid4())
        return InviteOutcome(user_id=self.accounts[email], email=email)

    def invite_by_email(self, email, metadata, redirect_to=None):
        outcome = self._register(email)
        self.invites.append((email, metadata, redirect_to))
        return outcome

    def create_account(self, email, password, metadata):
        outcome = self._register(email)
        self.created.append((email, password, metadata))
        return outcome

    def send_password_reset(self, email, redirect_to=None):
        if self.fail_reset:
            raise StoreError("Simulated reset failure")
        self.resets.append(email)

    def delete_account(self, user_id):
        if self.fail_delete:
            raise StoreError("Simulated delete failure")
        self.deleted.append(user_id)
        self.accounts = {e: uid for e, uid in self.accounts.items() if uid != user_id}


def add_profile(store, user_id, role=Role.tutor, first_name=None, last_name=None, email=None):
    return store.insert("profiles", [{
        "id": user_id,
        "role": role,
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
    }])[0]


def add_subject(store, name):
    return store.insert("subjects", [{"name": name}])[0]


def assign(store, tutor_id, subject_id, rate):
    return store.insert("tutor_subjects", [{
        "tutor_id": tutor_id,
        "subject_id": subject_id,
        "rate_per_hour": rate,
        "assigned_at": FIXED_NOW,
    }])[0]


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def identity():
    return FakeIdentity(session=Session(user_id="admin-1", email="admin@example.com"))


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def admin(store):
    add_profile(store, "admin-1", Role.admin, "Ada", "Admin", "admin@example.com")
    return AuthContext(user_id="admin-1", email="admin@example.com", role=Role.admin)


@pytest.fixture
def alice(store):
    add_profile(store, "tutor-alice", Role.tutor, "Alice", "Smith", "alice@example.com")
    return AuthContext(user_id="tutor-alice", email="alice@example.com", role=Role.tutor)


@pytest.fixture
def bob(store):
    add_profile(store, "tutor-bob", Role.tutor, "Bob", "Jones", "bob@example.com")
    return AuthContext(user_id="tutor-bob", email="bob@example.com", role=Role.tutor)


@pytest.fixture
def math(store):
    return add_subject(store, "Math")


@pytest.fixture
def physics(store):
    return add_subject(store, "Physics")
