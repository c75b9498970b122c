"""
Shared fixtures.

The Supabase client is swapped for an in-memory fake that understands the
subset of the PostgREST query builder the services use.
"""
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.database.supabase_client import get_supabase, get_service_supabase


class FakeAPIError(Exception):
    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


TABLE_DEFAULTS = {
    "channels": {"description": None, "is_archived": False, "updated_at": None},
    "channel_members": {"role": "member", "last_read_at": None, "notifications_enabled": True},
    "messages": {"is_edited": False, "is_deleted": False, "updated_at": None},
    "team_members": {"active": True, "roles": [], "member_id": None},
    "members": {"status": "active"},
    "email_templates": {"enabled": True, "updated_at": None},
}

# Column holding the row's creation time
CREATED_COLUMNS = {"channel_members": "joined_at"}

UNIQUE_CONSTRAINTS = {
    "channels": [("chapter_id", "name")],
    "channel_members": [("channel_id", "team_member_id")],
    "push_subscriptions": [("team_member_id", "endpoint")],
    "email_templates": [("template_key",)],
}


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.count = None
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self.order_by = None
        self.row_limit = None

    def select(self, columns="*", count=None):
        self.op = "select"
        self.columns = columns
        self.count = count
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.op = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def lt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] < value)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, size):
        self.row_limit = size
        return self

    def _matching(self):
        return [row for row in self.db.rows(self.table) if all(f(row) for f in self.filters)]

    def _project(self, row):
        if self.columns.strip() == "*":
            return dict(row)
        keys = [c.strip() for c in self.columns.split(",")]
        return {key: row.get(key) for key in keys}

    def execute(self):
        if self.op == "select":
            rows = self._matching()
            if self.order_by:
                column, desc = self.order_by
                rows = sorted(rows, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
            total = len(rows)
            if self.row_limit is not None:
                rows = rows[:self.row_limit]
            return SimpleNamespace(data=[self._project(r) for r in rows], count=total if self.count else None)
        if self.op == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            return SimpleNamespace(data=[dict(self.db.insert(self.table, p)) for p in payloads], count=None)
        if self.op == "upsert":
            conflict_columns = [c.strip() for c in (self.on_conflict or "id").split(",")]
            existing = [
                row for row in self.db.rows(self.table)
                if all(row.get(c) == self.payload.get(c) for c in conflict_columns)
            ]
            if existing:
                existing[0].update(self.payload)
                return SimpleNamespace(data=[dict(existing[0])], count=None)
            return SimpleNamespace(data=[dict(self.db.insert(self.table, self.payload))], count=None)
        if self.op == "update":
            updated = []
            for row in self._matching():
                candidate = {**row, **self.payload}
                self.db.check_unique(self.table, candidate, exclude_id=row["id"])
                row.update(self.payload)
                updated.append(dict(row))
            return SimpleNamespace(data=updated, count=None)
        if self.op == "delete":
            removed = self._matching()
            self.db.tables[self.table] = [r for r in self.db.rows(self.table) if r not in removed]
            return SimpleNamespace(data=[dict(r) for r in removed], count=None)
        raise ValueError(f"Unsupported operation {self.op}")


class FakeRpc:
    def __init__(self, handler, params):
        self.handler = handler
        self.params = params

    def execute(self):
        return SimpleNamespace(data=self.handler(self.params), count=None)


class FakeAuth:
    def __init__(self):
        self.tokens = {}
        self.passwords = {}

    def get_user(self, jwt=None):
        user = self.tokens.get(jwt)
        if not user:
            raise Exception("invalid JWT: unable to parse or verify signature")
        return SimpleNamespace(user=SimpleNamespace(
            id=user["id"], email=user["email"], user_metadata={}, app_metadata={}
        ))

    def sign_in_with_password(self, credentials):
        token = self.passwords.get((credentials["email"], credentials["password"]))
        if not token:
            raise Exception("Invalid login credentials")
        user = self.tokens[token]
        return SimpleNamespace(
            user=SimpleNamespace(id=user["id"], email=user["email"]),
            session=SimpleNamespace(access_token=token),
        )

    def sign_out(self):
        return None


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.auth = FakeAuth()
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.rpc_handlers = {
            "get_chapter_descendants": self._chapter_descendants,
            "create_channel_with_admin": self._create_channel_with_admin,
        }

    def now(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self.rpc_handlers[name], params)

    def check_unique(self, table, row, exclude_id=None):
        for columns in UNIQUE_CONSTRAINTS.get(table, []):
            for other in self.rows(table):
                if other.get("id") == exclude_id:
                    continue
                if all(other.get(c) == row.get(c) for c in columns):
                    raise FakeAPIError(f"duplicate key value violates unique constraint on {table}", code="23505")

    def insert(self, table, payload):
        row = {**TABLE_DEFAULTS.get(table, {}), **payload}
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault(CREATED_COLUMNS.get(table, "created_at"), self.now())
        self.check_unique(table, row)
        self.rows(table).append(row)
        return row

    def _chapter_descendants(self, params):
        root = params["chapter_uuid"]
        found = [root]
        frontier = [root]
        while frontier:
            children = [c["id"] for c in self.rows("chapters") if c.get("parent_id") in frontier]
            found.extend(children)
            frontier = children
        return [{"id": chapter_id} for chapter_id in found]

    def _create_channel_with_admin(self, params):
        channel = {
            "name": params["p_name"],
            "description": params["p_description"],
            "chapter_id": params["p_chapter_id"],
            "created_by": params["p_created_by"],
        }
        row = self.insert("channels", channel)
        self.insert("channel_members", {
            "channel_id": row["id"],
            "team_member_id": params["p_created_by"],
            "role": "admin",
        })
        return [dict(row)]

    # Seeding helpers

    def add_chapter(self, chapter_id, name, level, parent_id=None):
        return self.insert("chapters", {"id": chapter_id, "name": name, "level": level, "parent_id": parent_id})

    def add_team_member(self, roles=None, chapter_id=None, first_name="Test", last_name="User", email=None):
        """Create auth user, member and team member; returns the team member plus auth headers"""
        user_id = str(uuid.uuid4())
        email = email or f"{user_id[:8]}@votelabor.org"
        member = self.insert("members", {
            "first_name": first_name, "last_name": last_name, "email": email, "chapter_id": chapter_id
        })
        team_member = self.insert("team_members", {
            "user_id": user_id, "member_id": member["id"], "chapter_id": chapter_id, "roles": roles or []
        })
        token = f"token-{user_id}"
        self.auth.tokens[token] = {"id": user_id, "email": email}
        return {**team_member, "email": email, "token": token, "headers": {"Authorization": f"Bearer {token}"}}

    def add_channel(self, chapter_id, name, created_by, is_archived=False):
        channel = self.insert("channels", {
            "name": name, "chapter_id": chapter_id, "created_by": created_by, "is_archived": is_archived
        })
        self.add_membership(channel["id"], created_by, role="admin")
        return channel

    def add_membership(self, channel_id, team_member_id, role="member", notifications_enabled=True):
        return self.insert("channel_members", {
            "channel_id": channel_id,
            "team_member_id": team_member_id,
            "role": role,
            "notifications_enabled": notifications_enabled,
        })


@pytest.fixture
def fake_db():
    db = FakeSupabase()
    # national > california > los angeles > pasadena, and a sibling state
    db.add_chapter("ch-national", "National", "national")
    db.add_chapter("ch-ca", "California", "state", "ch-national")
    db.add_chapter("ch-la", "Los Angeles County", "county", "ch-ca")
    db.add_chapter("ch-pasadena", "Pasadena", "city", "ch-la")
    db.add_chapter("ch-ny", "New York", "state", "ch-national")
    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_service_supabase] = lambda: db
    yield db
    app.dependency_overrides.clear()


@pytest.fixture
def client(fake_db):
    return TestClient(app)


@pytest.fixture
def super_admin(fake_db):
    return fake_db.add_team_member(roles=["super_admin"], chapter_id="ch-national", first_name="Sam", last_name="Super")


@pytest.fixture
def state_admin(fake_db):
    return fake_db.add_team_member(roles=["state_admin"], chapter_id="ch-ca", first_name="Stella", last_name="State")


@pytest.fixture
def organizer(fake_db):
    """Non-admin team member in Los Angeles"""
    return fake_db.add_team_member(roles=["event_coordinator"], chapter_id="ch-la", first_name="Olive", last_name="Organizer")
