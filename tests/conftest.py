"""
Shared test fixtures.

FakeSupabase is an in-memory stand-in for the supabase Client used by the
services: the table() query builder, rpc() for the transactional functions in
supabase/migrations, and auth.get_user(). It enforces the schema's unique and
foreign-key constraints (raising postgrest APIError with the Postgres SQLSTATE)
and runs every mutation all-or-nothing.
"""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

from app.config.permissions_config import PERMISSION_MATRIX
from app.modules.auth.service import clear_auth_cache
from app.scripts.seed_permissions_roles import seed_permissions, seed_roles

TABLES = [
    "users", "roles", "permissions", "role_permissions", "user_roles",
    "plans", "plan_participants", "tasks", "task_records", "task_reminders",
]

UNIQUE = {
    "users": [("user_key",), ("phone",)],
    "roles": [("name",), ("code",)],
    "permissions": [("name",), ("code",), ("resource", "action")],
    "role_permissions": [("role_id", "permission_id")],
    "user_roles": [("user_id", "role_id")],
    "plan_participants": [("plan_id", "user_id")],
    "task_records": [("task_id", "user_id", "completion_date")],
}

FOREIGN_KEYS = {
    "role_permissions": {"role_id": "roles", "permission_id": "permissions"},
    "user_roles": {"user_id": "users", "role_id": "roles"},
    "plans": {"creator": "users"},
    "plan_participants": {"plan_id": "plans", "user_id": "users"},
    "tasks": {"plan_id": "plans"},
    "task_records": {"task_id": "tasks", "user_id": "users"},
    "task_reminders": {"task_id": "tasks"},
}

ON_DELETE_CASCADE = {
    "roles": [("role_permissions", "role_id")],
    "permissions": [("role_permissions", "permission_id")],
    "users": [("user_roles", "user_id"), ("plan_participants", "user_id"), ("task_records", "user_id")],
    "plans": [("plan_participants", "plan_id")],
}

DEFAULTS = {
    "users": {"phone": None, "nick_name": None, "avatar": None, "status": "active", "updated_at": None},
    "roles": {"description": None, "is_system": False, "updated_at": None},
    "permissions": {"description": None},
    "plans": {"description": None, "icon": None, "type": "habit", "is_public": False, "updated_at": None},
    "plan_participants": {"role": "member"},
    "tasks": {"parent_task_id": None, "description": None},
}

TIMESTAMP_COLUMN = {"plan_participants": "joined_at", "task_records": "recorded_at"}

ROLE_COLUMNS = ("id", "name", "code", "description", "is_system")
PERMISSION_COLUMNS = ("id", "name", "code", "resource", "action", "description", "created_at")

# participant_role enum declaration order
RANK = {"viewer": 1, "member": 2, "admin": 3, "owner": 4}

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def store_error(code: str, message: str) -> APIError:
    return APIError({"code": code, "message": message, "details": None, "hint": None})


def raised(message: str) -> APIError:
    """Error as raised by a plpgsql `raise exception`"""
    return store_error("P0001", message)


class FakeResponse:
    def __init__(self, data, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.columns = "*"
        self.count_mode = None
        self.payload = None
        self.filters: List[Callable[[dict], bool]] = []
        self.orders: List[tuple] = []
        self.limit_value: Optional[int] = None
        self.offset_value = 0

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column: str, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def limit(self, size: int):
        self.limit_value = size
        return self

    def offset(self, size: int):
        self.offset_value = size
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self.filters)

    def _project(self, row: dict) -> dict:
        if self.columns.strip() == "*":
            return dict(row)
        wanted = [c.strip() for c in self.columns.split(",") if c.strip()]
        return {c: row.get(c) for c in wanted}

    def execute(self) -> FakeResponse:
        if self.operation == "insert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResponse(self.db.insert_rows(self.table, rows))
        if self.operation == "update":
            return FakeResponse(self.db.update_rows(self.table, self._matches, self.payload))
        if self.operation == "delete":
            return FakeResponse(self.db.delete_rows(self.table, self._matches))

        rows = [row for row in self.db.tables[self.table] if self._matches(row)]
        for column, desc in reversed(self.orders):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        count = len(rows) if self.count_mode == "exact" else None
        rows = rows[self.offset_value:]
        if self.limit_value is not None:
            rows = rows[:self.limit_value]
        return FakeResponse([self._project(row) for row in rows], count)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: dict):
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        return FakeResponse(self.db.call_function(self.name, self.params))


class FakeAuth:
    def __init__(self):
        self.tokens: Dict[str, SimpleNamespace] = {}
        self.calls = 0

    def issue(self, user_key: str, phone: Optional[str] = None) -> str:
        token = f"token-{uuid.uuid4().hex}"
        self.tokens[token] = SimpleNamespace(id=user_key, phone=phone, app_metadata={})
        return token

    def get_user(self, jwt: str):
        self.calls += 1
        user = self.tokens.get(jwt)
        if user is None:
            raise ValueError("invalid JWT")
        return SimpleNamespace(user=user)


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[dict]] = {name: [] for name in TABLES}
        self.next_ids: Dict[str, int] = {name: 1 for name in TABLES}
        self.clock = 0
        self.enforce_single_owner = True
        self.rpc_calls: List[str] = []
        # function name -> exception raised after its writes, before it returns
        self.rpc_faults: Dict[str, Exception] = {}
        self.auth = FakeAuth()

    # ==================== client surface ====================

    def table(self, name: str) -> FakeQuery:
        if name not in self.tables:
            raise store_error("42P01", f'relation "{name}" does not exist')
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict) -> FakeRpc:
        return FakeRpc(self, name, params)

    # ==================== storage ====================

    def snapshot(self):
        return copy.deepcopy(self.tables), dict(self.next_ids)

    def restore(self, state) -> None:
        self.tables, self.next_ids = copy.deepcopy(state[0]), dict(state[1])

    def _now(self) -> str:
        self.clock += 1
        return (BASE_TIME + timedelta(seconds=self.clock)).isoformat()

    def _check(self, table: str) -> None:
        rows = self.tables[table]
        for columns in UNIQUE.get(table, []):
            seen = set()
            for row in rows:
                key = tuple(row.get(c) for c in columns)
                if any(v is None for v in key):
                    continue
                if key in seen:
                    raise store_error(
                        "23505",
                        f'duplicate key value violates unique constraint "{table}_{"_".join(columns)}_key"'
                    )
                seen.add(key)
        if table == "plan_participants" and self.enforce_single_owner:
            owners = [row["plan_id"] for row in rows if row.get("role") == "owner"]
            if len(owners) != len(set(owners)):
                raise store_error(
                    "23505",
                    'duplicate key value violates unique constraint "plan_participants_single_owner"'
                )
        for column, parent in FOREIGN_KEYS.get(table, {}).items():
            parent_ids = {r["id"] for r in self.tables[parent]}
            for row in rows:
                if row.get(column) is not None and row[column] not in parent_ids:
                    raise store_error(
                        "23503",
                        f'insert or update on table "{table}" violates foreign key constraint "{table}_{column}_fkey"'
                    )

    def _atomic(self, work: Callable[[], Any]):
        state = self.snapshot()
        try:
            return work()
        except Exception:
            self.restore(state)
            raise

    def insert_rows(self, table: str, rows: List[dict]) -> List[dict]:
        def work():
            inserted = []
            for payload in rows:
                row = dict(DEFAULTS.get(table, {}))
                row.update(payload)
                row["id"] = self.next_ids[table]
                self.next_ids[table] += 1
                row.setdefault(TIMESTAMP_COLUMN.get(table, "created_at"), self._now())
                self.tables[table].append(row)
                inserted.append(dict(row))
            self._check(table)
            return inserted
        return self._atomic(work)

    def update_rows(self, table: str, predicate: Callable[[dict], bool], payload: dict) -> List[dict]:
        def work():
            updated = []
            for row in self.tables[table]:
                if predicate(row):
                    row.update(payload)
                    updated.append(dict(row))
            self._check(table)
            return updated
        return self._atomic(work)

    def delete_rows(self, table: str, predicate: Callable[[dict], bool]) -> List[dict]:
        def work():
            removed = [row for row in self.tables[table] if predicate(row)]
            self.tables[table] = [row for row in self.tables[table] if not predicate(row)]
            removed_ids = {row["id"] for row in removed}
            for child, column in ON_DELETE_CASCADE.get(table, []):
                self.delete_rows(child, lambda r, c=column: r.get(c) in removed_ids)
            for child_table, fks in FOREIGN_KEYS.items():
                for column, parent in fks.items():
                    if parent == table:
                        self._check(child_table)
            return removed
        return self._atomic(work)

    def rows(self, table: str, **equals) -> List[dict]:
        return [
            dict(row) for row in self.tables[table]
            if all(row.get(k) == v for k, v in equals.items())
        ]

    def row(self, table: str, **equals) -> Optional[dict]:
        found = self.rows(table, **equals)
        return found[0] if found else None

    # ==================== transactional functions ====================
    # Each _fn_<name> restates function <name> of
    # supabase/migrations/0002_authorization_functions.sql in the same check order
    # and with the same raised messages. The SQL itself only runs against Supabase.

    def call_function(self, name: str, params: dict):
        handler = getattr(self, f"_fn_{name}", None)
        if handler is None:
            raise store_error("PGRST202", f"Could not find the function public.{name}")
        self.rpc_calls.append(name)

        def work():
            result = handler(**params)
            fault = self.rpc_faults.get(name)
            if fault is not None:
                raise fault
            return result
        return self._atomic(work)

    def _role_summaries(self, user_id: int) -> List[dict]:
        role_ids = {r["role_id"] for r in self.rows("user_roles", user_id=user_id)}
        roles = sorted((r for r in self.tables["roles"] if r["id"] in role_ids), key=lambda r: r["id"])
        return [{c: r.get(c) for c in ROLE_COLUMNS} for r in roles]

    def _fn_replace_user_roles(self, p_user_id, p_role_ids):
        if not p_role_ids:
            raise raised("conflict: User must have at least one role")
        if not self.row("users", id=p_user_id):
            raise raised("not_found: User not found")
        known = {r["id"] for r in self.tables["roles"]}
        if not set(p_role_ids).issubset(known):
            raise raised("not_found: Roles not found")
        self.delete_rows("user_roles", lambda r: r["user_id"] == p_user_id)
        self.insert_rows("user_roles", [
            {"user_id": p_user_id, "role_id": role_id}
            for role_id in dict.fromkeys(p_role_ids)
        ])
        return self._role_summaries(p_user_id)

    def _fn_remove_user_role(self, p_user_id, p_role_id):
        held = self.rows("user_roles", user_id=p_user_id)
        if not any(r["role_id"] == p_role_id for r in held):
            raise raised("not_found: User does not have this role")
        if len(held) <= 1:
            raise raised("conflict: Cannot remove the last role. User must have at least one role.")
        self.delete_rows("user_roles", lambda r: r["user_id"] == p_user_id and r["role_id"] == p_role_id)
        return {"user_id": p_user_id, "role_id": p_role_id}

    def _fn_replace_role_permissions(self, p_role_id, p_permission_ids):
        if not self.row("roles", id=p_role_id):
            raise raised(f"not_found: Role with ID {p_role_id} not found")
        self.delete_rows("role_permissions", lambda r: r["role_id"] == p_role_id)
        ids = list(dict.fromkeys(p_permission_ids or []))
        if ids:
            self.insert_rows("role_permissions", [
                {"role_id": p_role_id, "permission_id": pid} for pid in ids
            ])
        self.update_rows("roles", lambda r: r["id"] == p_role_id, {"updated_at": self._now()})
        linked = {r["permission_id"] for r in self.rows("role_permissions", role_id=p_role_id)}
        permissions = sorted((p for p in self.tables["permissions"] if p["id"] in linked), key=lambda p: p["code"])
        return [{c: p.get(c) for c in PERMISSION_COLUMNS} for p in permissions]

    def _fn_create_role_with_permissions(self, p_name, p_code, p_description, p_is_system, p_permission_ids):
        role = self.insert_rows("roles", [{
            "name": p_name,
            "code": p_code,
            "description": p_description,
            "is_system": bool(p_is_system)
        }])[0]
        ids = list(dict.fromkeys(p_permission_ids or []))
        if ids:
            self.insert_rows("role_permissions", [
                {"role_id": role["id"], "permission_id": pid} for pid in ids
            ])
        return role

    def _fn_create_plan(self, p_creator, p_name, p_description, p_icon, p_type, p_is_public):
        plan = self.insert_rows("plans", [{
            "name": p_name,
            "description": p_description,
            "icon": p_icon,
            "type": p_type or "habit",
            "is_public": bool(p_is_public),
            "creator": p_creator
        }])[0]
        self.insert_rows("plan_participants", [{"plan_id": plan["id"], "user_id": p_creator, "role": "owner"}])
        return plan

    def _fn_update_participant_role(self, p_plan_id, p_operator_id, p_user_id, p_role):
        operator = self.row("plan_participants", plan_id=p_plan_id, user_id=p_operator_id)
        if not operator or operator["role"] != "owner":
            raise raised("forbidden: Only owner can change participant roles")
        target = self.row("plan_participants", plan_id=p_plan_id, user_id=p_user_id)
        if not target:
            raise raised("not_found: Participant not found")
        if target["role"] == "owner":
            raise raised("forbidden: Cannot change owner role. Use transfer ownership instead.")
        if p_role == "owner":
            raise raised("forbidden: Cannot assign owner role. Use transfer ownership instead.")
        return self.update_rows("plan_participants", lambda r: r["id"] == target["id"], {"role": p_role})[0]

    def _fn_transfer_plan_ownership(self, p_plan_id, p_current_owner_id, p_new_owner_id):
        if p_current_owner_id == p_new_owner_id:
            raise raised("invalid: Cannot transfer ownership to yourself")
        if not self.row("plans", id=p_plan_id):
            raise raised("not_found: Plan not found")
        if not self.row("plan_participants", plan_id=p_plan_id, user_id=p_current_owner_id, role="owner"):
            raise raised("forbidden: Only owner can transfer ownership")
        if not self.row("plan_participants", plan_id=p_plan_id, user_id=p_new_owner_id):
            raise raised("not_found: New owner must be a participant of the plan")
        self.update_rows(
            "plan_participants",
            lambda r: r["plan_id"] == p_plan_id and r["user_id"] == p_current_owner_id,
            {"role": "admin"}
        )
        self.update_rows(
            "plan_participants",
            lambda r: r["plan_id"] == p_plan_id and r["user_id"] == p_new_owner_id,
            {"role": "owner"}
        )
        return self.update_rows(
            "plans",
            lambda r: r["id"] == p_plan_id,
            {"creator": p_new_owner_id, "updated_at": self._now()}
        )[0]

    def _fn_delete_plan_cascade(self, p_plan_id):
        if not self.row("plans", id=p_plan_id):
            raise raised("not_found: Plan not found")
        task_ids = {t["id"] for t in self.rows("tasks", plan_id=p_plan_id)}
        records = self.delete_rows("task_records", lambda r: r["task_id"] in task_ids)
        reminders = self.delete_rows("task_reminders", lambda r: r["task_id"] in task_ids)
        tasks = self.delete_rows("tasks", lambda r: r["id"] in task_ids)
        participants = self.delete_rows("plan_participants", lambda r: r["plan_id"] == p_plan_id)
        self.delete_rows("plans", lambda r: r["id"] == p_plan_id)
        return {
            "participants": len(participants),
            "tasks": len(tasks),
            "task_records": len(records),
            "task_reminders": len(reminders),
        }

    def _fn_remove_plan_participant(self, p_plan_id, p_operator_id, p_user_id):
        if p_operator_id == p_user_id:
            raise raised("forbidden: Cannot remove yourself. Use leave instead.")
        target = self.row("plan_participants", plan_id=p_plan_id, user_id=p_user_id)
        if not target:
            raise raised("not_found: Participant not found")
        operator = self.row("plan_participants", plan_id=p_plan_id, user_id=p_operator_id)
        operator_rank = RANK.get(operator["role"]) if operator else None
        target_rank = RANK[target["role"]]
        if (operator_rank is None
                or operator_rank < RANK["admin"]
                or target["role"] == "owner"
                or (operator["role"] != "owner" and operator_rank <= target_rank)):
            raise raised("forbidden: You do not have permission to remove this participant")
        self.delete_rows("plan_participants", lambda r: r["id"] == target["id"])
        return target

    def _fn_delete_role(self, p_role_id):
        role = self.row("roles", id=p_role_id)
        if not role:
            raise raised(f"not_found: Role with ID {p_role_id} not found")
        if role["is_system"]:
            raise raised("forbidden: Cannot delete system role")
        holders = len(self.rows("user_roles", role_id=p_role_id))
        if holders > 0:
            raise raised(f"conflict: Cannot delete role: {holders} user(s) are using this role")
        try:
            self.delete_rows("roles", lambda r: r["id"] == p_role_id)
        except APIError as e:
            if e.code != "23503":
                raise
            raise raised("conflict: Cannot delete role: it is assigned to users") from e
        return role


# ==================== fixtures ====================

@pytest.fixture(autouse=True)
def _fresh_auth_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()


@pytest.fixture
def supabase():
    """Empty store"""
    return FakeSupabase()


@pytest.fixture
def rbac(supabase):
    """Store seeded with the configured permission matrix"""
    permission_ids = seed_permissions(supabase, PERMISSION_MATRIX["permissions"])
    seed_roles(supabase, permission_ids, PERMISSION_MATRIX["roles"])
    return supabase


@pytest.fixture
def role_id(rbac):
    def lookup(code: str) -> int:
        return rbac.row("roles", code=code)["id"]
    return lookup


@pytest.fixture
def create_user(rbac):
    """Insert a user holding the given global role codes; returns the user row"""
    counter = {"n": 0}

    def make(roles=("user",), phone: Optional[str] = None, nick_name: Optional[str] = None) -> dict:
        counter["n"] += 1
        user = rbac.insert_rows("users", [{
            "user_key": str(uuid.uuid4()),
            "phone": phone or f"1380000{counter['n']:04d}",
            "nick_name": nick_name or f"user{counter['n']}",
        }])[0]
        if roles:
            rbac.insert_rows("user_roles", [
                {"user_id": user["id"], "role_id": rbac.row("roles", code=code)["id"]}
                for code in roles
            ])
        return user
    return make


@pytest.fixture
def create_plan(rbac):
    """Plan owned by `owner_id`, created through the same function the service uses"""
    def make(owner_id: int, name: str = "Morning run", is_public: bool = False) -> dict:
        return rbac.call_function("create_plan", {
            "p_creator": owner_id,
            "p_name": name,
            "p_description": None,
            "p_icon": None,
            "p_type": "habit",
            "p_is_public": is_public
        })
    return make


@pytest.fixture
def add_participant(rbac):
    def add(plan_id: int, user_id: int, role: str = "member") -> dict:
        return rbac.insert_rows("plan_participants", [{"plan_id": plan_id, "user_id": user_id, "role": role}])[0]
    return add
