"""
User identifier resolution.

Callers address users by their external user_key (UUID) or by phone number.
Both forms are resolved to the numeric users.id once, at the HTTP boundary;
the authorization services only ever see resolved ids.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union
from supabase import Client

from app.core.exceptions import InvalidArgumentError, NotFoundError
from app.database.supabase_client import first_row

USER_KEY_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ByKey:
    user_key: str

    def describe(self) -> str:
        return f'user_key "{self.user_key}"'


@dataclass(frozen=True)
class ByPhone:
    phone: str

    def describe(self) -> str:
        return f'phone "{self.phone}"'


UserIdentifier = Union[ByKey, ByPhone]


def parse_user_identifier(raw: str) -> UserIdentifier:
    """UUID-shaped strings are user keys, anything else is a phone number"""
    raw = (raw or "").strip()
    if not raw:
        raise InvalidArgumentError("User identifier must not be empty")
    if USER_KEY_PATTERN.match(raw):
        return ByKey(raw)
    return ByPhone(raw)


def identifier_from_fields(user_key: Optional[str] = None, phone: Optional[str] = None) -> UserIdentifier:
    """Build an identifier from request fields; user_key takes precedence over phone"""
    if user_key:
        return ByKey(user_key)
    if phone:
        return ByPhone(phone)
    raise InvalidArgumentError("Must provide user_key or phone")


class UserResolver:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def resolve(self, identifier: UserIdentifier) -> int:
        """Resolve an identifier to users.id"""
        column, value = ("user_key", identifier.user_key) if isinstance(identifier, ByKey) else ("phone", identifier.phone)
        result = self.supabase.table("users")\
            .select("id")\
            .eq(column, value)\
            .limit(1)\
            .execute()
        row = first_row(result)
        if not row:
            raise NotFoundError(f"User with {identifier.describe()} not found")
        return row["id"]

    def resolve_raw(self, raw: str) -> int:
        return self.resolve(parse_user_identifier(raw))
