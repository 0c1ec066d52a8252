import logging
from supabase import Client
from postgrest.exceptions import APIError
from app.core.exceptions import (
    ConflictError, InvalidArgumentError, NotFoundError, raise_store_error
)
from app.database.supabase_client import first_row
from app.modules.users.schemas import (
    RoleSummary, UserContextResponse, UserRolesResponse,
    UserRolesAssignResponse, UserRoleRemoveResponse
)
from typing import Iterable, List, Set

logger = logging.getLogger(__name__)

ROLE_SUMMARY_COLUMNS = "id, name, code, description, is_system"


def _dedupe(codes: Iterable[str]) -> List[str]:
    """Drop repeated codes, keeping first-seen order"""
    return list(dict.fromkeys(codes))


class UserRoleService:
    """
    Global RBAC authority: which roles a user holds and which permission codes
    those roles grant. Every call reads the store; nothing is cached.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    # ==================== Queries ====================

    def get_user_role_ids(self, user_id: int) -> List[int]:
        result = self.supabase.table("user_roles")\
            .select("role_id")\
            .eq("user_id", user_id)\
            .execute()
        return [r["role_id"] for r in result.data] if result.data else []

    def get_user_roles(self, user_id: int) -> List[RoleSummary]:
        """Get all roles held by a user"""
        role_ids = self.get_user_role_ids(user_id)
        if not role_ids:
            return []
        result = self.supabase.table("roles")\
            .select(ROLE_SUMMARY_COLUMNS)\
            .in_("id", role_ids)\
            .execute()
        return [RoleSummary(**role) for role in result.data]

    def get_role_codes(self, user_id: int) -> Set[str]:
        return {role.code for role in self.get_user_roles(user_id)}

    def get_permissions(self, user_id: int) -> Set[str]:
        """Union of permission codes granted by every role the user holds"""
        role_ids = self.get_user_role_ids(user_id)
        if not role_ids:
            return set()
        links = self.supabase.table("role_permissions")\
            .select("permission_id")\
            .in_("role_id", role_ids)\
            .execute()
        permission_ids = list({link["permission_id"] for link in links.data}) if links.data else []
        if not permission_ids:
            return set()
        permissions = self.supabase.table("permissions")\
            .select("code")\
            .in_("id", permission_ids)\
            .execute()
        return {p["code"] for p in permissions.data}

    def has_permission(self, user_id: int, permission_code: str) -> bool:
        return permission_code in self.get_permissions(user_id)

    def has_role(self, user_id: int, role_code: str) -> bool:
        return role_code in self.get_role_codes(user_id)

    def has_any_role(self, user_id: int, role_codes: Iterable[str]) -> bool:
        wanted = set(role_codes)
        if not wanted:
            return False
        return not wanted.isdisjoint(self.get_role_codes(user_id))

    def has_all_roles(self, user_id: int, role_codes: Iterable[str]) -> bool:
        wanted = set(role_codes)
        if not wanted:
            return True
        return wanted.issubset(self.get_role_codes(user_id))

    def get_user_context(self, user_id: int) -> UserContextResponse:
        """User row with role codes, role details and permission codes"""
        user = first_row(
            self.supabase.table("users")
            .select("id, user_key, phone, nick_name, avatar, status, created_at")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not user:
            raise NotFoundError("User not found")
        roles = self.get_user_roles(user_id)
        return UserContextResponse(
            **user,
            roles=[role.code for role in roles],
            role_details=roles,
            permissions=sorted(self.get_permissions(user_id))
        )

    # ==================== Mutations ====================

    def _resolve_roles(self, role_codes: List[str]) -> List[RoleSummary]:
        """Resolve every code or fail naming the missing ones; nothing is written on failure"""
        result = self.supabase.table("roles")\
            .select(ROLE_SUMMARY_COLUMNS)\
            .in_("code", role_codes)\
            .execute()
        by_code = {role["code"]: RoleSummary(**role) for role in result.data or []}
        missing = [code for code in role_codes if code not in by_code]
        if missing:
            raise NotFoundError(f"Roles not found: {', '.join(missing)}")
        return [by_code[code] for code in role_codes]

    def assign_roles(self, user_id: int, role_codes: List[str]) -> UserRolesAssignResponse:
        """Add roles the user does not hold yet; assigning only held roles is a conflict"""
        role_codes = _dedupe(role_codes)
        if not role_codes:
            raise InvalidArgumentError("At least one role code is required")

        roles = self._resolve_roles(role_codes)
        existing_role_ids = set(self.get_user_role_ids(user_id))
        new_roles = [role for role in roles if role.id not in existing_role_ids]

        if not new_roles:
            raise ConflictError("All roles are already assigned to this user")

        try:
            self.supabase.table("user_roles").insert([
                {"user_id": user_id, "role_id": role.id}
                for role in new_roles
            ]).execute()
        except APIError as e:
            raise_store_error(e, "Role already assigned to this user")

        logger.info(f"{len(new_roles)} role(s) assigned to user {user_id}: {[r.code for r in new_roles]}")

        return UserRolesAssignResponse(
            user_id=user_id,
            assigned_roles=new_roles,
            message=f"{len(new_roles)} role(s) assigned successfully"
        )

    def remove_role(self, user_id: int, role_code: str) -> UserRoleRemoveResponse:
        """Remove one role; the user's last role can never be removed"""
        role = first_row(
            self.supabase.table("roles")
            .select(ROLE_SUMMARY_COLUMNS)
            .eq("code", role_code)
            .limit(1)
            .execute()
        )
        if not role:
            raise NotFoundError(f"Role with code {role_code} not found")
        role = RoleSummary(**role)

        held_role_ids = self.get_user_role_ids(user_id)
        if role.id not in held_role_ids:
            raise NotFoundError(f"User does not have role: {role.name}")

        if len(held_role_ids) == 1:
            raise ConflictError("Cannot remove the last role. User must have at least one role.")

        # Re-checks the floor under a row lock so concurrent removals cannot reach zero roles
        try:
            self.supabase.rpc("remove_user_role", {
                "p_user_id": user_id,
                "p_role_id": role.id
            }).execute()
        except APIError as e:
            raise_store_error(e)

        logger.info(f"Role {role.code} removed from user {user_id}")

        return UserRoleRemoveResponse(
            user_id=user_id,
            removed_role=role,
            message="Role removed successfully"
        )

    def replace_roles(self, user_id: int, role_codes: List[str]) -> UserRolesResponse:
        """Replace the user's whole role set in one transaction"""
        role_codes = _dedupe(role_codes)
        if not role_codes:
            raise ConflictError("User must have at least one role")

        roles = self._resolve_roles(role_codes)

        try:
            result = self.supabase.rpc("replace_user_roles", {
                "p_user_id": user_id,
                "p_role_ids": [role.id for role in roles]
            }).execute()
        except APIError as e:
            raise_store_error(e)

        updated_roles = [RoleSummary(**role) for role in result.data or []]
        logger.info(f"Roles of user {user_id} replaced with {[r.code for r in updated_roles]}")

        return UserRolesResponse(
            user_id=user_id,
            roles=updated_roles,
            message="User roles updated successfully"
        )
