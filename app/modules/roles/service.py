import logging
from datetime import datetime, timezone
from supabase import Client
from postgrest.exceptions import APIError
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, raise_store_error
from app.database.supabase_client import first_row
from app.modules.roles.schemas import (
    PermissionResponse, RoleCreate, RoleUpdate, RoleResponse,
    RoleWithPermissionsResponse, RoleDeleteResponse
)
from typing import List, Optional

logger = logging.getLogger(__name__)


class PermissionService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_permission_by_id(self, permission_id: int) -> PermissionResponse:
        """Get permission by ID"""
        result = self.supabase.table("permissions")\
            .select("*")\
            .eq("id", permission_id)\
            .limit(1)\
            .execute()
        permission = first_row(result)
        if not permission:
            raise NotFoundError("Permission not found")
        return PermissionResponse(**permission)

    def list_permissions(self, resource: Optional[str] = None) -> List[PermissionResponse]:
        """List permissions, optionally filtered by resource"""
        query = self.supabase.table("permissions").select("*")
        if resource:
            query = query.eq("resource", resource)
        result = query.order("code").execute()
        return [PermissionResponse(**permission) for permission in result.data]

    def resolve_codes(self, permission_codes: List[str]) -> List[PermissionResponse]:
        """Resolve permission codes, failing with every missing code named"""
        permission_codes = list(dict.fromkeys(permission_codes))
        if not permission_codes:
            return []
        result = self.supabase.table("permissions")\
            .select("*")\
            .in_("code", permission_codes)\
            .execute()
        by_code = {p["code"]: PermissionResponse(**p) for p in result.data or []}
        missing = [code for code in permission_codes if code not in by_code]
        if missing:
            raise NotFoundError(f"Permissions not found: {', '.join(missing)}")
        return [by_code[code] for code in permission_codes]


class RoleService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.permissions = PermissionService(supabase)

    def _get_role_row(self, role_id: int) -> dict:
        role = first_row(
            self.supabase.table("roles")
            .select("*")
            .eq("id", role_id)
            .limit(1)
            .execute()
        )
        if not role:
            raise NotFoundError(f"Role with ID {role_id} not found")
        return role

    def _ensure_mutable(self, role: dict) -> None:
        if role.get("is_system"):
            logger.warning(f"Rejected change to system role: {role['code']}")
            raise ForbiddenError("Cannot modify system role")

    def get_role_by_id(self, role_id: int) -> RoleResponse:
        """Get role by ID"""
        return RoleResponse(**self._get_role_row(role_id))

    def get_role_permissions(self, role_id: int) -> List[PermissionResponse]:
        """Get all permissions for a role"""
        links = self.supabase.table("role_permissions")\
            .select("permission_id")\
            .eq("role_id", role_id)\
            .execute()
        permission_ids = [link["permission_id"] for link in links.data] if links.data else []
        if not permission_ids:
            return []
        result = self.supabase.table("permissions")\
            .select("*")\
            .in_("id", permission_ids)\
            .order("code")\
            .execute()
        return [PermissionResponse(**permission) for permission in result.data]

    def get_role_with_permissions(self, role_id: int) -> RoleWithPermissionsResponse:
        """Get role with all associated permissions"""
        role = self._get_role_row(role_id)
        return RoleWithPermissionsResponse(**role, permissions=self.get_role_permissions(role_id))

    def list_roles(self) -> List[RoleResponse]:
        result = self.supabase.table("roles")\
            .select("*")\
            .order("created_at", desc=True)\
            .execute()
        return [RoleResponse(**role) for role in result.data]

    def create_role(self, role_data: RoleCreate) -> RoleWithPermissionsResponse:
        """Create a role together with its permission set"""
        code = role_data.code or role_data.name.lower()

        for column, value in (("name", role_data.name), ("code", code)):
            existing = self.supabase.table("roles")\
                .select("id")\
                .eq(column, value)\
                .execute()
            if existing.data:
                raise ConflictError("Role name or code already exists")

        permissions = self.permissions.resolve_codes(role_data.permissions)

        try:
            result = self.supabase.rpc("create_role_with_permissions", {
                "p_name": role_data.name,
                "p_code": code,
                "p_description": role_data.description,
                "p_is_system": role_data.is_system,
                "p_permission_ids": [p.id for p in permissions]
            }).execute()
        except APIError as e:
            raise_store_error(e, "Role name or code already exists")

        role = result.data
        logger.info(f"Role created: {role['code']} (ID: {role['id']}) with {len(permissions)} permissions")
        return RoleWithPermissionsResponse(**role, permissions=permissions)

    def replace_role_permissions(self, role_id: int, permission_codes: List[str]) -> RoleWithPermissionsResponse:
        """
        Replace the role's whole permission set.
        Delete-all then insert-all inside one transaction, so applying the same
        list twice yields the same final set.
        """
        role = self._get_role_row(role_id)
        self._ensure_mutable(role)

        permissions = self.permissions.resolve_codes(permission_codes)

        try:
            result = self.supabase.rpc("replace_role_permissions", {
                "p_role_id": role_id,
                "p_permission_ids": [p.id for p in permissions]
            }).execute()
        except APIError as e:
            raise_store_error(e)

        updated = sorted(
            (PermissionResponse(**p) for p in result.data or []),
            key=lambda p: p.code
        )
        logger.info(f"Role {role['code']} now holds {len(updated)} permissions")
        return RoleWithPermissionsResponse(**role, permissions=updated)

    def update_role(self, role_id: int, role_data: RoleUpdate) -> RoleWithPermissionsResponse:
        """Update role name/description and optionally replace its permissions"""
        role = self._get_role_row(role_id)
        self._ensure_mutable(role)

        if role_data.name and role_data.name != role["name"]:
            duplicate = self.supabase.table("roles")\
                .select("id")\
                .eq("name", role_data.name)\
                .neq("id", role_id)\
                .execute()
            if duplicate.data:
                raise ConflictError("Role name already exists")

        if role_data.permissions is not None:
            self.replace_role_permissions(role_id, role_data.permissions)

        update_data = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if role_data.name:
            update_data["name"] = role_data.name
        if role_data.description is not None:
            update_data["description"] = role_data.description

        try:
            self.supabase.table("roles")\
                .update(update_data)\
                .eq("id", role_id)\
                .execute()
        except APIError as e:
            raise_store_error(e, "Role name already exists")

        return self.get_role_with_permissions(role_id)

    def delete_role(self, role_id: int) -> RoleDeleteResponse:
        """Delete a role that is neither a system role nor held by any user"""
        role = self._get_role_row(role_id)

        if role.get("is_system"):
            raise ForbiddenError("Cannot delete system role")

        holders = self.supabase.table("user_roles")\
            .select("id", count="exact")\
            .eq("role_id", role_id)\
            .execute()
        holder_count = holders.count or 0
        if holder_count > 0:
            raise ConflictError(f"Cannot delete role: {holder_count} user(s) are using this role")

        # Re-counts holders under a lock on the role row; role_permissions go with
        # the role (on delete cascade), user_roles never do (on delete restrict)
        try:
            self.supabase.rpc("delete_role", {"p_role_id": role_id}).execute()
        except APIError as e:
            raise_store_error(e)

        logger.info(f"Role deleted: {role['name']} (ID: {role_id})")

        return RoleDeleteResponse(
            role_id=role_id,
            role_name=role["name"],
            message="Role deleted successfully"
        )
