from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.roles.schemas import (
    PermissionResponse, RoleCreate, RoleUpdate, RoleResponse,
    RoleWithPermissionsResponse, RolePermissionsUpdate, RoleDeleteResponse
)
from app.modules.roles.service import RoleService, PermissionService
from app.core.dependencies import require_permission, require_any_role
from supabase import Client
from typing import List, Optional, Dict

router = APIRouter(prefix="/roles", tags=["roles"])


def get_role_service(supabase: Client = Depends(get_supabase)) -> RoleService:
    return RoleService(supabase)


def get_permission_service(supabase: Client = Depends(get_supabase)) -> PermissionService:
    return PermissionService(supabase)


# Permission endpoints (the catalog is seeded, not edited over HTTP)
@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    resource: Optional[str] = None,
    user_data: Dict = Depends(require_permission("permission:read")),
    service: PermissionService = Depends(get_permission_service)
):
    """List permissions, optionally filtered by resource"""
    return service.list_permissions(resource=resource)


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: int,
    user_data: Dict = Depends(require_permission("permission:read")),
    service: PermissionService = Depends(get_permission_service)
):
    """Get permission by ID"""
    return service.get_permission_by_id(permission_id)


# Role endpoints
@router.get("", response_model=List[RoleResponse])
async def list_roles(
    user_data: Dict = Depends(require_permission("role:read")),
    service: RoleService = Depends(get_role_service)
):
    """List all roles"""
    return service.list_roles()


@router.post("", response_model=RoleWithPermissionsResponse, status_code=201)
async def create_role(
    role_data: RoleCreate,
    user_data: Dict = Depends(require_permission("role:manage")),
    service: RoleService = Depends(get_role_service)
):
    """Create a new role together with its permissions"""
    return service.create_role(role_data)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    user_data: Dict = Depends(require_permission("role:read")),
    service: RoleService = Depends(get_role_service)
):
    """Get role by ID"""
    return service.get_role_by_id(role_id)


@router.get("/{role_id}/permissions", response_model=RoleWithPermissionsResponse)
async def get_role_with_permissions(
    role_id: int,
    user_data: Dict = Depends(require_permission("role:read")),
    service: RoleService = Depends(get_role_service)
):
    """Get role with all its permissions"""
    return service.get_role_with_permissions(role_id)


@router.put("/{role_id}", response_model=RoleWithPermissionsResponse)
async def update_role(
    role_id: int,
    role_data: RoleUpdate,
    user_data: Dict = Depends(require_permission("role:manage")),
    service: RoleService = Depends(get_role_service)
):
    """Update a non-system role"""
    return service.update_role(role_id, role_data)


@router.put("/{role_id}/permissions", response_model=RoleWithPermissionsResponse)
async def replace_role_permissions(
    role_id: int,
    permissions_data: RolePermissionsUpdate,
    user_data: Dict = Depends(require_permission("role:manage")),
    service: RoleService = Depends(get_role_service)
):
    """Replace the whole permission set of a non-system role"""
    return service.replace_role_permissions(role_id, permissions_data.permission_codes)


@router.delete("/{role_id}", response_model=RoleDeleteResponse)
async def delete_role(
    role_id: int,
    user_data: Dict = Depends(require_any_role("admin")),
    service: RoleService = Depends(get_role_service)
):
    """Delete a role nobody holds (admins only)"""
    return service.delete_role(role_id)
