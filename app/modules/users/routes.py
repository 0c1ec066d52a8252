from fastapi import APIRouter, Depends
from app.core.dependencies import (
    require_permission, get_user_resolver, get_user_role_service
)
from app.modules.users.identifiers import UserResolver
from app.modules.users.schemas import (
    UserRolesRequest, UserRolesResponse, UserRolesAssignResponse, UserRoleRemoveResponse
)
from app.modules.users.service import UserRoleService
from typing import Dict

router = APIRouter(prefix="/users", tags=["users"])


# {identifier} is a user_key (UUID) or a phone number
@router.get("/{identifier}/roles", response_model=UserRolesResponse)
async def get_user_roles(
    identifier: str,
    user_data: Dict = Depends(require_permission("role:read")),
    resolver: UserResolver = Depends(get_user_resolver),
    service: UserRoleService = Depends(get_user_role_service)
):
    """Get all roles of a user"""
    user_id = resolver.resolve_raw(identifier)
    return UserRolesResponse(user_id=user_id, roles=service.get_user_roles(user_id))


@router.post("/{identifier}/roles", response_model=UserRolesAssignResponse, status_code=201)
async def assign_user_roles(
    identifier: str,
    roles_data: UserRolesRequest,
    user_data: Dict = Depends(require_permission("role:manage")),
    resolver: UserResolver = Depends(get_user_resolver),
    service: UserRoleService = Depends(get_user_role_service)
):
    """Assign roles to a user (roles already held are skipped; all held is a conflict)"""
    user_id = resolver.resolve_raw(identifier)
    return service.assign_roles(user_id, roles_data.role_codes)


@router.put("/{identifier}/roles", response_model=UserRolesResponse)
async def replace_user_roles(
    identifier: str,
    roles_data: UserRolesRequest,
    user_data: Dict = Depends(require_permission("role:manage")),
    resolver: UserResolver = Depends(get_user_resolver),
    service: UserRoleService = Depends(get_user_role_service)
):
    """Replace the user's whole role set"""
    user_id = resolver.resolve_raw(identifier)
    return service.replace_roles(user_id, roles_data.role_codes)


@router.delete("/{identifier}/roles/{role_code}", response_model=UserRoleRemoveResponse)
async def remove_user_role(
    identifier: str,
    role_code: str,
    user_data: Dict = Depends(require_permission("role:manage")),
    resolver: UserResolver = Depends(get_user_resolver),
    service: UserRoleService = Depends(get_user_role_service)
):
    """Remove one role from a user (the last role cannot be removed)"""
    user_id = resolver.resolve_raw(identifier)
    return service.remove_role(user_id, role_code)
