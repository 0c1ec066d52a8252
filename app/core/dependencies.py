"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.exceptions import NotFoundError
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from app.modules.users.identifiers import ByKey, UserResolver
from app.modules.users.service import UserRoleService
from app.modules.plans.permissions import PlanPermissionService
from supabase import Client
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_user_resolver(supabase: Client = Depends(get_supabase)) -> UserResolver:
    return UserResolver(supabase)


def get_user_role_service(supabase: Client = Depends(get_supabase)) -> UserRoleService:
    return UserRoleService(supabase)


def get_plan_permission_service(supabase: Client = Depends(get_supabase)) -> PlanPermissionService:
    return PlanPermissionService(supabase)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service),
    resolver: UserResolver = Depends(get_user_resolver)
) -> Dict[str, Any]:
    """Verify the bearer token and map the auth identity to the numeric users.id"""
    auth_user = auth_service.get_current_user(credentials.credentials)
    try:
        user_id = resolver.resolve(ByKey(auth_user["id"]))
    except NotFoundError:
        logger.warning(f"Authenticated user {auth_user['id']} has no profile row")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User profile not found"
        )
    return {"id": user_id, "user_key": auth_user["id"], "phone": auth_user.get("phone")}


def require_permission(*required_permissions: str):
    """Factory function to create a dependency requiring every listed permission"""
    def check_permission(
        user_data: Dict = Depends(get_current_user),
        role_service: UserRoleService = Depends(get_user_role_service)
    ) -> Dict:
        user_permissions = role_service.get_permissions(user_data["id"])
        missing = [p for p in required_permissions if p not in user_permissions]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {', '.join(required_permissions)}"
            )
        return user_data
    return check_permission


def require_any_role(*required_roles: str):
    """Factory function to create a dependency requiring at least one of the listed roles"""
    def check_roles(
        user_data: Dict = Depends(get_current_user),
        role_service: UserRoleService = Depends(get_user_role_service)
    ) -> Dict:
        if not role_service.has_any_role(user_data["id"], required_roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient roles. Required one of: {', '.join(required_roles)}"
            )
        return user_data
    return check_roles
