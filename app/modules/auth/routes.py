from fastapi import APIRouter, Depends
from app.core.dependencies import get_current_user, get_user_role_service
from app.modules.users.schemas import UserContextResponse
from app.modules.users.service import UserRoleService
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserContextResponse)
async def get_me(
    current_user: Dict = Depends(get_current_user),
    service: UserRoleService = Depends(get_user_role_service)
):
    """Get current authenticated user with their roles and permissions (for frontend UI)."""
    return service.get_user_context(current_user["id"])
