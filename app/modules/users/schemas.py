from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class RoleSummary(BaseModel):
    id: int
    name: str
    code: str
    description: Optional[str] = None
    is_system: bool = False

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    id: int
    user_key: str
    phone: Optional[str] = None
    nick_name: Optional[str] = None
    avatar: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserContextResponse(UserResponse):
    roles: List[str]
    role_details: List[RoleSummary]
    permissions: List[str]


class UserRolesRequest(BaseModel):
    role_codes: List[str]


class UserRolesResponse(BaseModel):
    user_id: int
    roles: List[RoleSummary]
    message: Optional[str] = None


class UserRolesAssignResponse(BaseModel):
    user_id: int
    assigned_roles: List[RoleSummary]
    message: str


class UserRoleRemoveResponse(BaseModel):
    user_id: int
    removed_role: RoleSummary
    message: str
