from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class PermissionResponse(BaseModel):
    id: int
    name: str
    code: str
    resource: str
    action: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleCreate(BaseModel):
    name: str
    code: Optional[str] = None  # Defaults to the lower-cased name
    description: Optional[str] = None
    is_system: bool = False
    permissions: List[str] = []  # Permission codes


class RoleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    permissions: Optional[List[str]] = None  # Replaces the whole permission set when given


class RoleResponse(BaseModel):
    id: int
    name: str
    code: str
    description: Optional[str] = None
    is_system: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleWithPermissionsResponse(RoleResponse):
    permissions: List[PermissionResponse]


class RolePermissionsUpdate(BaseModel):
    permission_codes: List[str]


class RoleDeleteResponse(BaseModel):
    role_id: int
    role_name: str
    message: str
