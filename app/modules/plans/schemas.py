from pydantic import BaseModel
from typing import Optional, Literal
from datetime import datetime

from app.modules.plans.roles import ParticipantRole


class PlanCreate(BaseModel):
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    type: Literal["habit", "challenge"] = "habit"
    is_public: bool = False


class PlanUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    is_public: Optional[bool] = None


class PlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    type: str = "habit"
    is_public: bool = False
    creator: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PlanDeletionStats(BaseModel):
    participants: int
    tasks: int
    task_records: int
    task_reminders: int


class PlanDeleteResponse(BaseModel):
    plan_id: int
    deleted: PlanDeletionStats
    message: str


class PlanStatsResponse(BaseModel):
    plan_id: int
    participant_count: int
    task_count: int
    record_count: int


class PlanPermissionSummary(BaseModel):
    plan_id: int
    role: Optional[str] = None
    can_view: bool = False
    can_create_task: bool = False
    can_modify_task: bool = False
    can_delete_task: bool = False
    can_modify_plan: bool = False
    can_delete_plan: bool = False
    can_invite_members: bool = False
    can_remove_members: bool = False
    can_change_roles: bool = False


class ParticipantResponse(BaseModel):
    id: int
    plan_id: int
    user_id: int
    role: ParticipantRole
    joined_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# user_key / phone identify the target user; user_key wins when both are given
class ParticipantInvite(BaseModel):
    user_key: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[ParticipantRole] = None


class ParticipantTarget(BaseModel):
    user_key: Optional[str] = None
    phone: Optional[str] = None


class ParticipantRoleUpdate(ParticipantTarget):
    role: ParticipantRole


class OwnershipTransferResponse(BaseModel):
    plan_id: int
    previous_owner_id: int
    new_owner_id: int
    message: str


class MessageResponse(BaseModel):
    message: str
