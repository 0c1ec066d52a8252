from fastapi import APIRouter, Depends
from app.core.dependencies import (
    get_current_user, get_user_resolver, get_plan_permission_service
)
from app.database.supabase_client import get_supabase
from app.modules.plans.participant_service import PlanParticipantService
from app.modules.plans.permissions import PlanPermissionService
from app.modules.plans.schemas import (
    PlanCreate, PlanUpdate, PlanResponse, PlanDeleteResponse, PlanStatsResponse,
    PlanPermissionSummary, ParticipantResponse, ParticipantInvite, ParticipantTarget,
    ParticipantRoleUpdate, OwnershipTransferResponse, MessageResponse
)
from app.modules.plans.service import PlanService
from app.modules.users.identifiers import UserResolver, identifier_from_fields
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/plans", tags=["plans"])


def get_plan_service(supabase: Client = Depends(get_supabase)) -> PlanService:
    return PlanService(supabase)


def get_participant_service(supabase: Client = Depends(get_supabase)) -> PlanParticipantService:
    return PlanParticipantService(supabase)


def _resolve_target(target: ParticipantTarget, resolver: UserResolver) -> int:
    return resolver.resolve(identifier_from_fields(target.user_key, target.phone))


# Plan endpoints
@router.post("", response_model=PlanResponse, status_code=201)
async def create_plan(
    plan_data: PlanCreate,
    current_user: Dict = Depends(get_current_user),
    service: PlanService = Depends(get_plan_service)
):
    """Create a plan; the caller becomes its owner"""
    return service.create_plan(current_user["id"], plan_data)


@router.get("", response_model=List[PlanResponse])
async def list_my_plans(
    current_user: Dict = Depends(get_current_user),
    service: PlanService = Depends(get_plan_service)
):
    """Plans the caller participates in"""
    return service.list_user_plans(current_user["id"])


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(
    plan_id: int,
    current_user: Dict = Depends(get_current_user),
    service: PlanService = Depends(get_plan_service)
):
    """Get plan by ID"""
    return service.get_plan(plan_id, current_user["id"])


@router.put("/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    plan_data: PlanUpdate,
    current_user: Dict = Depends(get_current_user),
    service: PlanService = Depends(get_plan_service)
):
    """Update plan (admin or owner)"""
    return service.update_plan(plan_id, current_user["id"], plan_data)


@router.delete("/{plan_id}", response_model=PlanDeleteResponse)
async def delete_plan(
    plan_id: int,
    current_user: Dict = Depends(get_current_user),
    service: PlanService = Depends(get_plan_service)
):
    """Delete plan and all of its tasks, records, reminders and participants (owner only)"""
    return service.delete_plan(plan_id, current_user["id"])


@router.get("/{plan_id}/stats", response_model=PlanStatsResponse)
async def get_plan_stats(
    plan_id: int,
    current_user: Dict = Depends(get_current_user),
    service: PlanService = Depends(get_plan_service)
):
    return service.get_plan_stats(plan_id, current_user["id"])


@router.get("/{plan_id}/permissions", response_model=PlanPermissionSummary)
async def get_my_plan_permissions(
    plan_id: int,
    current_user: Dict = Depends(get_current_user),
    permissions: PlanPermissionService = Depends(get_plan_permission_service)
):
    """Caller's role and capabilities in the plan (for UI display)"""
    return permissions.get_permission_summary(plan_id, current_user["id"])


# Participant endpoints
@router.get("/{plan_id}/participants", response_model=List[ParticipantResponse])
async def list_participants(
    plan_id: int,
    current_user: Dict = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
    service: PlanParticipantService = Depends(get_participant_service)
):
    """List participants of a viewable plan, highest role first"""
    plans.get_plan(plan_id, current_user["id"])
    return service.list_participants(plan_id)


@router.post("/{plan_id}/join", response_model=ParticipantResponse, status_code=201)
async def join_plan(
    plan_id: int,
    current_user: Dict = Depends(get_current_user),
    service: PlanParticipantService = Depends(get_participant_service)
):
    """Join a public plan as member"""
    return service.join_plan(plan_id, current_user["id"])


@router.post("/{plan_id}/participants", response_model=ParticipantResponse, status_code=201)
async def invite_participant(
    plan_id: int,
    invite_data: ParticipantInvite,
    current_user: Dict = Depends(get_current_user),
    resolver: UserResolver = Depends(get_user_resolver),
    service: PlanParticipantService = Depends(get_participant_service)
):
    """Invite a user by user_key or phone (default role member)"""
    target_id = resolver.resolve(identifier_from_fields(invite_data.user_key, invite_data.phone))
    return service.invite_participant(plan_id, current_user["id"], target_id, invite_data.role)


@router.post("/{plan_id}/leave", response_model=MessageResponse)
async def leave_plan(
    plan_id: int,
    current_user: Dict = Depends(get_current_user),
    service: PlanParticipantService = Depends(get_participant_service)
):
    return service.leave_plan(plan_id, current_user["id"])


@router.post("/{plan_id}/participants/remove", response_model=MessageResponse)
async def remove_participant(
    plan_id: int,
    target: ParticipantTarget,
    current_user: Dict = Depends(get_current_user),
    resolver: UserResolver = Depends(get_user_resolver),
    service: PlanParticipantService = Depends(get_participant_service)
):
    """Remove another participant (owner, or admin for lower roles)"""
    return service.remove_participant(plan_id, current_user["id"], _resolve_target(target, resolver))


@router.put("/{plan_id}/participants/role", response_model=ParticipantResponse)
async def update_participant_role(
    plan_id: int,
    role_data: ParticipantRoleUpdate,
    current_user: Dict = Depends(get_current_user),
    resolver: UserResolver = Depends(get_user_resolver),
    service: PlanParticipantService = Depends(get_participant_service)
):
    """Change a participant's role (owner only)"""
    target_id = _resolve_target(role_data, resolver)
    return service.update_participant_role(plan_id, current_user["id"], target_id, role_data.role)


@router.post("/{plan_id}/transfer-ownership", response_model=OwnershipTransferResponse)
async def transfer_ownership(
    plan_id: int,
    target: ParticipantTarget,
    current_user: Dict = Depends(get_current_user),
    resolver: UserResolver = Depends(get_user_resolver),
    service: PlanParticipantService = Depends(get_participant_service)
):
    """Hand ownership to another participant; the caller becomes admin"""
    return service.transfer_ownership(plan_id, current_user["id"], _resolve_target(target, resolver))
