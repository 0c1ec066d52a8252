import logging
from supabase import Client
from postgrest.exceptions import APIError
from app.config import settings
from app.core.exceptions import (
    ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError, raise_store_error
)
from app.database.supabase_client import first_row
from app.modules.plans.permissions import PlanPermissionService
from app.modules.plans.roles import ParticipantRole, sort_by_rank
from app.modules.plans.schemas import (
    ParticipantResponse, OwnershipTransferResponse, MessageResponse
)
from typing import List, Optional

logger = logging.getLogger(__name__)

ALREADY_PARTICIPANT = "User is already a participant"


class PlanParticipantService:
    def __init__(self, supabase: Client, permissions: Optional[PlanPermissionService] = None):
        self.supabase = supabase
        self.permissions = permissions or PlanPermissionService(supabase)

    def _get_plan(self, plan_id: int) -> dict:
        plan = first_row(
            self.supabase.table("plans")
            .select("id, is_public, creator")
            .eq("id", plan_id)
            .limit(1)
            .execute()
        )
        if not plan:
            raise NotFoundError("Plan not found")
        return plan

    def _insert_participant(self, plan_id: int, user_id: int, role: ParticipantRole) -> ParticipantResponse:
        # The (plan_id, user_id) unique constraint settles concurrent joins/invites of the same user
        try:
            result = self.supabase.table("plan_participants").insert({
                "plan_id": plan_id,
                "user_id": user_id,
                "role": role.value
            }).execute()
        except APIError as e:
            raise_store_error(e, ALREADY_PARTICIPANT)
        return ParticipantResponse(**result.data[0])

    def join_plan(self, plan_id: int, user_id: int) -> ParticipantResponse:
        """Join a public plan with the default participant role"""
        plan = self._get_plan(plan_id)
        if not plan["is_public"]:
            raise ForbiddenError("Cannot join private plan without invitation")

        if self.permissions.is_participant(plan_id, user_id):
            raise ConflictError("Already joined this plan")

        participant = self._insert_participant(plan_id, user_id, ParticipantRole(settings.default_participant_role))
        logger.info(f"User {user_id} joined plan {plan_id}")
        return participant

    def invite_participant(
        self,
        plan_id: int,
        inviter_id: int,
        target_user_id: int,
        role: Optional[ParticipantRole] = None
    ) -> ParticipantResponse:
        """Invite a user (admin or above); admin/owner invitations need the inviter to be owner"""
        self._get_plan(plan_id)
        role = role or ParticipantRole(settings.default_participant_role)

        self.permissions.ensure_permission(plan_id, inviter_id, ParticipantRole.ADMIN, "invite members")

        if not self.permissions.can_invite_with_role(plan_id, inviter_id, role):
            raise ForbiddenError("Only owner can invite admin or owner")

        # A plan has exactly one owner; a second one only arrives through transfer
        if role == ParticipantRole.OWNER:
            raise ForbiddenError("Cannot invite as owner. Use transfer ownership instead.")

        if self.permissions.is_participant(plan_id, target_user_id):
            raise ConflictError(ALREADY_PARTICIPANT)

        participant = self._insert_participant(plan_id, target_user_id, role)
        logger.info(f"User {target_user_id} invited to plan {plan_id} as {role.value} by {inviter_id}")
        return participant

    def leave_plan(self, plan_id: int, user_id: int) -> MessageResponse:
        """Leave a plan; the owner has to transfer ownership first"""
        role = self.permissions.get_user_role(plan_id, user_id)
        if role is None:
            raise NotFoundError("You are not a participant of this plan")

        if role == ParticipantRole.OWNER:
            raise ConflictError("Owner cannot leave their own plan. Transfer ownership first.")

        self.supabase.table("plan_participants")\
            .delete()\
            .eq("plan_id", plan_id)\
            .eq("user_id", user_id)\
            .neq("role", ParticipantRole.OWNER.value)\
            .execute()

        logger.info(f"User {user_id} left plan {plan_id}")
        return MessageResponse(message="Successfully left the plan")

    def list_participants(self, plan_id: int) -> List[ParticipantResponse]:
        """All participants, highest rank first, then earliest joined"""
        result = self.supabase.table("plan_participants")\
            .select("*")\
            .eq("plan_id", plan_id)\
            .order("joined_at")\
            .execute()
        return [ParticipantResponse(**p) for p in sort_by_rank(result.data or [])]

    def remove_participant(self, plan_id: int, operator_id: int, target_user_id: int) -> MessageResponse:
        """Remove another participant; self-removal goes through leave_plan"""
        self._get_plan(plan_id)

        if operator_id == target_user_id:
            raise ForbiddenError("Cannot remove yourself. Use leave instead.")

        if not self.permissions.is_participant(plan_id, target_user_id):
            raise NotFoundError("Participant not found")

        if not self.permissions.can_remove_member(plan_id, operator_id, target_user_id):
            raise ForbiddenError("You do not have permission to remove this participant")

        # Both rows are locked and the removal rule re-checked, so a concurrent
        # transfer or role change cannot turn the target into an owner mid-way
        try:
            self.supabase.rpc("remove_plan_participant", {
                "p_plan_id": plan_id,
                "p_operator_id": operator_id,
                "p_user_id": target_user_id
            }).execute()
        except APIError as e:
            raise_store_error(e)

        logger.info(f"User {target_user_id} removed from plan {plan_id} by {operator_id}")
        return MessageResponse(message="Participant removed successfully")

    def update_participant_role(
        self,
        plan_id: int,
        operator_id: int,
        target_user_id: int,
        new_role: ParticipantRole
    ) -> ParticipantResponse:
        """Change a participant's role (owner only); the owner role itself moves only by transfer"""
        self._get_plan(plan_id)

        if not self.permissions.can_change_role(plan_id, operator_id):
            raise ForbiddenError("Only owner can change participant roles")

        if operator_id == target_user_id:
            raise ForbiddenError("Cannot change your own role")

        target_role = self.permissions.get_user_role(plan_id, target_user_id)
        if target_role is None:
            raise NotFoundError("Participant not found")

        if target_role == ParticipantRole.OWNER:
            raise ForbiddenError("Cannot change owner role. Use transfer ownership instead.")

        if new_role == ParticipantRole.OWNER:
            raise ForbiddenError("Cannot assign owner role. Use transfer ownership instead.")

        try:
            result = self.supabase.rpc("update_participant_role", {
                "p_plan_id": plan_id,
                "p_operator_id": operator_id,
                "p_user_id": target_user_id,
                "p_role": new_role.value
            }).execute()
        except APIError as e:
            raise_store_error(e)

        logger.info(f"Role of user {target_user_id} in plan {plan_id} changed {target_role.value} -> {new_role.value}")
        return ParticipantResponse(**result.data)

    def transfer_ownership(self, plan_id: int, current_owner_id: int, new_owner_id: int) -> OwnershipTransferResponse:
        """
        Hand the plan to another participant.
        The caller becomes admin, the target becomes owner and plans.creator
        follows, all in one transaction.
        """
        self._get_plan(plan_id)

        if self.permissions.get_user_role(plan_id, current_owner_id) != ParticipantRole.OWNER:
            raise ForbiddenError("Only owner can transfer ownership")

        if current_owner_id == new_owner_id:
            raise InvalidArgumentError("Cannot transfer ownership to yourself")

        if not self.permissions.is_participant(plan_id, new_owner_id):
            raise NotFoundError("New owner must be a participant of the plan")

        try:
            self.supabase.rpc("transfer_plan_ownership", {
                "p_plan_id": plan_id,
                "p_current_owner_id": current_owner_id,
                "p_new_owner_id": new_owner_id
            }).execute()
        except APIError as e:
            raise_store_error(e)

        logger.info(f"Ownership of plan {plan_id} transferred from {current_owner_id} to {new_owner_id}")
        return OwnershipTransferResponse(
            plan_id=plan_id,
            previous_owner_id=current_owner_id,
            new_owner_id=new_owner_id,
            message="Ownership transferred successfully"
        )
