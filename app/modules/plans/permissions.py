"""
Plan permission service.

Every plan-scoped authorization question is answered by comparing the rank
of the caller's participant role against a required rank (see roles.py).
Boolean predicates (has_role, is_participant, can_*) answer "no" with False;
ensure_* helpers raise ForbiddenError naming the required role.
"""

from typing import Optional
from supabase import Client

from app.core.exceptions import ForbiddenError, NotFoundError
from app.database.supabase_client import first_row
from app.modules.plans.roles import (
    ParticipantRole, role_allows, decide_member_removal, decide_invite_role
)
from app.modules.plans.schemas import PlanPermissionSummary


class PlanPermissionService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_user_role(self, plan_id: int, user_id: int) -> Optional[ParticipantRole]:
        """Role of the user in the plan, or None when not a participant"""
        participant = first_row(
            self.supabase.table("plan_participants")
            .select("role")
            .eq("plan_id", plan_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not participant:
            return None
        return ParticipantRole(participant["role"])

    def is_participant(self, plan_id: int, user_id: int) -> bool:
        return self.get_user_role(plan_id, user_id) is not None

    def has_role(self, plan_id: int, user_id: int, required_role: ParticipantRole) -> bool:
        """Participant whose role ranks at least `required_role`"""
        return role_allows(self.get_user_role(plan_id, user_id), required_role)

    def _get_visibility(self, plan_id: int) -> bool:
        plan = first_row(
            self.supabase.table("plans")
            .select("is_public")
            .eq("id", plan_id)
            .limit(1)
            .execute()
        )
        if not plan:
            raise NotFoundError("Plan not found")
        return bool(plan["is_public"])

    def can_view_plan(self, plan_id: int, user_id: Optional[int] = None) -> bool:
        """Public plans are visible to everyone, private plans only to participants"""
        if self._get_visibility(plan_id):
            return True
        if user_id is None:
            return False
        return self.is_participant(plan_id, user_id)

    def can_view_tasks(self, plan_id: int, user_id: Optional[int] = None) -> bool:
        return self.can_view_plan(plan_id, user_id)

    def can_create_task(self, plan_id: int, user_id: int) -> bool:
        return self.has_role(plan_id, user_id, ParticipantRole.MEMBER)

    def can_modify_task(self, plan_id: int, user_id: int) -> bool:
        return self.has_role(plan_id, user_id, ParticipantRole.MEMBER)

    def can_delete_task(self, plan_id: int, user_id: int) -> bool:
        return self.has_role(plan_id, user_id, ParticipantRole.ADMIN)

    def can_modify_plan(self, plan_id: int, user_id: int) -> bool:
        return self.has_role(plan_id, user_id, ParticipantRole.ADMIN)

    def can_delete_plan(self, plan_id: int, user_id: int) -> bool:
        return self.has_role(plan_id, user_id, ParticipantRole.OWNER)

    def can_invite_members(self, plan_id: int, user_id: int) -> bool:
        return self.has_role(plan_id, user_id, ParticipantRole.ADMIN)

    def can_change_role(self, plan_id: int, user_id: int) -> bool:
        return self.has_role(plan_id, user_id, ParticipantRole.OWNER)

    def can_remove_member(self, plan_id: int, operator_id: int, target_user_id: int) -> bool:
        operator_role = self.get_user_role(plan_id, operator_id)
        target_role = self.get_user_role(plan_id, target_user_id)
        return decide_member_removal(operator_role, target_role)

    def can_invite_with_role(self, plan_id: int, inviter_id: int, role: ParticipantRole) -> bool:
        return decide_invite_role(self.get_user_role(plan_id, inviter_id), role)

    def ensure_permission(self, plan_id: int, user_id: int, required_role: ParticipantRole, action: str) -> None:
        """Raise ForbiddenError unless the user holds `required_role` or higher"""
        if not self.has_role(plan_id, user_id, required_role):
            raise ForbiddenError(
                f"You do not have permission to {action}. Required role: {required_role.value}"
            )

    def get_task_plan_id(self, task_id: int) -> int:
        task = first_row(
            self.supabase.table("tasks")
            .select("plan_id")
            .eq("id", task_id)
            .limit(1)
            .execute()
        )
        if not task:
            raise NotFoundError("Task not found")
        return task["plan_id"]

    def ensure_task_permission(self, task_id: int, user_id: int, required_role: ParticipantRole, action: str) -> int:
        """Check a task-scoped action against the owning plan; returns the plan id"""
        plan_id = self.get_task_plan_id(task_id)
        self.ensure_permission(plan_id, user_id, required_role, action)
        return plan_id

    def get_permission_summary(self, plan_id: int, user_id: int) -> PlanPermissionSummary:
        """Role and capability flags for one user in one plan (for UI display)"""
        role = self.get_user_role(plan_id, user_id)
        if role is None:
            return PlanPermissionSummary(
                plan_id=plan_id,
                role=None,
                can_view=self.can_view_plan(plan_id, user_id),
            )

        return PlanPermissionSummary(
            plan_id=plan_id,
            role=role.value,
            can_view=True,
            can_create_task=role_allows(role, ParticipantRole.MEMBER),
            can_modify_task=role_allows(role, ParticipantRole.MEMBER),
            can_delete_task=role_allows(role, ParticipantRole.ADMIN),
            can_modify_plan=role_allows(role, ParticipantRole.ADMIN),
            can_delete_plan=role_allows(role, ParticipantRole.OWNER),
            can_invite_members=role_allows(role, ParticipantRole.ADMIN),
            can_remove_members=role_allows(role, ParticipantRole.ADMIN),
            can_change_roles=role_allows(role, ParticipantRole.OWNER),
        )
