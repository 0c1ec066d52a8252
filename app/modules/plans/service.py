import logging
from datetime import datetime, timezone
from supabase import Client
from postgrest.exceptions import APIError
from app.core.exceptions import ForbiddenError, NotFoundError, raise_store_error
from app.database.supabase_client import first_row
from app.modules.plans.permissions import PlanPermissionService
from app.modules.plans.roles import ParticipantRole
from app.modules.plans.schemas import (
    PlanCreate, PlanUpdate, PlanResponse, PlanDeleteResponse,
    PlanDeletionStats, PlanStatsResponse
)
from typing import List, Optional

logger = logging.getLogger(__name__)


class PlanService:
    def __init__(self, supabase: Client, permissions: Optional[PlanPermissionService] = None):
        self.supabase = supabase
        self.permissions = permissions or PlanPermissionService(supabase)

    def _get_plan_row(self, plan_id: int) -> dict:
        plan = first_row(
            self.supabase.table("plans")
            .select("*")
            .eq("id", plan_id)
            .limit(1)
            .execute()
        )
        if not plan:
            raise NotFoundError("Plan not found")
        return plan

    def create_plan(self, creator_id: int, plan_data: PlanCreate) -> PlanResponse:
        """Create a plan with its creator as the single owner participant"""
        try:
            result = self.supabase.rpc("create_plan", {
                "p_creator": creator_id,
                "p_name": plan_data.name,
                "p_description": plan_data.description,
                "p_icon": plan_data.icon,
                "p_type": plan_data.type,
                "p_is_public": plan_data.is_public
            }).execute()
        except APIError as e:
            raise_store_error(e)

        plan = PlanResponse(**result.data)
        logger.info(f"Plan created: {plan.name} (ID: {plan.id}) by user {creator_id}")
        return plan

    def get_plan(self, plan_id: int, user_id: Optional[int] = None) -> PlanResponse:
        """Get plan by ID; private plans are visible to participants only"""
        plan = self._get_plan_row(plan_id)
        if not self.permissions.can_view_plan(plan_id, user_id):
            raise ForbiddenError("You do not have permission to view this plan")
        return PlanResponse(**plan)

    def list_user_plans(self, user_id: int) -> List[PlanResponse]:
        """Plans the user participates in, newest first"""
        memberships = self.supabase.table("plan_participants")\
            .select("plan_id")\
            .eq("user_id", user_id)\
            .execute()
        plan_ids = [m["plan_id"] for m in memberships.data] if memberships.data else []
        if not plan_ids:
            return []
        result = self.supabase.table("plans")\
            .select("*")\
            .in_("id", plan_ids)\
            .order("created_at", desc=True)\
            .execute()
        return [PlanResponse(**plan) for plan in result.data]

    def update_plan(self, plan_id: int, user_id: int, plan_data: PlanUpdate) -> PlanResponse:
        """Update plan (admin or above)"""
        self._get_plan_row(plan_id)
        self.permissions.ensure_permission(plan_id, user_id, ParticipantRole.ADMIN, "modify this plan")

        update_data = plan_data.model_dump(exclude_none=True)
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

        result = self.supabase.table("plans")\
            .update(update_data)\
            .eq("id", plan_id)\
            .execute()
        if not result.data:
            raise NotFoundError("Plan not found")

        return PlanResponse(**result.data[0])

    def delete_plan(self, plan_id: int, user_id: int) -> PlanDeleteResponse:
        """
        Delete a plan and everything under it (owner only).
        Records, reminders, tasks, participants and the plan go in one transaction.
        """
        self._get_plan_row(plan_id)

        if not self.permissions.can_delete_plan(plan_id, user_id):
            raise ForbiddenError("You do not have permission to delete this plan. Only the owner can delete.")

        try:
            result = self.supabase.rpc("delete_plan_cascade", {"p_plan_id": plan_id}).execute()
        except APIError as e:
            raise_store_error(e)

        stats = PlanDeletionStats(**result.data)
        logger.info(f"Plan {plan_id} deleted by user {user_id}: {stats.model_dump()}")

        return PlanDeleteResponse(
            plan_id=plan_id,
            deleted=stats,
            message="Plan and all related data deleted successfully"
        )

    def get_plan_stats(self, plan_id: int, user_id: Optional[int] = None) -> PlanStatsResponse:
        """Participant, task and record counts of a viewable plan"""
        self.get_plan(plan_id, user_id)

        participants = self.supabase.table("plan_participants")\
            .select("id", count="exact")\
            .eq("plan_id", plan_id)\
            .execute()
        tasks = self.supabase.table("tasks")\
            .select("id")\
            .eq("plan_id", plan_id)\
            .execute()
        task_ids = [t["id"] for t in tasks.data] if tasks.data else []

        record_count = 0
        if task_ids:
            records = self.supabase.table("task_records")\
                .select("id", count="exact")\
                .in_("task_id", task_ids)\
                .execute()
            record_count = records.count or 0

        return PlanStatsResponse(
            plan_id=plan_id,
            participant_count=participants.count or 0,
            task_count=len(task_ids),
            record_count=record_count
        )
