"""
Seed Permissions and Roles Script
This script populates the permissions and roles tables using the config.
Safe to re-run: rows are matched by code and each role ends up with exactly
the configured permission set.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from app.config.permissions_config import PERMISSION_MATRIX
from app.database.supabase_client import SupabaseClient, first_row
from postgrest.exceptions import APIError
from supabase import Client
from typing import Dict, List
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_permissions(supabase: Client, permissions: List[Dict] = None) -> Dict[str, int]:
    """Seed permissions from config; returns a code -> id map"""
    logger.info("Seeding permissions...")

    permissions = permissions if permissions is not None else PERMISSION_MATRIX["permissions"]
    created_count = 0
    updated_count = 0
    ids_by_code = {}

    for perm in permissions:
        existing = first_row(
            supabase.table("permissions")
            .select("id")
            .eq("code", perm["code"])
            .limit(1)
            .execute()
        )

        if existing:
            supabase.table("permissions")\
                .update({
                    "name": perm["name"],
                    "resource": perm["resource"],
                    "action": perm["action"],
                    "description": perm["description"]
                })\
                .eq("id", existing["id"])\
                .execute()
            ids_by_code[perm["code"]] = existing["id"]
            updated_count += 1
            logger.debug(f"Updated permission: {perm['code']}")
        else:
            result = supabase.table("permissions").insert({
                "name": perm["name"],
                "code": perm["code"],
                "resource": perm["resource"],
                "action": perm["action"],
                "description": perm["description"]
            }).execute()
            ids_by_code[perm["code"]] = result.data[0]["id"]
            created_count += 1
            logger.debug(f"Created permission: {perm['code']}")

    logger.info(f"Permissions seeded: {created_count} created, {updated_count} updated")
    return ids_by_code


def seed_roles(supabase: Client, permission_ids: Dict[str, int], roles: List[Dict] = None) -> int:
    """Seed roles from config and synchronise their permission sets"""
    logger.info("Seeding roles...")

    roles = roles if roles is not None else PERMISSION_MATRIX["roles"]
    created_count = 0
    updated_count = 0

    for role in roles:
        existing = first_row(
            supabase.table("roles")
            .select("id")
            .eq("code", role["code"])
            .limit(1)
            .execute()
        )

        if existing:
            supabase.table("roles")\
                .update({
                    "name": role["name"],
                    "description": role["description"],
                    "is_system": role["is_system"]
                })\
                .eq("id", existing["id"])\
                .execute()
            role_id = existing["id"]
            updated_count += 1
            logger.debug(f"Updated role: {role['code']}")
        else:
            result = supabase.table("roles").insert({
                "name": role["name"],
                "code": role["code"],
                "description": role["description"],
                "is_system": role["is_system"]
            }).execute()
            role_id = result.data[0]["id"]
            created_count += 1
            logger.debug(f"Created role: {role['code']}")

        sync_role_permissions(supabase, role_id, role["code"], role["permissions"], permission_ids)

    logger.info(f"Roles seeded: {created_count} created, {updated_count} updated")
    return created_count + updated_count


def sync_role_permissions(
    supabase: Client,
    role_id: int,
    role_code: str,
    permission_codes: List[str],
    permission_ids: Dict[str, int]
):
    """Make the role's permission set exactly the configured one"""
    missing = [code for code in permission_codes if code not in permission_ids]
    if missing:
        logger.warning(f"Role {role_code} references unknown permissions: {missing}")

    ids = [permission_ids[code] for code in permission_codes if code in permission_ids]
    supabase.rpc("replace_role_permissions", {
        "p_role_id": role_id,
        "p_permission_ids": ids
    }).execute()
    logger.debug(f"Role {role_code} now has {len(ids)} permissions")


def main():
    """Main function to seed permissions and roles"""
    try:
        supabase = SupabaseClient.get_service_client()

        logger.info("Starting permissions and roles seeding...")

        # Seed permissions first
        permission_ids = seed_permissions(supabase)

        # Then seed roles (which depend on permissions)
        role_count = seed_roles(supabase, permission_ids)

        logger.info("Seeding completed successfully!")
        logger.info(f"Total: {len(permission_ids)} permissions, {role_count} roles processed")

    except APIError as e:
        logger.error(f"Error during seeding: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
