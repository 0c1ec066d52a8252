# Supabase tables: permissions, roles, role_permissions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

permissions:
- id: bigint (primary key, identity)
- name: text (not null, unique) - e.g., "Read plan"
- code: text (not null, unique) - canonical identifier, e.g., "plan:read", "user:delete"
- resource: text (not null) - e.g., "plan", "task", "user"
- action: text (not null) - e.g., "read", "create", "manage"
- description: text (nullable)
- created_at: timestamp (default: now())
- unique constraint on (resource, action)

roles:
- id: bigint (primary key, identity)
- name: text (not null, unique) - e.g., "Administrator"
- code: text (not null, unique) - e.g., "admin", "user", "guest"
- description: text (nullable)
- is_system: boolean (not null, default: false) - system roles are immutable and non-deletable
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

role_permissions:
- id: bigint (primary key, identity)
- role_id: bigint (foreign key to roles.id, not null, on delete cascade)
- permission_id: bigint (foreign key to permissions.id, not null, on delete cascade)
- created_at: timestamp (default: now())
- unique constraint on (role_id, permission_id)

A role's permission set is always replaced whole (delete all, insert all) by
the replace_role_permissions function, never diffed.
"""
