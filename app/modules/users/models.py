# Supabase tables: users, user_roles
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# Authentication is handled by Supabase Auth; users.user_key holds the auth.users id

"""
Expected Supabase table structure:

users:
- id: bigint (primary key, identity)
- user_key: uuid (unique, not null) - external identifier, equals auth.users.id
- phone: text (unique, nullable)
- nick_name: text (nullable)
- avatar: text (nullable)
- status: text (not null, default: 'active') - values: active, inactive, suspended, pending
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

user_roles:
- id: bigint (primary key, identity)
- user_id: bigint (foreign key to users.id, not null, on delete cascade)
- role_id: bigint (foreign key to roles.id, not null, on delete restrict)
- created_at: timestamp (default: now())
- unique constraint on (user_id, role_id)

Invariant: every user holds at least one role. Removal and replacement go
through remove_user_role / replace_user_roles, which enforce it under a row lock.
"""
