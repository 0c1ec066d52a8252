# Supabase tables: plans, plan_participants, tasks, task_records, task_reminders
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py / participant_service.py

"""
Expected Supabase table structure:

plans:
- id: bigint (primary key, identity)
- name: text (not null)
- icon: text (nullable)
- description: text (nullable)
- type: text (not null, default: 'habit') - values: habit, challenge
- is_public: boolean (not null, default: false)
- creator: bigint (foreign key to users.id, not null) - follows ownership transfer
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

plan_participants:
- id: bigint (primary key, identity)
- plan_id: bigint (foreign key to plans.id, not null, on delete cascade)
- user_id: bigint (foreign key to users.id, not null, on delete cascade)
- role: participant_role enum (not null, default: 'member') - values: viewer, member, admin, owner
- joined_at: timestamp (default: now())
- unique constraint on (plan_id, user_id)
- partial unique index on (plan_id) where role = 'owner' - exactly one owner per plan

tasks:
- id: bigint (primary key, identity)
- plan_id: bigint (foreign key to plans.id, not null)
- parent_task_id: bigint (foreign key to tasks.id, nullable) - arbitrary nesting

task_records:
- id, task_id, user_id, completion_date
- unique constraint on (task_id, user_id, completion_date)

task_reminders:
- id, task_id, reminder_time, days_of_week, is_active

Deleting a plan removes records -> reminders -> tasks -> participants -> plan
inside delete_plan_cascade.
"""
