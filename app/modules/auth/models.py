# Supabase Auth
# This module uses Supabase's built-in authentication system for token verification only.
# Sign-up, login and password handling stay with Supabase Auth and are not exposed here.

"""
Supabase Auth provides:
- auth.get_user() - Get current user from JWT token

The auth user id is stored as users.user_key; app.core.dependencies maps the
authenticated identity to the numeric users.id used by every service.
"""
