# Supabase Auth + team_members
# This module uses Supabase's built-in authentication system for identity.
# Organizational access comes from the team_members table.

"""
Supabase Auth provides:
- auth.sign_in_with_password() - Authenticate users
- auth.get_user() - Get current user from JWT token
- auth.sign_out() - Logout users

Expected Supabase table structure:

team_members:
- id: uuid (primary key)
- user_id: uuid (foreign key to auth.users.id, not null)
- member_id: uuid (foreign key to members.id, nullable) - constituent profile
- chapter_id: uuid (foreign key to chapters.id, nullable)
- roles: text[] (not null, default: '{}') - e.g. {state_admin, event_coordinator}
- active: boolean (not null, default: true)
- created_at: timestamp (default: now())

members:
- id: uuid (primary key)
- first_name: text (nullable)
- last_name: text (nullable)
- email: text (nullable)
- chapter_id: uuid (foreign key to chapters.id, nullable)
- status: text (default: 'active')
"""
