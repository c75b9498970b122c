# Supabase tables: channels, channel_members, messages, push_subscriptions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

channels:
- id: uuid (primary key)
- name: text (not null)
- description: text (nullable)
- chapter_id: uuid (foreign key to chapters.id, not null) - owning chapter
- is_archived: boolean (not null, default: false) - archived channels are never hard-deleted
- created_by: uuid (foreign key to team_members.id, nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (chapter_id, name)

channel_members:
- id: uuid (primary key)
- channel_id: uuid (foreign key to channels.id, not null)
- team_member_id: uuid (foreign key to team_members.id, not null)
- role: text (not null, default: 'member') - values: member, admin
- joined_at: timestamp (default: now())
- last_read_at: timestamp (nullable) - read cursor, only used for unread badges
- notifications_enabled: boolean (not null, default: true)
- unique constraint on (channel_id, team_member_id)

messages:
- id: uuid (primary key)
- channel_id: uuid (foreign key to channels.id, not null)
- sender_id: uuid (foreign key to team_members.id, not null)
- content: text (not null)
- is_edited: boolean (not null, default: false)
- is_deleted: boolean (not null, default: false) - soft delete, content hidden from callers
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- index on (channel_id, created_at desc)

push_subscriptions:
- id: uuid (primary key)
- team_member_id: uuid (foreign key to team_members.id, not null)
- endpoint: text (not null)
- p256dh: text (not null)
- auth: text (not null)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (team_member_id, endpoint)

Channel creation inserts the channel and the creator's admin membership in one
transaction through the create_channel_with_admin function
(sql/create_channel_with_admin.sql). Chapter subtrees come from
get_chapter_descendants (sql/get_chapter_descendants.sql).
"""

CHANNEL_ROLES = ("member", "admin")
