# Supabase tables: email_templates, automated_email_logs, email_logs
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

email_templates:
- id: uuid (primary key)
- template_key: text (not null, unique) - e.g. "event_reminder", "new_poll"
- name: text (not null)
- subject: text (not null) - may contain {variable} placeholders
- html_content: text (not null) - may contain {variable} placeholders
- enabled: boolean (not null, default: true)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- updated_by: uuid (nullable) - auth user id of the last editor

automated_email_logs:
- id: uuid (primary key)
- template_key: text (not null)
- recipient_email: text (not null)
- recipient_type: text (nullable) - e.g. member, team_member
- recipient_id: uuid (nullable)
- related_id: uuid (nullable) - event/poll/task the email is about
- subject: text (nullable)
- status: text (not null) - values: sent, failed
- error_message: text (nullable)
- created_at: timestamp (default: now())

email_logs:
- id: uuid (primary key)
- admin_id: uuid (foreign key to team_members.id)
- subject: text (not null)
- recipient_type: text (not null)
- chapter_id: uuid (nullable)
- status: text (not null)
- recipient_count: integer (not null)
- skipped_count: integer (not null, default: 0)
- created_at: timestamp (default: now())
"""

RECIPIENT_TYPES = ("all_members", "chapter", "my_chapter")
