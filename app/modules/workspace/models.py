# Supabase tables: chapters + get_chapter_descendants()
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

chapters:
- id: uuid (primary key)
- name: text (not null)
- level: text (not null) - values: national, state, county, city
- parent_id: uuid (foreign key to chapters.id, nullable) - null only for national
- state_code: text (nullable)
- created_at: timestamp (default: now())

Chapters form a strict tree: national -> state -> county/city.

get_chapter_descendants(chapter_uuid uuid) returns table (id uuid, name text, level text):
  WITH RECURSIVE tree AS (
    SELECT id, name, level FROM chapters WHERE parent_id = chapter_uuid
    UNION ALL
    SELECT c.id, c.name, c.level FROM chapters c JOIN tree t ON c.parent_id = t.id
  )
  SELECT * FROM tree;
"""
