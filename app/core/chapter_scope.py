"""
Chapter scope resolver.

Combines a team member's natural scope (from their roles) with the chapter
they selected in the workspace switcher, and resolves a scope to the concrete
list of chapter ids used to filter queries. Descendant lookup is delegated to
the get_chapter_descendants database function.
"""

import logging
from typing import Any, Dict, List, Optional

from supabase import Client

from app.config.permissions_config import GEOGRAPHIC_ADMIN_ROLES
from app.core.permissions import ChapterScope, get_chapter_scope, has_role, is_full_access

logger = logging.getLogger(__name__)

ALL_CHAPTERS = "all"


def get_chapter_descendant_ids(chapter_id: str, supabase: Client) -> List[str]:
    """Return ids of every chapter below chapter_id (not including it)."""
    result = supabase.rpc("get_chapter_descendants", {"chapter_uuid": chapter_id}).execute()
    return [d["id"] for d in (result.data or []) if d.get("id") and d["id"] != chapter_id]


def user_has_chapter_jurisdiction(team_member: Dict[str, Any], chapter_id: str, supabase: Client) -> bool:
    """True if the team member's roles cover chapter_id"""
    roles = team_member.get("roles") or []
    if is_full_access(roles):
        return True
    own_chapter_id = team_member.get("chapter_id")
    if not own_chapter_id or not chapter_id:
        return False
    if chapter_id == own_chapter_id:
        return True
    if has_role(roles, GEOGRAPHIC_ADMIN_ROLES):
        return chapter_id in get_chapter_descendant_ids(own_chapter_id, supabase)
    return False


def get_effective_chapter_scope(
    team_member: Dict[str, Any],
    selected_chapter_id: Optional[str],
    supabase: Client
) -> Optional[ChapterScope]:
    """
    Scope after applying the selected-chapter override.

    No selection (or "all") keeps the natural scope. Unrestricted admins may
    narrow to any chapter. Anyone else may only narrow to a chapter inside
    their own jurisdiction; a selection outside it is ignored.
    """
    natural_scope = get_chapter_scope(team_member.get("roles"), team_member.get("chapter_id"))

    if not selected_chapter_id or selected_chapter_id == ALL_CHAPTERS:
        return natural_scope

    if natural_scope is None:
        return ChapterScope(chapter_id=selected_chapter_id, include_descendants=True)

    if natural_scope.include_descendants:
        if user_has_chapter_jurisdiction(team_member, selected_chapter_id, supabase):
            return ChapterScope(chapter_id=selected_chapter_id, include_descendants=True)
        logger.warning(
            "Ignoring chapter selection %s outside jurisdiction of team member %s",
            selected_chapter_id, team_member.get("id")
        )

    return natural_scope


def resolve_chapter_ids(scope: Optional[ChapterScope], supabase: Client) -> Optional[List[str]]:
    """Chapter ids covered by scope, or None for no filter"""
    if scope is None:
        return None
    if not scope.chapter_id:
        return []
    if scope.include_descendants:
        return [scope.chapter_id] + get_chapter_descendant_ids(scope.chapter_id, supabase)
    return [scope.chapter_id]


def apply_chapter_filter(query, chapter_ids: Optional[List[str]], column_name: str = "chapter_id"):
    """Filter a query builder to chapter_ids. None leaves it unfiltered."""
    if chapter_ids is None:
        return query
    if len(chapter_ids) == 1:
        return query.eq(column_name, chapter_ids[0])
    return query.in_(column_name, chapter_ids)


def chapter_in_scope(chapter_id: Optional[str], chapter_ids: Optional[List[str]]) -> bool:
    if chapter_ids is None:
        return True
    return chapter_id in chapter_ids
