"""
Role resolver: maps a team member's flat role list to section access and
natural chapter scope.
"""

from typing import List, Optional, Union

from pydantic import BaseModel

from app.config.permissions_config import (
    ADMIN_ROLES,
    FULL_ACCESS_ROLES,
    GEOGRAPHIC_ADMIN_ROLES,
    ROLE_HIERARCHY,
    SECTION_MATRIX,
)


class ChapterScope(BaseModel):
    """A chapter the caller is scoped to, optionally with its whole subtree."""
    chapter_id: Optional[str] = None
    include_descendants: bool = False


def has_role(user_roles, required_roles: Union[str, List[str]]) -> bool:
    """True if any of user_roles is in required_roles"""
    if not user_roles or not isinstance(user_roles, list):
        return False
    if not isinstance(required_roles, list):
        required_roles = [required_roles]
    return any(role in required_roles for role in user_roles)


def can_access_section(user_roles, section: str) -> bool:
    if not user_roles or not isinstance(user_roles, list):
        return False
    if "super_admin" in user_roles:
        return True
    allowed_roles = SECTION_MATRIX.get(section)
    if not allowed_roles:
        return False
    return has_role(user_roles, allowed_roles)


def get_accessible_sections(user_roles) -> List[str]:
    if not user_roles or not isinstance(user_roles, list):
        return []
    return [section for section in SECTION_MATRIX if can_access_section(user_roles, section)]


def is_admin(user_roles) -> bool:
    return has_role(user_roles, ADMIN_ROLES)


def is_full_access(user_roles) -> bool:
    return has_role(user_roles, FULL_ACCESS_ROLES)


def get_highest_role(user_roles) -> Optional[str]:
    """Highest admin role for display, else the first role held"""
    if not user_roles or not isinstance(user_roles, list):
        return None
    for role in ROLE_HIERARCHY:
        if role in user_roles:
            return role
    return user_roles[0]


def get_chapter_scope(user_roles, user_chapter_id: Optional[str]) -> Optional[ChapterScope]:
    """
    Natural chapter scope for a set of roles.

    Returns None for unrestricted access (super/national admin), a scope over
    the chapter and its descendants for geographic admins, and a scope over
    just the member's own chapter for everyone else. A caller without any
    roles gets an empty scope (no chapter), which resolves to no chapters.
    """
    if not user_roles or not isinstance(user_roles, list):
        return ChapterScope(chapter_id=None)
    if has_role(user_roles, FULL_ACCESS_ROLES):
        return None
    if has_role(user_roles, GEOGRAPHIC_ADMIN_ROLES):
        return ChapterScope(chapter_id=user_chapter_id, include_descendants=True)
    return ChapterScope(chapter_id=user_chapter_id, include_descendants=False)
