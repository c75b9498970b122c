"""
Core dependencies for route protection and chapter scoping
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.config import settings
from app.core.chapter_scope import get_effective_chapter_scope, resolve_chapter_ids
from app.core.permissions import ChapterScope, has_role, is_admin, is_full_access
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.auth.service import AuthService, TeamMemberService
from supabase import Client
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _get_request_cache(request: Request) -> Dict[str, Any]:
    """Return request-scoped cache for access data (effective scope, chapter_ids)."""
    if not hasattr(request.state, "access_cache"):
        request.state.access_cache = {}
    return request.state.access_cache


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_team_member_service(supabase: Client = Depends(get_service_supabase)) -> TeamMemberService:
    return TeamMemberService(supabase)


def get_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> str:
    """Bearer token from the Authorization header, falling back to the session cookie"""
    if credentials and credentials.credentials:
        return credentials.credentials
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
    return token


def get_current_user_id(
    request: Request,
    token: str = Depends(get_access_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    user_data = auth_service.get_current_user(token)
    # Rate limits are keyed by caller identity once known
    request.state.rate_limit_key = f"user:{user_data['id']}"
    return user_data


def get_current_team_member(
    user_data: dict = Depends(get_current_user_id),
    team_member_service: TeamMemberService = Depends(get_team_member_service)
) -> Dict[str, Any]:
    """Active team member for the authenticated user; 401 when there is none"""
    team_member = team_member_service.get_active_team_member(user_data["id"])
    if not team_member:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
    team_member["email"] = user_data.get("email")
    return team_member


def require_admin(team_member: Dict[str, Any] = Depends(get_current_team_member)) -> Dict[str, Any]:
    """Dependency to check the team member holds an admin role"""
    if not is_admin(team_member.get("roles")):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return team_member


def require_full_access(team_member: Dict[str, Any] = Depends(get_current_team_member)) -> Dict[str, Any]:
    """Dependency to check the team member is an unrestricted (super or national) admin"""
    if not is_full_access(team_member.get("roles")):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return team_member


def require_super_admin(team_member: Dict[str, Any] = Depends(get_current_team_member)) -> Dict[str, Any]:
    if not has_role(team_member.get("roles"), "super_admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required"
        )
    return team_member


def get_selected_chapter_id(request: Request) -> str:
    """Chapter chosen in the workspace switcher, or 'all'"""
    return request.cookies.get(settings.chapter_scope_cookie_name) or "all"


def get_effective_scope(
    request: Request,
    team_member: Dict[str, Any] = Depends(get_current_team_member),
    supabase: Client = Depends(get_service_supabase)
) -> Optional[ChapterScope]:
    cache = _get_request_cache(request)
    if "scope" not in cache:
        cache["scope"] = get_effective_chapter_scope(
            team_member, get_selected_chapter_id(request), supabase
        )
    return cache["scope"]


def get_accessible_chapter_ids(
    request: Request,
    scope: Optional[ChapterScope] = Depends(get_effective_scope),
    supabase: Client = Depends(get_service_supabase)
) -> Optional[List[str]]:
    """Chapter ids the caller may see in this session. None means unrestricted."""
    cache = _get_request_cache(request)
    if "chapter_ids" not in cache:
        try:
            cache["chapter_ids"] = resolve_chapter_ids(scope, supabase)
        except Exception as e:
            logger.error(f"Error resolving chapter scope: {e}")
            raise HTTPException(status_code=500, detail="Failed to resolve chapter scope")
    return cache["chapter_ids"]
