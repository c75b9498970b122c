from fastapi import APIRouter, Depends, Response
from app.config import settings
from app.database.supabase_client import get_supabase
from app.modules.auth.schemas import LoginRequest, TokenResponse, MeResponse, TeamMemberSummary
from app.modules.auth.service import AuthService
from app.core.dependencies import get_access_token, get_current_user_id, get_current_team_member
from app.core.permissions import get_accessible_sections, get_highest_role
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service)
):
    """Login, get access token and start a cookie session"""
    token = service.login(login_data)
    response.set_cookie(
        settings.session_cookie_name,
        token.access_token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    return token


@router.post("/logout", status_code=200)
async def logout(
    response: Response,
    token: str = Depends(get_access_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and clear the session cookies"""
    service.logout(token)
    response.delete_cookie(settings.session_cookie_name)
    response.delete_cookie(settings.chapter_scope_cookie_name, path=settings.chapter_scope_cookie_path)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def get_me(
    user_data: Dict = Depends(get_current_user_id),
    team_member: Dict = Depends(get_current_team_member)
):
    """Current user, their team member record and the sections they can open (for frontend UI)."""
    roles = team_member.get("roles") or []
    return MeResponse(
        id=user_data["id"],
        email=user_data.get("email"),
        user_metadata=user_data.get("user_metadata") or {},
        team_member=TeamMemberSummary(**team_member),
        highest_role=get_highest_role(roles),
        sections=get_accessible_sections(roles),
    )
