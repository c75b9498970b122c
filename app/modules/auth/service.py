import hashlib
import logging
import time
from supabase import Client
from app.modules.auth.schemas import LoginRequest, TokenResponse
from fastapi import HTTPException
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class SessionCache:
    """Resolved session users keyed by token hash, so parallel workspace requests hit Supabase Auth once"""

    def __init__(self, ttl_seconds: int = 60, max_size: int = 500):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._entries: Dict[str, tuple] = {}

    @staticmethod
    def _key(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(self._key(token))
        if not entry:
            return None
        user_data, expires_at = entry
        if time.monotonic() >= expires_at:
            self._entries.pop(self._key(token), None)
            return None
        return user_data

    def put(self, token: str, user_data: Dict[str, Any]):
        # Full cache: skip rather than evict
        if len(self._entries) < self.max_size:
            self._entries[self._key(token)] = (user_data, time.monotonic() + self.ttl_seconds)

    def drop(self, token: str):
        self._entries.pop(self._key(token), None)


session_cache = SessionCache()


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def login(self, login_data: LoginRequest) -> TokenResponse:
        """Sign a workspace user in with email and password"""
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })
        except Exception as e:
            message = str(e).lower()
            if "invalid" in message or "credentials" in message:
                raise HTTPException(status_code=401, detail="Invalid email or password")
            logger.error(f"Login failed for {login_data.email}: {e}")
            raise HTTPException(status_code=500, detail="Login failed")

        if not auth_response.user or not auth_response.session:
            raise HTTPException(status_code=401, detail="Invalid email or password")
        logger.info(f"User {auth_response.user.id} signed in")
        return TokenResponse(
            access_token=auth_response.session.access_token,
            user_id=auth_response.user.id,
            email=auth_response.user.email or login_data.email
        )

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Resolve an access token to {id, email, user_metadata}; 401 when it is not a live session"""
        cached = session_cache.get(token)
        if cached:
            return cached
        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            logger.debug(f"Token rejected by Supabase Auth: {e}")
            raise HTTPException(status_code=401, detail="Unauthorized")
        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Unauthorized")

        user = user_response.user
        user_data = {
            "id": user.id,
            "email": user.email,
            "user_metadata": user.user_metadata or {},
        }
        session_cache.put(token, user_data)
        return user_data

    def logout(self, token: str) -> bool:
        """End the Supabase session; the route clears the cookies"""
        session_cache.drop(token)
        try:
            self.supabase.auth.sign_out()
        except Exception as e:
            logger.warning(f"Supabase sign_out failed: {e}")
            return False
        return True


class TeamMemberService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_active_team_member(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Active team_members row for an auth user, or None"""
        try:
            result = self.supabase.table("team_members")\
                .select("*")\
                .eq("user_id", user_id)\
                .eq("active", True)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error loading team member for user {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load team member")
        if not result.data:
            return None
        team_member = result.data[0]
        team_member["roles"] = team_member.get("roles") or []
        return team_member

    def get_member_names(self, team_member_ids: list) -> Dict[str, Dict[str, Optional[str]]]:
        """team_member_id -> {first_name, last_name} through team_members.member_id -> members"""
        if not team_member_ids:
            return {}
        tm_result = self.supabase.table("team_members")\
            .select("id, member_id")\
            .in_("id", list(set(team_member_ids)))\
            .execute()
        team_members = tm_result.data or []
        member_ids = [tm["member_id"] for tm in team_members if tm.get("member_id")]
        members_by_id = {}
        if member_ids:
            members_result = self.supabase.table("members")\
                .select("id, first_name, last_name")\
                .in_("id", member_ids)\
                .execute()
            members_by_id = {m["id"]: m for m in (members_result.data or [])}
        names = {}
        for tm in team_members:
            member = members_by_id.get(tm.get("member_id")) or {}
            names[tm["id"]] = {
                "first_name": member.get("first_name"),
                "last_name": member.get("last_name"),
            }
        return names
