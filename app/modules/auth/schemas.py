from pydantic import BaseModel, EmailStr
from typing import Optional, List, Dict, Any


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class TeamMemberSummary(BaseModel):
    id: str
    user_id: str
    member_id: Optional[str] = None
    chapter_id: Optional[str] = None
    roles: List[str] = []


class MeResponse(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = {}
    team_member: TeamMemberSummary
    highest_role: Optional[str] = None
    sections: List[str]
