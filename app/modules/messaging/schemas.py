from pydantic import BaseModel, StrictBool
from typing import Optional, List
from datetime import datetime


class ChannelCreate(BaseModel):
    name: str
    description: Optional[str] = None
    chapter_id: Optional[str] = None


class ChannelUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_archived: Optional[bool] = None


class ChannelResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    chapter_id: str
    is_archived: bool = False
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChannelDetailResponse(ChannelResponse):
    member_count: int = 0


class ChannelListItem(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    chapter_id: str
    is_archived: bool = False
    created_at: datetime
    member_count: int
    is_member: bool
    last_read_at: Optional[datetime] = None


class ChannelMemberResponse(BaseModel):
    id: str
    channel_id: str
    team_member_id: str
    role: str
    joined_at: datetime
    last_read_at: Optional[datetime] = None
    notifications_enabled: bool = True

    class Config:
        from_attributes = True


class ChannelMemberListItem(BaseModel):
    id: str
    role: str
    joined_at: datetime
    team_member_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ChannelMemberRoleUpdate(BaseModel):
    role: str


class MessageCreate(BaseModel):
    content: str


class MessageUpdate(BaseModel):
    content: str


class MessageResponse(BaseModel):
    id: str
    channel_id: str
    sender_id: str
    content: Optional[str] = None
    is_edited: bool = False
    is_deleted: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageSender(BaseModel):
    team_member_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class MessageListItem(BaseModel):
    id: str
    content: Optional[str] = None
    is_edited: bool
    is_deleted: bool
    created_at: datetime
    updated_at: Optional[datetime] = None
    sender: MessageSender


class MessagePage(BaseModel):
    messages: List[MessageListItem]
    has_more: bool


class NotificationSettings(BaseModel):
    notifications_enabled: bool


class NotificationSettingsUpdate(BaseModel):
    enabled: StrictBool


class PushSubscriptionKeys(BaseModel):
    p256dh: Optional[str] = None
    auth: Optional[str] = None


class PushSubscriptionCreate(BaseModel):
    endpoint: Optional[str] = None
    keys: Optional[PushSubscriptionKeys] = None


class PushSubscriptionDelete(BaseModel):
    endpoint: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True


class MessagingTeamMember(BaseModel):
    id: str
    user_id: str
    chapter_id: Optional[str] = None
    roles: List[str] = []


class MessagingMeResponse(BaseModel):
    teamMember: MessagingTeamMember
