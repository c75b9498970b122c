from fastapi import APIRouter, BackgroundTasks, Depends, Request
from app.config import settings
from app.database.supabase_client import get_service_supabase
from app.modules.messaging.schemas import (
    ChannelCreate, ChannelUpdate, ChannelResponse, ChannelDetailResponse, ChannelListItem,
    ChannelMemberResponse, ChannelMemberListItem, ChannelMemberRoleUpdate,
    MessageCreate, MessageUpdate, MessageResponse, MessagePage,
    NotificationSettings, NotificationSettingsUpdate,
    PushSubscriptionCreate, PushSubscriptionDelete,
    OkResponse, MessagingMeResponse, MessagingTeamMember
)
from app.modules.messaging.service import (
    ChannelService, ChannelMemberService, MessageService, PushSubscriptionService
)
from app.modules.messaging.push_service import notify_channel_members
from app.core.chapter_scope import ALL_CHAPTERS, chapter_in_scope, resolve_chapter_ids
from app.core.dependencies import get_current_team_member, get_effective_scope, get_accessible_chapter_ids
from app.core.permissions import ChapterScope
from app.core.rate_limit import limiter
from fastapi import HTTPException
from supabase import Client
from typing import List, Optional, Dict
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messaging", tags=["messaging"])


def get_channel_service(supabase: Client = Depends(get_service_supabase)) -> ChannelService:
    return ChannelService(supabase)


def get_channel_member_service(supabase: Client = Depends(get_service_supabase)) -> ChannelMemberService:
    return ChannelMemberService(supabase)


def get_message_service(supabase: Client = Depends(get_service_supabase)) -> MessageService:
    return MessageService(supabase)


def get_push_subscription_service(supabase: Client = Depends(get_service_supabase)) -> PushSubscriptionService:
    return PushSubscriptionService(supabase)


@router.get("/me", response_model=MessagingMeResponse)
async def get_messaging_me(team_member: Dict = Depends(get_current_team_member)):
    """Current team member identity for the messaging client"""
    return MessagingMeResponse(teamMember=MessagingTeamMember(**team_member))


# Channel endpoints
@router.get("/channels", response_model=List[ChannelListItem])
async def list_channels(
    chapter: Optional[str] = None,
    team_member: Dict = Depends(get_current_team_member),
    chapter_ids: Optional[List[str]] = Depends(get_accessible_chapter_ids),
    service: ChannelService = Depends(get_channel_service),
    supabase: Client = Depends(get_service_supabase)
):
    """List non-archived channels in the caller's chapters. Use chapter=<id> to narrow to that chapter and below."""
    if chapter and chapter != ALL_CHAPTERS:
        if not chapter_in_scope(chapter, chapter_ids):
            raise HTTPException(status_code=403, detail="Chapter is not in your accessible chapters")
        try:
            subtree = resolve_chapter_ids(ChapterScope(chapter_id=chapter, include_descendants=True), supabase)
        except Exception as e:
            logger.error(f"Error resolving chapter {chapter}: {e}")
            raise HTTPException(status_code=500, detail="Failed to resolve chapter scope")
        chapter_ids = subtree if chapter_ids is None else [c for c in subtree if c in chapter_ids]
    return service.list_channels(team_member["id"], chapter_ids)


@router.post("/channels", response_model=ChannelResponse, status_code=201)
async def create_channel(
    channel_data: ChannelCreate,
    team_member: Dict = Depends(get_current_team_member),
    scope: Optional[ChapterScope] = Depends(get_effective_scope),
    chapter_ids: Optional[List[str]] = Depends(get_accessible_chapter_ids),
    service: ChannelService = Depends(get_channel_service)
):
    """Create a channel (admins only); the creator becomes its first admin"""
    return service.create_channel(channel_data, team_member, scope, chapter_ids)


@router.get("/channels/{channel_id}", response_model=ChannelDetailResponse)
async def get_channel(
    channel_id: str,
    chapter_ids: Optional[List[str]] = Depends(get_accessible_chapter_ids),
    service: ChannelService = Depends(get_channel_service)
):
    """Get channel with member count"""
    return service.get_channel_detail(channel_id, chapter_ids)


@router.patch("/channels/{channel_id}", response_model=ChannelResponse)
async def update_channel(
    channel_id: str,
    channel_data: ChannelUpdate,
    team_member: Dict = Depends(get_current_team_member),
    chapter_ids: Optional[List[str]] = Depends(get_accessible_chapter_ids),
    service: ChannelService = Depends(get_channel_service)
):
    """Rename, describe or archive a channel (channel admins, or admins over its chapter)"""
    return service.update_channel(channel_id, channel_data, team_member, chapter_ids)


# Membership endpoints
@router.get("/channels/{channel_id}/members", response_model=List[ChannelMemberListItem])
async def list_members(
    channel_id: str,
    team_member: Dict = Depends(get_current_team_member),
    service: ChannelMemberService = Depends(get_channel_member_service)
):
    """List channel members (only if the caller is a member)"""
    return service.list_members(channel_id, team_member["id"])


@router.post("/channels/{channel_id}/members", response_model=ChannelMemberResponse, status_code=201)
async def join_channel(
    channel_id: str,
    team_member: Dict = Depends(get_current_team_member),
    chapter_ids: Optional[List[str]] = Depends(get_accessible_chapter_ids),
    service: ChannelMemberService = Depends(get_channel_member_service)
):
    """Join a channel in one of the caller's chapters"""
    return service.join_channel(channel_id, team_member, chapter_ids)


@router.delete("/channels/{channel_id}/members", response_model=OkResponse)
async def leave_channel(
    channel_id: str,
    team_member: Dict = Depends(get_current_team_member),
    service: ChannelMemberService = Depends(get_channel_member_service)
):
    """Leave a channel (the last admin cannot leave)"""
    service.leave_channel(channel_id, team_member["id"])
    return OkResponse()


@router.patch("/channels/{channel_id}/members/{team_member_id}", response_model=ChannelMemberResponse)
async def update_member_role(
    channel_id: str,
    team_member_id: str,
    role_data: ChannelMemberRoleUpdate,
    team_member: Dict = Depends(get_current_team_member),
    service: ChannelMemberService = Depends(get_channel_member_service)
):
    """Promote or demote a channel member (channel admins only)"""
    return service.update_member_role(channel_id, team_member["id"], team_member_id, role_data.role)


# Message endpoints
@router.get("/channels/{channel_id}/messages", response_model=MessagePage)
async def list_messages(
    channel_id: str,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    team_member: Dict = Depends(get_current_team_member),
    service: MessageService = Depends(get_message_service)
):
    """Messages older than cursor (a message id), newest first"""
    return service.list_messages(channel_id, team_member["id"], cursor=cursor, limit=limit)


@router.post("/channels/{channel_id}/messages", response_model=MessageResponse, status_code=201)
@limiter.limit(settings.message_send_rate_limit)
async def send_message(
    request: Request,
    channel_id: str,
    message_data: MessageCreate,
    background_tasks: BackgroundTasks,
    team_member: Dict = Depends(get_current_team_member),
    service: MessageService = Depends(get_message_service),
    supabase: Client = Depends(get_service_supabase)
):
    """Send a message; channel members are notified by web push in the background"""
    message = service.send_message(channel_id, team_member["id"], message_data.content)
    background_tasks.add_task(notify_channel_members, supabase, channel_id, team_member["id"], message.content)
    return message


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: str,
    message_data: MessageUpdate,
    team_member: Dict = Depends(get_current_team_member),
    service: MessageService = Depends(get_message_service)
):
    """Edit own message"""
    return service.edit_message(message_id, team_member["id"], message_data.content)


@router.delete("/messages/{message_id}", response_model=OkResponse)
async def delete_message(
    message_id: str,
    team_member: Dict = Depends(get_current_team_member),
    service: MessageService = Depends(get_message_service)
):
    """Delete own message (soft delete)"""
    service.delete_message(message_id, team_member["id"])
    return OkResponse()


# Read cursor and notification preferences
@router.post("/channels/{channel_id}/read", response_model=OkResponse)
async def mark_channel_read(
    channel_id: str,
    team_member: Dict = Depends(get_current_team_member),
    service: ChannelMemberService = Depends(get_channel_member_service)
):
    """Move the caller's read cursor to now"""
    service.mark_read(channel_id, team_member["id"])
    return OkResponse()


@router.get("/channels/{channel_id}/notifications", response_model=NotificationSettings)
async def get_notification_settings(
    channel_id: str,
    team_member: Dict = Depends(get_current_team_member),
    service: ChannelMemberService = Depends(get_channel_member_service)
):
    return service.get_notification_settings(channel_id, team_member["id"])


@router.put("/channels/{channel_id}/notifications", response_model=NotificationSettings)
async def set_notification_settings(
    channel_id: str,
    settings_data: NotificationSettingsUpdate,
    team_member: Dict = Depends(get_current_team_member),
    service: ChannelMemberService = Depends(get_channel_member_service)
):
    return service.set_notification_settings(channel_id, team_member["id"], settings_data.enabled)


# Push subscriptions
@router.post("/push-subscription", response_model=OkResponse)
async def subscribe_push(
    subscription: PushSubscriptionCreate,
    team_member: Dict = Depends(get_current_team_member),
    service: PushSubscriptionService = Depends(get_push_subscription_service)
):
    """Register (or refresh) this browser's push subscription"""
    service.subscribe(team_member["id"], subscription)
    return OkResponse()


@router.delete("/push-subscription", response_model=OkResponse)
async def unsubscribe_push(
    subscription: PushSubscriptionDelete,
    team_member: Dict = Depends(get_current_team_member),
    service: PushSubscriptionService = Depends(get_push_subscription_service)
):
    service.unsubscribe(team_member["id"], subscription.endpoint)
    return OkResponse()
