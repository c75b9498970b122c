from supabase import Client
from app.modules.messaging.models import CHANNEL_ROLES
from app.modules.messaging.schemas import (
    ChannelCreate, ChannelUpdate, ChannelResponse, ChannelDetailResponse, ChannelListItem,
    ChannelMemberResponse, ChannelMemberListItem,
    MessageResponse, MessageListItem, MessageSender, MessagePage,
    NotificationSettings, PushSubscriptionCreate
)
from app.modules.auth.service import TeamMemberService
from app.core.chapter_scope import apply_chapter_filter, chapter_in_scope
from app.core.permissions import ChapterScope, is_admin
from app.config import settings
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChannelService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_channel(self, channel_id: str) -> Optional[Dict[str, Any]]:
        """Raw channel row, or None"""
        try:
            result = self.supabase.table("channels")\
                .select("*")\
                .eq("id", channel_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error loading channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load channel")
        return result.data[0] if result.data else None

    def get_channel_or_404(self, channel_id: str) -> Dict[str, Any]:
        channel = self.get_channel(channel_id)
        if not channel:
            raise HTTPException(status_code=404, detail="Channel not found")
        return channel

    def list_channels(self, team_member_id: str, chapter_ids: Optional[List[str]]) -> List[ChannelListItem]:
        """Non-archived channels in the given chapters, annotated for the caller"""
        try:
            query = self.supabase.table("channels")\
                .select("id, name, description, chapter_id, is_archived, created_at")\
                .eq("is_archived", False)
            query = apply_chapter_filter(query, chapter_ids)
            result = query.order("name").execute()
            channels = result.data or []
            if not channels:
                return []

            members_result = self.supabase.table("channel_members")\
                .select("channel_id, team_member_id, last_read_at")\
                .in_("channel_id", [c["id"] for c in channels])\
                .execute()

            member_counts: Dict[str, int] = {}
            read_cursors: Dict[str, Optional[str]] = {}
            for m in members_result.data or []:
                member_counts[m["channel_id"]] = member_counts.get(m["channel_id"], 0) + 1
                if m["team_member_id"] == team_member_id:
                    read_cursors[m["channel_id"]] = m.get("last_read_at")

            return [
                ChannelListItem(
                    **channel,
                    member_count=member_counts.get(channel["id"], 0),
                    is_member=channel["id"] in read_cursors,
                    last_read_at=read_cursors.get(channel["id"]),
                )
                for channel in channels
            ]
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error listing channels: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch channels")

    def get_channel_detail(self, channel_id: str, chapter_ids: Optional[List[str]]) -> ChannelDetailResponse:
        """Channel with member count, if its chapter is visible to the caller"""
        channel = self.get_channel_or_404(channel_id)
        if not chapter_in_scope(channel["chapter_id"], chapter_ids):
            raise HTTPException(status_code=403, detail="Channel is not in your accessible chapters")
        try:
            count_result = self.supabase.table("channel_members")\
                .select("id", count="exact")\
                .eq("channel_id", channel_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error counting members of channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load channel")
        return ChannelDetailResponse(**channel, member_count=count_result.count or 0)

    def resolve_target_chapter(
        self,
        requested_chapter_id: Optional[str],
        scope: Optional[ChapterScope],
        chapter_ids: Optional[List[str]]
    ) -> str:
        """Chapter a new channel belongs to: the requested one if in scope, else the scope's single chapter"""
        if requested_chapter_id:
            if not chapter_in_scope(requested_chapter_id, chapter_ids):
                raise HTTPException(status_code=403, detail="Chapter is not in your accessible chapters")
            return requested_chapter_id
        if scope is None or not scope.chapter_id:
            raise HTTPException(status_code=400, detail="Select a chapter to create a channel")
        return scope.chapter_id

    def create_channel(
        self,
        channel_data: ChannelCreate,
        team_member: Dict[str, Any],
        scope: Optional[ChapterScope],
        chapter_ids: Optional[List[str]]
    ) -> ChannelResponse:
        """Create a channel with its creator as admin member, in one transaction"""
        if not is_admin(team_member.get("roles")):
            raise HTTPException(status_code=403, detail="Only admins can create channels")

        name = (channel_data.name or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Channel name is required")

        chapter_id = self.resolve_target_chapter(channel_data.chapter_id, scope, chapter_ids)
        description = (channel_data.description or "").strip() or None

        try:
            result = self.supabase.rpc("create_channel_with_admin", {
                "p_name": name,
                "p_description": description,
                "p_chapter_id": chapter_id,
                "p_created_by": team_member["id"]
            }).execute()
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise HTTPException(status_code=409, detail="A channel with this name already exists in this chapter")
            logger.error(f"Error creating channel: {e}")
            raise HTTPException(status_code=500, detail="Failed to create channel")

        row = result.data[0] if isinstance(result.data, list) and result.data else result.data
        if not row:
            raise HTTPException(status_code=500, detail="Failed to create channel")
        logger.info(f"Channel {row['id']} created in chapter {chapter_id} by {team_member['id']}")
        return ChannelResponse(**row)

    def update_channel(
        self,
        channel_id: str,
        channel_data: ChannelUpdate,
        team_member: Dict[str, Any],
        chapter_ids: Optional[List[str]]
    ) -> ChannelResponse:
        """Rename, describe or archive a channel (channel admins, or admins over its chapter)"""
        channel = self.get_channel_or_404(channel_id)
        members = ChannelMemberService(self.supabase)
        membership = members.get_membership(channel_id, team_member["id"])
        is_channel_admin = bool(membership) and membership.get("role") == "admin"
        if not is_channel_admin:
            if not is_admin(team_member.get("roles")):
                raise HTTPException(status_code=403, detail="Only channel or chapter admins can update channels")
            if not chapter_in_scope(channel["chapter_id"], chapter_ids):
                raise HTTPException(status_code=403, detail="Channel is not in your accessible chapters")

        provided = channel_data.model_fields_set
        update_data = {}
        if "name" in provided:
            name = (channel_data.name or "").strip()
            if not name:
                raise HTTPException(status_code=400, detail="Channel name cannot be empty")
            update_data["name"] = name
        if "description" in provided:
            update_data["description"] = (channel_data.description or "").strip() or None
        if "is_archived" in provided and channel_data.is_archived is not None:
            update_data["is_archived"] = bool(channel_data.is_archived)
            if channel.get("is_archived") and not update_data["is_archived"]:
                members.require_admin_present(channel_id, "Cannot unarchive a channel without an admin")

        if not update_data:
            raise HTTPException(status_code=400, detail="No fields to update")
        update_data["updated_at"] = _utcnow()

        try:
            result = self.supabase.table("channels")\
                .update(update_data)\
                .eq("id", channel_id)\
                .execute()
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise HTTPException(status_code=409, detail="A channel with this name already exists in this chapter")
            logger.error(f"Error updating channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update channel")

        if not result.data:
            raise HTTPException(status_code=404, detail="Channel not found")
        return ChannelResponse(**result.data[0])


class ChannelMemberService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_membership(self, channel_id: str, team_member_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("channel_members")\
                .select("*")\
                .eq("channel_id", channel_id)\
                .eq("team_member_id", team_member_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error loading membership of {team_member_id} in {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load channel membership")
        return result.data[0] if result.data else None

    def require_membership(self, channel_id: str, team_member_id: str, detail: str = "Not a member of this channel") -> Dict[str, Any]:
        """Membership row, or 403"""
        membership = self.get_membership(channel_id, team_member_id)
        if not membership:
            raise HTTPException(status_code=403, detail=detail)
        return membership

    def count_admins(self, channel_id: str) -> int:
        result = self.supabase.table("channel_members")\
            .select("id", count="exact")\
            .eq("channel_id", channel_id)\
            .eq("role", "admin")\
            .execute()
        return result.count or 0

    def require_admin_present(self, channel_id: str, detail: str):
        try:
            admin_count = self.count_admins(channel_id)
        except Exception as e:
            logger.error(f"Error counting admins of channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to check channel admins")
        if admin_count == 0:
            raise HTTPException(status_code=400, detail=detail)

    def _check_not_last_admin(self, channel: Dict[str, Any], membership: Dict[str, Any], detail: str):
        """A channel keeps at least one admin"""
        if membership.get("role") != "admin":
            return
        try:
            admin_count = self.count_admins(channel["id"])
        except Exception as e:
            logger.error(f"Error counting admins of channel {channel['id']}: {e}")
            raise HTTPException(status_code=500, detail="Failed to check channel admins")
        if admin_count <= 1:
            raise HTTPException(status_code=400, detail=detail)

    def join_channel(self, channel_id: str, team_member: Dict[str, Any], chapter_ids: Optional[List[str]]) -> ChannelMemberResponse:
        """Self-join a channel in the caller's accessible chapters"""
        channel = ChannelService(self.supabase).get_channel_or_404(channel_id)
        if channel.get("is_archived"):
            raise HTTPException(status_code=400, detail="Channel is archived")
        if not chapter_in_scope(channel["chapter_id"], chapter_ids):
            raise HTTPException(status_code=403, detail="Channel is not in your accessible chapters")
        if self.get_membership(channel_id, team_member["id"]):
            raise HTTPException(status_code=400, detail="Already a member of this channel")

        try:
            result = self.supabase.table("channel_members").insert({
                "channel_id": channel_id,
                "team_member_id": team_member["id"],
                "role": "member"
            }).execute()
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise HTTPException(status_code=400, detail="Already a member of this channel")
            logger.error(f"Error joining channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to join channel")

        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to join channel")
        return ChannelMemberResponse(**result.data[0])

    def leave_channel(self, channel_id: str, team_member_id: str) -> bool:
        """Remove the caller's own membership unless they are the last admin"""
        membership = self.get_membership(channel_id, team_member_id)
        if not membership:
            raise HTTPException(status_code=400, detail="Not a member of this channel")

        channel = ChannelService(self.supabase).get_channel_or_404(channel_id)
        self._check_not_last_admin(channel, membership, "Cannot leave, you are the last admin")

        try:
            self.supabase.table("channel_members")\
                .delete()\
                .eq("id", membership["id"])\
                .execute()
        except Exception as e:
            logger.error(f"Error leaving channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to leave channel")
        return True

    def list_members(self, channel_id: str, team_member_id: str) -> List[ChannelMemberListItem]:
        """Members of a channel with names (caller must be a member)"""
        self.require_membership(channel_id, team_member_id, "You must be a channel member to view members")
        try:
            result = self.supabase.table("channel_members")\
                .select("id, role, joined_at, team_member_id")\
                .eq("channel_id", channel_id)\
                .order("joined_at")\
                .execute()
            members = result.data or []
            names = TeamMemberService(self.supabase).get_member_names([m["team_member_id"] for m in members])
        except Exception as e:
            logger.error(f"Error listing members of channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch members")

        return [
            ChannelMemberListItem(**m, **names.get(m["team_member_id"], {}))
            for m in members
        ]

    def update_member_role(self, channel_id: str, actor_id: str, target_team_member_id: str, role: str) -> ChannelMemberResponse:
        """Promote or demote a member (channel admins only)"""
        if role not in CHANNEL_ROLES:
            raise HTTPException(status_code=400, detail="Role must be 'member' or 'admin'")

        actor = self.require_membership(channel_id, actor_id, "Only channel admins can change member roles")
        if actor.get("role") != "admin":
            raise HTTPException(status_code=403, detail="Only channel admins can change member roles")

        target = self.get_membership(channel_id, target_team_member_id)
        if not target:
            raise HTTPException(status_code=404, detail="Channel member not found")

        if target.get("role") == role:
            return ChannelMemberResponse(**target)

        if role == "member":
            channel = ChannelService(self.supabase).get_channel_or_404(channel_id)
            self._check_not_last_admin(channel, target, "Cannot demote the last admin")

        try:
            result = self.supabase.table("channel_members")\
                .update({"role": role})\
                .eq("id", target["id"])\
                .execute()
        except Exception as e:
            logger.error(f"Error updating role in channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update member role")

        if not result.data:
            raise HTTPException(status_code=404, detail="Channel member not found")
        return ChannelMemberResponse(**result.data[0])

    def mark_read(self, channel_id: str, team_member_id: str) -> bool:
        """Advance the caller's read cursor to now"""
        try:
            result = self.supabase.table("channel_members")\
                .update({"last_read_at": _utcnow()})\
                .eq("channel_id", channel_id)\
                .eq("team_member_id", team_member_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error marking channel {channel_id} read: {e}")
            raise HTTPException(status_code=500, detail="Failed to mark channel read")
        if not result.data:
            raise HTTPException(status_code=400, detail="Not a member of this channel")
        return True

    def get_notification_settings(self, channel_id: str, team_member_id: str) -> NotificationSettings:
        membership = self.get_membership(channel_id, team_member_id)
        return NotificationSettings(
            notifications_enabled=bool(membership and membership.get("notifications_enabled"))
        )

    def set_notification_settings(self, channel_id: str, team_member_id: str, enabled: bool) -> NotificationSettings:
        try:
            result = self.supabase.table("channel_members")\
                .update({"notifications_enabled": enabled})\
                .eq("channel_id", channel_id)\
                .eq("team_member_id", team_member_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error updating notifications for channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update notification settings")
        if not result.data:
            raise HTTPException(status_code=400, detail="Not a member of this channel")
        return NotificationSettings(notifications_enabled=result.data[0]["notifications_enabled"])


class MessageService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.members = ChannelMemberService(supabase)

    def get_message(self, message_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("messages")\
                .select("*")\
                .eq("id", message_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error loading message {message_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load message")
        return result.data[0] if result.data else None

    def _get_own_message(self, message_id: str, team_member_id: str, action: str) -> Dict[str, Any]:
        message = self.get_message(message_id)
        if not message:
            raise HTTPException(status_code=404, detail="Message not found")
        if message["sender_id"] != team_member_id:
            raise HTTPException(status_code=403, detail=f"Only the sender can {action} this message")
        return message

    def list_messages(
        self,
        channel_id: str,
        team_member_id: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None
    ) -> MessagePage:
        """
        Page of messages, newest first.

        cursor is a message id in this channel; only messages created strictly
        before it are returned. Deleted messages keep their metadata but have
        their content nulled.
        """
        self.members.require_membership(channel_id, team_member_id)

        page_size = limit if limit is not None else settings.messages_page_size
        page_size = max(1, min(page_size, settings.messages_max_page_size))

        try:
            query = self.supabase.table("messages")\
                .select("id, sender_id, content, is_edited, is_deleted, created_at, updated_at")\
                .eq("channel_id", channel_id)

            if cursor:
                cursor_result = self.supabase.table("messages")\
                    .select("created_at")\
                    .eq("id", cursor)\
                    .eq("channel_id", channel_id)\
                    .limit(1)\
                    .execute()
                if not cursor_result.data:
                    raise HTTPException(status_code=400, detail="Invalid cursor")
                query = query.lt("created_at", cursor_result.data[0]["created_at"])

            result = query.order("created_at", desc=True)\
                .limit(page_size)\
                .execute()
            messages = result.data or []
            names = TeamMemberService(self.supabase).get_member_names([m["sender_id"] for m in messages])
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error listing messages for channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch messages")

        items = [
            MessageListItem(
                id=m["id"],
                content=None if m.get("is_deleted") else m.get("content"),
                is_edited=bool(m.get("is_edited")),
                is_deleted=bool(m.get("is_deleted")),
                created_at=m["created_at"],
                updated_at=m.get("updated_at"),
                sender=MessageSender(team_member_id=m["sender_id"], **names.get(m["sender_id"], {})),
            )
            for m in messages
        ]
        return MessagePage(messages=items, has_more=len(items) == page_size)

    def send_message(self, channel_id: str, team_member_id: str, content: str) -> MessageResponse:
        """Post a message as a channel member"""
        self.members.require_membership(channel_id, team_member_id)

        text = (content or "").strip()
        if not text:
            raise HTTPException(status_code=400, detail="Message content is required")

        channel = ChannelService(self.supabase).get_channel_or_404(channel_id)
        if channel.get("is_archived"):
            raise HTTPException(status_code=400, detail="Channel is archived")

        try:
            result = self.supabase.table("messages").insert({
                "channel_id": channel_id,
                "sender_id": team_member_id,
                "content": text
            }).execute()
        except Exception as e:
            logger.error(f"Error sending message to channel {channel_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to send message")

        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to send message")
        return MessageResponse(**result.data[0])

    def edit_message(self, message_id: str, team_member_id: str, content: str) -> MessageResponse:
        message = self._get_own_message(message_id, team_member_id, "edit")
        if message.get("is_deleted"):
            raise HTTPException(status_code=400, detail="Cannot edit a deleted message")

        text = (content or "").strip()
        if not text:
            raise HTTPException(status_code=400, detail="Message content is required")

        try:
            result = self.supabase.table("messages")\
                .update({"content": text, "is_edited": True, "updated_at": _utcnow()})\
                .eq("id", message_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error editing message {message_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to edit message")

        if not result.data:
            raise HTTPException(status_code=404, detail="Message not found")
        return MessageResponse(**result.data[0])

    def delete_message(self, message_id: str, team_member_id: str) -> bool:
        """Soft delete: the row stays, is_deleted hides its content"""
        self._get_own_message(message_id, team_member_id, "delete")
        try:
            self.supabase.table("messages")\
                .update({"is_deleted": True, "updated_at": _utcnow()})\
                .eq("id", message_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error deleting message {message_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete message")
        return True


class PushSubscriptionService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def subscribe(self, team_member_id: str, subscription: PushSubscriptionCreate) -> bool:
        """Create or refresh a browser push subscription"""
        keys = subscription.keys
        if not subscription.endpoint or not keys or not keys.p256dh or not keys.auth:
            raise HTTPException(status_code=400, detail="Invalid subscription")
        try:
            self.supabase.table("push_subscriptions").upsert(
                {
                    "team_member_id": team_member_id,
                    "endpoint": subscription.endpoint,
                    "p256dh": keys.p256dh,
                    "auth": keys.auth,
                    "updated_at": _utcnow()
                },
                on_conflict="team_member_id,endpoint"
            ).execute()
        except Exception as e:
            logger.error(f"Error saving push subscription: {e}")
            raise HTTPException(status_code=500, detail="Failed to save subscription")
        return True

    def unsubscribe(self, team_member_id: str, endpoint: Optional[str]) -> bool:
        if not endpoint:
            raise HTTPException(status_code=400, detail="Endpoint required")
        try:
            self.supabase.table("push_subscriptions")\
                .delete()\
                .eq("team_member_id", team_member_id)\
                .eq("endpoint", endpoint)\
                .execute()
        except Exception as e:
            logger.error(f"Error deleting push subscription: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete subscription")
        return True
