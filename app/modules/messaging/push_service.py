"""Web push fan-out for new channel messages."""
import json
import logging
from typing import Any, Dict, List

from pywebpush import webpush, WebPushException
from supabase import Client

from app.config import settings
from app.modules.auth.service import TeamMemberService

logger = logging.getLogger(__name__)

# Push service answers for subscriptions that no longer exist
GONE_STATUS_CODES = (404, 410)


class PushNotificationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.vapid_public_key and settings.vapid_private_key)

    @staticmethod
    def build_payload(channel_id: str, channel_name: str, sender_name: str, message_content: str) -> Dict[str, Any]:
        limit = settings.push_preview_length
        preview = message_content[:limit] + "..." if len(message_content) > limit else message_content
        return {
            "title": f"#{channel_name or 'channel'}",
            "body": f"{sender_name}: {preview}",
            "data": {
                "url": f"/workspace/messaging?channel={channel_id}",
                "channelId": channel_id,
            },
            "tag": f"channel-{channel_id}",
        }

    def _get_sender_name(self, sender_team_member_id: str) -> str:
        names = TeamMemberService(self.supabase).get_member_names([sender_team_member_id])
        name = names.get(sender_team_member_id) or {}
        full_name = " ".join(part for part in (name.get("first_name"), name.get("last_name")) if part)
        return full_name or "Someone"

    def get_recipient_subscriptions(self, channel_id: str, sender_team_member_id: str) -> List[Dict[str, Any]]:
        """Subscriptions of members with notifications on, excluding the sender"""
        members_result = self.supabase.table("channel_members")\
            .select("team_member_id")\
            .eq("channel_id", channel_id)\
            .eq("notifications_enabled", True)\
            .neq("team_member_id", sender_team_member_id)\
            .execute()
        member_ids = [m["team_member_id"] for m in (members_result.data or [])]
        if not member_ids:
            return []
        subs_result = self.supabase.table("push_subscriptions")\
            .select("id, team_member_id, endpoint, p256dh, auth")\
            .in_("team_member_id", member_ids)\
            .execute()
        return subs_result.data or []

    def _send(self, subscription: Dict[str, Any], payload: str) -> bool:
        """Deliver one notification. Returns False when the subscription is gone."""
        try:
            webpush(
                subscription_info={
                    "endpoint": subscription["endpoint"],
                    "keys": {"p256dh": subscription["p256dh"], "auth": subscription["auth"]},
                },
                data=payload,
                vapid_private_key=settings.vapid_private_key,
                vapid_claims={"sub": settings.vapid_subject},
            )
        except WebPushException as e:
            status_code = getattr(e.response, "status_code", None)
            if status_code in GONE_STATUS_CODES:
                return False
            logger.error(f"Push failed for subscription {subscription['id']}: {status_code} {e}")
        except Exception as e:
            logger.error(f"Push failed for subscription {subscription['id']}: {e}")
        return True

    def send_message_notifications(self, channel_id: str, sender_team_member_id: str, message_content: str) -> int:
        """Notify channel members of a new message. Returns the number of stale subscriptions removed."""
        if not self.is_configured():
            logger.warning("VAPID keys not configured, skipping push notifications")
            return 0

        subscriptions = self.get_recipient_subscriptions(channel_id, sender_team_member_id)
        if not subscriptions:
            return 0

        channel_result = self.supabase.table("channels")\
            .select("name")\
            .eq("id", channel_id)\
            .limit(1)\
            .execute()
        channel_name = channel_result.data[0]["name"] if channel_result.data else None

        payload = json.dumps(self.build_payload(
            channel_id, channel_name, self._get_sender_name(sender_team_member_id), message_content
        ))

        stale_ids = [sub["id"] for sub in subscriptions if not self._send(sub, payload)]
        if stale_ids:
            self.supabase.table("push_subscriptions")\
                .delete()\
                .in_("id", stale_ids)\
                .execute()
            logger.info(f"Removed {len(stale_ids)} expired push subscription(s)")
        return len(stale_ids)


def notify_channel_members(supabase: Client, channel_id: str, sender_team_member_id: str, message_content: str):
    """Background task entry point. Failures are logged, never raised."""
    try:
        PushNotificationService(supabase).send_message_notifications(
            channel_id, sender_team_member_id, message_content
        )
    except Exception as e:
        logger.error(f"Push notification error for channel {channel_id}: {e}")
