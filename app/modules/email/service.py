from supabase import Client
from app.modules.email.email_service import EmailService, wrap_email_template
from app.modules.email.models import RECIPIENT_TYPES
from app.modules.email.schemas import EmailTemplateResponse, EmailTemplateUpdate
from app.core.chapter_scope import get_chapter_descendant_ids, user_has_chapter_jurisdiction
from app.core.permissions import is_full_access
from app.config import settings
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from fastapi import HTTPException
import logging
import re
import time

logger = logging.getLogger(__name__)

_VARIABLE_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def render_template(text: str, variables: Dict[str, Any]) -> str:
    """Replace {key} placeholders; unknown keys are left as-is"""
    def replace(match):
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)
    return _VARIABLE_PLACEHOLDER.sub(replace, text or "")


class RecipientService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _active_members(self, chapter_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        query = self.supabase.table("members")\
            .select("id, email, first_name, last_name")\
            .eq("status", "active")
        if chapter_ids is not None:
            query = query.in_("chapter_id", chapter_ids)
        return query.execute().data or []

    def get_recipients(
        self,
        recipient_type: str,
        team_member: Dict[str, Any],
        chapter_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Active members addressed by recipient_type, within the admin's jurisdiction"""
        if recipient_type not in RECIPIENT_TYPES:
            raise HTTPException(status_code=400, detail="Invalid recipient type")

        roles = team_member.get("roles")
        try:
            if recipient_type == "all_members":
                if not is_full_access(roles):
                    raise HTTPException(status_code=403, detail="Not authorized to email all members")
                return self._active_members()

            if recipient_type == "chapter":
                if not chapter_id:
                    raise HTTPException(status_code=400, detail="Chapter ID is required")
                if not user_has_chapter_jurisdiction(team_member, chapter_id, self.supabase):
                    raise HTTPException(status_code=403, detail="You do not have access to this chapter")
                target_chapter_id = chapter_id
            else:
                target_chapter_id = team_member.get("chapter_id")
                if not target_chapter_id:
                    return []

            chapter_ids = [target_chapter_id] + get_chapter_descendant_ids(target_chapter_id, self.supabase)
            return self._active_members(chapter_ids)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error fetching recipients ({recipient_type}): {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch recipients")


class AutomatedEmailService:
    """Template-driven emails (reminders, announcements) with a delivery log"""

    def __init__(self, supabase: Client, email_service: Optional[EmailService] = None):
        self.supabase = supabase
        self.email_service = email_service

    def get_template(self, template_key: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("email_templates")\
                .select("*")\
                .eq("template_key", template_key)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error loading email template {template_key}: {e}")
            return None
        return result.data[0] if result.data else None

    def list_templates(self) -> List[EmailTemplateResponse]:
        try:
            result = self.supabase.table("email_templates")\
                .select("*")\
                .order("name")\
                .execute()
        except Exception as e:
            logger.error(f"Error listing email templates: {e}")
            raise HTTPException(status_code=500, detail="Failed to list email templates")
        return [EmailTemplateResponse(**t) for t in result.data or []]

    def update_template(self, template_key: str, template_data: EmailTemplateUpdate, updated_by: str) -> EmailTemplateResponse:
        """Edit subject, body or enabled flag; only fields present in the request change"""
        update_data = template_data.model_dump(exclude_unset=True)
        if any(value is None for value in update_data.values()):
            raise HTTPException(status_code=400, detail="Template fields cannot be null")
        update_data["updated_by"] = updated_by
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

        try:
            result = self.supabase.table("email_templates")\
                .update(update_data)\
                .eq("template_key", template_key)\
                .execute()
        except Exception as e:
            logger.error(f"Error updating email template {template_key}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update email template")

        if not result.data:
            raise HTTPException(status_code=404, detail="Template not found")
        logger.info(f"Email template {template_key} updated by {updated_by}")
        return EmailTemplateResponse(**result.data[0])

    def _log(self, template_key: str, recipient: Dict[str, Any], subject: Optional[str],
             status: str, related_id: Optional[str] = None, error_message: Optional[str] = None):
        try:
            self.supabase.table("automated_email_logs").insert({
                "template_key": template_key,
                "recipient_email": recipient.get("email"),
                "recipient_type": recipient.get("recipient_type", "member"),
                "recipient_id": recipient.get("id"),
                "related_id": related_id,
                "subject": subject,
                "status": status,
                "error_message": error_message,
            }).execute()
        except Exception as e:
            logger.warning(f"Could not write automated email log: {e}")

    def send_automated_email(
        self,
        template_key: str,
        recipient: Dict[str, Any],
        variables: Optional[Dict[str, Any]] = None,
        related_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Render and send one templated email.

        Returns {"success": bool, "skipped": bool, "error": str|None}. Never
        raises: failures are logged and written to automated_email_logs.
        """
        template = self.get_template(template_key)
        if not template:
            logger.warning(f"Email template {template_key} not found")
            return {"success": False, "skipped": True, "error": "Template not found"}
        if not template.get("enabled", True):
            logger.info(f"Email template {template_key} is disabled, skipping")
            return {"success": False, "skipped": True, "error": "Template disabled"}

        variables = {"first_name": recipient.get("first_name") or "Member", **(variables or {})}
        subject = render_template(template["subject"], variables)
        html_content = wrap_email_template(render_template(template["html_content"], variables))

        try:
            self.email_service.send_email(recipient["email"], subject, html_content)
        except Exception as e:
            self._log(template_key, recipient, subject, "failed", related_id, str(e))
            return {"success": False, "skipped": False, "error": str(e)}

        self._log(template_key, recipient, subject, "sent", related_id)
        return {"success": True, "skipped": False, "error": None}

    def has_reminder_been_sent(self, template_key: str, recipient_email: str, related_id: str) -> bool:
        try:
            result = self.supabase.table("automated_email_logs")\
                .select("id")\
                .eq("template_key", template_key)\
                .eq("recipient_email", recipient_email)\
                .eq("related_id", related_id)\
                .eq("status", "sent")\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error checking reminder log: {e}")
            return False
        return bool(result.data)

    def send_to_recipients(
        self,
        template_key: str,
        recipients: List[Dict[str, Any]],
        variables: Optional[Dict[str, Any]] = None,
        related_id: Optional[str] = None
    ) -> Dict[str, int]:
        """Send one at a time with a fixed delay between sends"""
        counts = {"sent": 0, "failed": 0, "skipped": 0}
        for index, recipient in enumerate(recipients):
            if index > 0 and settings.email_send_delay_seconds:
                time.sleep(settings.email_send_delay_seconds)
            result = self.send_automated_email(template_key, recipient, variables, related_id)
            if result["success"]:
                counts["sent"] += 1
            elif result["skipped"]:
                counts["skipped"] += 1
            else:
                counts["failed"] += 1
        return counts
