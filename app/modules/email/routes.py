from fastapi import APIRouter, Depends, HTTPException, Request
from app.config import settings
from app.database.supabase_client import get_service_supabase
from app.modules.email.email_service import EmailService, wrap_email_template
from app.modules.email.schemas import (
    EmailSendRequest, EmailSendResponse, EmailTestRequest, EmailTestResponse,
    EmailTemplateResponse, EmailTemplateUpdate, TemplateSendRequest, TemplateSendResponse
)
from app.modules.email.service import AutomatedEmailService, RecipientService
from app.modules.email.validation import validate_recipients
from app.core.dependencies import require_admin, require_full_access, require_super_admin
from app.core.rate_limit import limiter
from supabase import Client
from typing import Any, Dict, List
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["email"])


def get_email_service() -> EmailService:
    if not EmailService.is_configured():
        raise HTTPException(status_code=500, detail="RESEND_API_KEY is not configured")
    return EmailService()


def get_recipient_service(supabase: Client = Depends(get_service_supabase)) -> RecipientService:
    return RecipientService(supabase)


def get_automated_email_service(
    supabase: Client = Depends(get_service_supabase),
    email_service: EmailService = Depends(get_email_service)
) -> AutomatedEmailService:
    return AutomatedEmailService(supabase, email_service)


def _require_subject_and_content(subject: str, content: str):
    if not subject.strip() or not content.strip():
        raise HTTPException(status_code=400, detail="Subject and content are required")


@router.post("/email/send", response_model=EmailSendResponse)
@limiter.limit(settings.email_send_rate_limit)
def send_email(
    request: Request,
    email_data: EmailSendRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    email_service: EmailService = Depends(get_email_service),
    recipient_service: RecipientService = Depends(get_recipient_service),
    supabase: Client = Depends(get_service_supabase)
):
    """Send a bulk email to members in the admin's jurisdiction"""
    _require_subject_and_content(email_data.subject, email_data.content)

    recipients = recipient_service.get_recipients(email_data.recipient_type, admin, email_data.chapter_id)
    if not recipients:
        raise HTTPException(status_code=400, detail="No recipients found for the selected criteria")

    valid, invalid = validate_recipients(recipients)
    if not valid:
        raise HTTPException(status_code=400, detail="No valid email addresses found")
    if invalid:
        logger.warning(f"Skipping {len(invalid)} recipient(s) with invalid emails")

    try:
        email_service.send_batch_emails(
            recipients=valid,
            subject=email_data.subject,
            html_content=wrap_email_template(email_data.content),
            from_name=email_data.sender_name,
            reply_to=email_data.reply_to,
        )
    except Exception as e:
        logger.error(f"Bulk email failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to send emails")

    try:
        supabase.table("email_logs").insert({
            "admin_id": admin["id"],
            "subject": email_data.subject,
            "recipient_type": email_data.recipient_type,
            "chapter_id": email_data.chapter_id,
            "status": "sent",
            "recipient_count": len(valid),
            "skipped_count": len(invalid),
        }).execute()
    except Exception as e:
        logger.warning(f"Could not write email log: {e}")

    logger.info(f"Admin {admin['id']} sent '{email_data.subject}' to {len(valid)} recipient(s)")
    return EmailSendResponse(
        success=True,
        message=f"Email sent to {len(valid)} recipient(s)",
        count=len(valid),
        skipped=len(invalid),
    )


@router.post("/email/test", response_model=EmailTestResponse)
@limiter.limit(settings.email_test_rate_limit)
def send_test_email(
    request: Request,
    email_data: EmailTestRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    email_service: EmailService = Depends(get_email_service)
):
    """Send a preview of an email to a single address"""
    _require_subject_and_content(email_data.subject, email_data.content)
    try:
        message_id = email_service.send_test_email(
            to=email_data.to,
            subject=email_data.subject,
            html_content=wrap_email_template(email_data.content),
            from_name=email_data.sender_name,
            reply_to=email_data.reply_to,
        )
    except Exception as e:
        logger.error(f"Test email failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to send test email")
    return EmailTestResponse(success=True, id=message_id)


@router.get("/email-templates", response_model=List[EmailTemplateResponse])
def list_email_templates(
    admin: Dict[str, Any] = Depends(require_full_access),
    supabase: Client = Depends(get_service_supabase)
):
    return AutomatedEmailService(supabase).list_templates()


@router.get("/email-templates/{template_key}", response_model=EmailTemplateResponse)
def get_email_template(
    template_key: str,
    admin: Dict[str, Any] = Depends(require_full_access),
    supabase: Client = Depends(get_service_supabase)
):
    template = AutomatedEmailService(supabase).get_template(template_key)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return EmailTemplateResponse(**template)


@router.put("/email-templates/{template_key}", response_model=EmailTemplateResponse)
def update_email_template(
    template_key: str,
    template_data: EmailTemplateUpdate,
    admin: Dict[str, Any] = Depends(require_super_admin),
    supabase: Client = Depends(get_service_supabase)
):
    """Edit a stored template (super admins only)"""
    return AutomatedEmailService(supabase).update_template(template_key, template_data, admin.get("user_id"))


@router.post("/email-templates/{template_key}/send", response_model=TemplateSendResponse)
@limiter.limit(settings.email_send_rate_limit)
def send_template_email(
    request: Request,
    template_key: str,
    send_data: TemplateSendRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    automated_service: AutomatedEmailService = Depends(get_automated_email_service),
    recipient_service: RecipientService = Depends(get_recipient_service)
):
    """Send a stored template to members in scope, one at a time"""
    template = automated_service.get_template(template_key)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    if not template.get("enabled", True):
        raise HTTPException(status_code=400, detail="Template is disabled")

    recipients = recipient_service.get_recipients(send_data.recipient_type, admin, send_data.chapter_id)
    if not recipients:
        raise HTTPException(status_code=400, detail="No recipients found for the selected criteria")

    valid, invalid = validate_recipients(recipients)
    counts = automated_service.send_to_recipients(
        template_key, valid, send_data.variables, send_data.related_id
    )
    counts["skipped"] += len(invalid)
    logger.info(
        f"Template {template_key} sent by admin {admin['id']}: "
        f"{counts['sent']} sent, {counts['failed']} failed, {counts['skipped']} skipped"
    )
    return TemplateSendResponse(**counts)
