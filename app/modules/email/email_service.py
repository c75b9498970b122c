import re
import time
import logging
from typing import Any, Dict, List, Optional

import resend

from app.config import settings

logger = logging.getLogger(__name__)

# Rich-text editor classes -> inline styles (mail clients drop <style> blocks and classes)
_EDITOR_CLASS_STYLES = {
    "ql-align-center": "text-align: center;",
    "ql-align-right": "text-align: right;",
    "ql-align-justify": "text-align: justify;",
    "ql-font-serif": "font-family: Georgia, Cambria, 'Times New Roman', Times, serif;",
    "ql-font-monospace": "font-family: 'SFMono-Regular', Consolas, 'Liberation Mono', Menlo, monospace;",
    "ql-size-small": "font-size: 13px;",
    "ql-size-large": "font-size: 20px;",
    "ql-size-huge": "font-size: 28px;",
}

_NAME_PLACEHOLDER = re.compile(r"\{\$name\}")

_TEST_BANNER = (
    '<div style="background-color: #FEF3C7; border: 2px solid #F59E0B; padding: 12px; '
    'margin-bottom: 20px; border-radius: 4px; text-align: center; color: #92400E; font-weight: bold;">'
    "TEST EMAIL - This is a preview of how your email will appear"
    "</div>"
)


def inline_editor_styles(html: str) -> str:
    for css_class, style in _EDITOR_CLASS_STYLES.items():
        html = html.replace(f'class="{css_class}"', f'style="{style}"')
    return html


def wrap_email_template(content: str, include_unsubscribe: bool = True) -> str:
    """Wrap body HTML in the standard email layout"""
    footer = ""
    if include_unsubscribe:
        footer = f"""<div class="footer">
    <p>{settings.email_default_sender_name}</p>
    <p><a href="{settings.app_url}/unsubscribe">Unsubscribe</a></p>
  </div>"""
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>
    body {{
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
      line-height: 1.6;
      color: #374151;
      max-width: 600px;
      margin: 0 auto;
      padding: 20px;
    }}
    .content {{ padding: 0 0 24px; }}
    .footer {{
      border-top: 1px solid #e5e7eb;
      padding-top: 20px;
      text-align: center;
      font-size: 12px;
      color: #9ca3af;
    }}
    a {{ color: #E25555; }}
  </style>
</head>
<body>
  <div class="content">
    {content}
  </div>
  {footer}
</body>
</html>"""


class EmailService:
    """Transactional and bulk email through Resend"""

    def __init__(self):
        if not settings.resend_api_key:
            raise ValueError("RESEND_API_KEY is not configured")
        resend.api_key = settings.resend_api_key

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.resend_api_key)

    @staticmethod
    def _from_address(from_name: Optional[str]) -> str:
        return f"{from_name or settings.email_default_sender_name} <{settings.resend_from_email}>"

    def send_email(
        self,
        to: str,
        subject: str,
        html_content: str,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None
    ) -> Optional[str]:
        """Send one email and return the provider message id"""
        params: Dict[str, Any] = {
            "from": self._from_address(from_name),
            "to": to,
            "subject": subject,
            "html": inline_editor_styles(html_content),
        }
        if reply_to:
            params["reply_to"] = reply_to
        try:
            response = resend.Emails.send(params)
        except Exception as e:
            logger.error(f"Resend error sending to {to}: {e}")
            raise
        return response.get("id") if isinstance(response, dict) else None

    def send_batch_emails(
        self,
        recipients: List[Dict[str, Any]],
        subject: str,
        html_content: str,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Send personalized copies to many recipients.

        Recipients are sent in chunks of email_batch_size with a fixed delay
        between chunks; {$name} is replaced by the recipient's first name.
        Nothing is retried: a failed chunk raises.
        """
        from_address = self._from_address(from_name)
        batch_size = settings.email_batch_size
        results = []
        for start in range(0, len(recipients), batch_size):
            if start > 0 and settings.email_send_delay_seconds:
                time.sleep(settings.email_send_delay_seconds)
            emails = []
            for recipient in recipients[start:start + batch_size]:
                personalized = _NAME_PLACEHOLDER.sub(recipient.get("first_name") or "Member", html_content)
                email: Dict[str, Any] = {
                    "from": from_address,
                    "to": recipient["email"],
                    "subject": subject,
                    "html": inline_editor_styles(personalized),
                }
                if reply_to:
                    email["reply_to"] = reply_to
                emails.append(email)
            try:
                response = resend.Batch.send(emails)
            except Exception as e:
                logger.error(f"Resend batch error: {e}")
                raise
            batch_results = response.get("data") if isinstance(response, dict) else response
            results.extend(batch_results or [])
        return results

    def send_test_email(
        self,
        to: str,
        subject: str,
        html_content: str,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None
    ) -> Optional[str]:
        return self.send_email(
            to=to,
            subject=f"[TEST] {subject}",
            html_content=_TEST_BANNER + html_content,
            from_name=from_name,
            reply_to=reply_to,
        )
