"""Recipient address validation."""
from typing import Any, Dict, List, Tuple

from email_validator import validate_email, EmailNotValidError


def is_valid_email(email) -> bool:
    if not email or not isinstance(email, str):
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_recipients(recipients: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Split recipients into (valid, invalid); invalid entries carry a reason"""
    valid = []
    invalid = []
    for recipient in recipients:
        if not recipient or not recipient.get("email"):
            invalid.append({**(recipient or {}), "reason": "Missing email address"})
            continue
        if not is_valid_email(recipient["email"]):
            invalid.append({**recipient, "reason": "Invalid email format"})
            continue
        valid.append(recipient)
    return valid, invalid
