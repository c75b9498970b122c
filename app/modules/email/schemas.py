from pydantic import BaseModel, EmailStr
from typing import Optional, Dict
from datetime import datetime


class EmailSendRequest(BaseModel):
    subject: str
    content: str
    recipient_type: str  # all_members | chapter | my_chapter
    chapter_id: Optional[str] = None
    reply_to: Optional[EmailStr] = None
    sender_name: Optional[str] = None


class EmailSendResponse(BaseModel):
    success: bool
    message: str
    count: int
    skipped: int


class EmailTestRequest(BaseModel):
    to: EmailStr
    subject: str
    content: str
    reply_to: Optional[EmailStr] = None
    sender_name: Optional[str] = None


class EmailTestResponse(BaseModel):
    success: bool
    id: Optional[str] = None


class EmailTemplateResponse(BaseModel):
    id: str
    template_key: str
    name: str
    subject: str
    html_content: str
    enabled: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TemplateSendRequest(BaseModel):
    recipient_type: str
    chapter_id: Optional[str] = None
    variables: Dict[str, str] = {}
    related_id: Optional[str] = None


class TemplateSendResponse(BaseModel):
    sent: int
    failed: int
    skipped: int


class EmailTemplateUpdate(BaseModel):
    subject: Optional[str] = None
    html_content: Optional[str] = None
    enabled: Optional[bool] = None
