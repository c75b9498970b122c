from pydantic import BaseModel
from typing import Optional, List


class ChapterResponse(BaseModel):
    id: str
    name: str
    level: Optional[str] = None
    parent_id: Optional[str] = None


class ChapterSelect(BaseModel):
    chapter_id: str  # chapter uuid or "all"


class ChapterSelectResponse(BaseModel):
    ok: bool = True
    chapter: Optional[ChapterResponse] = None


class ChapterSelectionResponse(BaseModel):
    selected: str
    chapter_ids: Optional[List[str]] = None  # None means every chapter
