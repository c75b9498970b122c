from supabase import Client
from app.modules.workspace.schemas import ChapterResponse
from app.core.chapter_scope import ALL_CHAPTERS, user_has_chapter_jurisdiction
from app.core.permissions import is_full_access
from typing import Dict, Any, Optional
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class ChapterService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_chapter(self, chapter_id: str) -> Optional[ChapterResponse]:
        """Get chapter by ID, None if it does not exist"""
        try:
            result = self.supabase.table("chapters")\
                .select("id, name, level, parent_id")\
                .eq("id", chapter_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error loading chapter {chapter_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load chapter")
        if not result.data:
            return None
        return ChapterResponse(**result.data[0])

    def validate_selection(self, team_member: Dict[str, Any], chapter_id: str) -> Optional[ChapterResponse]:
        """Check the team member may switch their workspace to chapter_id. Returns the chapter (None for 'all')."""
        if chapter_id == ALL_CHAPTERS:
            if not is_full_access(team_member.get("roles")):
                raise HTTPException(status_code=403, detail="Not authorized for all chapters")
            return None

        chapter = self.get_chapter(chapter_id)
        if not chapter:
            raise HTTPException(status_code=404, detail="Chapter not found")

        try:
            allowed = user_has_chapter_jurisdiction(team_member, chapter_id, self.supabase)
        except Exception as e:
            logger.error(f"Error checking chapter jurisdiction: {e}")
            raise HTTPException(status_code=500, detail="Failed to check chapter access")
        if not allowed:
            raise HTTPException(status_code=403, detail="Not authorized for this chapter")
        return chapter
