from fastapi import APIRouter, Depends, Response
from app.config import settings
from app.database.supabase_client import get_service_supabase
from app.modules.workspace.schemas import ChapterSelect, ChapterSelectResponse, ChapterSelectionResponse
from app.modules.workspace.service import ChapterService
from app.core.dependencies import get_current_team_member, get_selected_chapter_id, get_accessible_chapter_ids
from supabase import Client
from typing import Dict, List, Optional

router = APIRouter(prefix="/workspace", tags=["workspace"])


def get_chapter_service(supabase: Client = Depends(get_service_supabase)) -> ChapterService:
    return ChapterService(supabase)


@router.get("/chapter", response_model=ChapterSelectionResponse)
async def get_chapter_selection(
    selected: str = Depends(get_selected_chapter_id),
    chapter_ids: Optional[List[str]] = Depends(get_accessible_chapter_ids)
):
    """Current chapter switcher selection and the chapters it resolves to"""
    return ChapterSelectionResponse(selected=selected, chapter_ids=chapter_ids)


@router.post("/chapter", response_model=ChapterSelectResponse)
async def set_chapter(
    selection: ChapterSelect,
    response: Response,
    team_member: Dict = Depends(get_current_team_member),
    service: ChapterService = Depends(get_chapter_service)
):
    """Switch the workspace to a chapter (or 'all'); rejected outside the caller's jurisdiction"""
    chapter = service.validate_selection(team_member, selection.chapter_id)
    response.set_cookie(
        settings.chapter_scope_cookie_name,
        selection.chapter_id,
        max_age=settings.chapter_scope_cookie_max_age,
        path=settings.chapter_scope_cookie_path,
        samesite="lax",
    )
    return ChapterSelectResponse(ok=True, chapter=chapter)
