from fastapi import APIRouter, Depends, HTTPException

from app.security import get_current_user_id
from app.services import link_preview as preview_service
from schemas.feed import LinkPreviewData

router = APIRouter()


@router.get("", response_model=LinkPreviewData)
async def get_link_preview(url: str = "", user_id: str = Depends(get_current_user_id)):
    try:
        preview = await preview_service.fetch_preview(url)
    except preview_service.LinkPreviewError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return LinkPreviewData(**preview)
