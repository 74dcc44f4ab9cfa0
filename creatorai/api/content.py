"""Generated content API: list and delete saved artifacts."""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query

from creatorai.core.auth import AuthenticatedUser, get_current_user
from creatorai.features.content.service import delete_content, list_content

router = APIRouter(prefix="/api/content", tags=["content"])


@router.get("")
def get_content(
    feature: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Dict:
    items = list_content(user.user_id, feature=feature, limit=limit)
    return {"items": [item.model_dump(mode="json") for item in items]}


@router.delete("/{content_id}")
def remove_content(content_id: int, user: AuthenticatedUser = Depends(get_current_user)) -> Dict:
    delete_content(user.user_id, content_id)
    return {"success": True}
