from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.database import get_db
from app.dependencies.auth import get_current_user_id
from app.schemas.profile import ProfileResponse
from app.services.profile_service import ProfileService


router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/search", response_model=List[ProfileResponse])
async def search_profiles(
  q: str = Query(default="", max_length=100),
  limit: int = Query(default=20, ge=1, le=50),
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """Поиск собеседника по имени (кроме самого себя)"""

  return await ProfileService.search_profiles(
    query=q,
    exclude_user_id=current_user_id,
    limit=limit,
    db=db,
  )
