from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from app.database import get_db
from app.core.errors import http_error, TOGGLE_REACTION_FAILED
from app.dependencies.auth import get_current_user_id, get_optional_user_id
from app.schemas.message import MessageView
from app.schemas.reaction import ReactionCount, ReactionToggle, ReactionToggleResponse
from app.services.message_service import MessageService
from app.services.reaction_service import ReactionService

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/recent", response_model=List[MessageView])
async def get_recent_messages(
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """Последние сообщения во всех переписках пользователя"""

  return await MessageService.get_recent_messages(current_user_id, db)


@router.get("/{message_id}/reactions", response_model=List[ReactionCount])
async def get_reactions(
  message_id: str,
  viewer_id: Optional[str] = Depends(get_optional_user_id),
  db: AsyncSession = Depends(get_db),
):
  """
  Реакции под сообщением: эмодзи, количество, стоит ли реакция у текущего пользователя
  """

  return await ReactionService.get_reaction_counts(message_id, viewer_id, db)


@router.post("/{message_id}/reactions", response_model=ReactionToggleResponse)
async def toggle_reaction(
  message_id: str,
  data: ReactionToggle,
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """
  Поставить или снять реакцию
  """

  try:
    reacted = await ReactionService.toggle_reaction(
      message_id=message_id,
      user_id=current_user_id,
      emoji=data.emoji,
      db=db,
    )
  except ValueError as e:
    raise http_error(e)
  except SQLAlchemyError as e:
    logger.error(f"[toggle_reaction] Ошибка переключения реакции: {e}")
    raise HTTPException(
      status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
      detail=TOGGLE_REACTION_FAILED,
    )

  return ReactionToggleResponse(emoji=data.emoji, reacted=bool(reacted))
