from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from app.database import get_db
from app.core.errors import http_error, START_CONVERSATION_FAILED, SEND_MESSAGE_FAILED
from app.dependencies.auth import get_current_user_id
from app.schemas.conversation import (
  ConversationCreate,
  ConversationResolved,
  ConversationSummary,
  UnreadCountResponse,
)
from app.schemas.message import MessageCreate, MessageResponse, MessageView
from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("/", response_model=List[ConversationSummary])
async def get_conversations(
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """
  Список личных переписок текущего пользователя
  (собеседник, последнее сообщение, непрочитанные)
  """

  return await ConversationService.list_conversations(current_user_id, db)


@router.post("/", response_model=ConversationResolved)
async def start_conversation(
  data: ConversationCreate,
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """
  Найти или создать личную переписку с пользователем
  """

  try:
    conversation_id = await ConversationService.resolve_private_conversation(
      user_id=current_user_id,
      other_user_id=data.other_user_id,
      db=db,
    )
  except ValueError as e:
    raise http_error(e)
  except SQLAlchemyError as e:
    logger.error(f"[start_conversation] Ошибка создания переписки: {e}")
    raise HTTPException(
      status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
      detail=START_CONVERSATION_FAILED,
    )

  return ConversationResolved(id=conversation_id)


@router.get("/unread", response_model=UnreadCountResponse)
async def get_unread_count(
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """Сколько всего непрочитанных сообщений у пользователя"""

  unread_count = await ConversationService.get_unread_total(current_user_id, db)
  return UnreadCountResponse(unread_count=unread_count)


@router.post("/global/join", status_code=status.HTTP_204_NO_CONTENT)
async def join_global_conversation(
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """Вступление в общий чат (повторный вызов ничего не меняет)"""

  await ConversationService.join_global_conversation(current_user_id, db)


@router.get("/{conversation_id}/messages", response_model=List[MessageView])
async def open_conversation(
  conversation_id: str,
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """
  Лента переписки по возрастанию времени
  Заодно отмечает чужие сообщения прочитанными
  """

  try:
    return await MessageService.open_thread(
      conversation_id=conversation_id,
      viewer_id=current_user_id,
      db=db,
    )
  except ValueError as e:
    raise http_error(e)


@router.post(
  "/{conversation_id}/messages",
  response_model=MessageResponse,
  status_code=status.HTTP_201_CREATED,
)
async def send_message(
  conversation_id: str,
  message_data: MessageCreate,
  current_user_id: str = Depends(get_current_user_id),
  db: AsyncSession = Depends(get_db),
):
  """
  Отправка сообщения в переписку
  """

  try:
    message = await MessageService.send_message(
      conversation_id=conversation_id,
      sender_id=current_user_id,
      content=message_data.content,
      db=db,
    )
  except ValueError as e:
    raise http_error(e)
  except SQLAlchemyError:
    raise HTTPException(
      status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
      detail=SEND_MESSAGE_FAILED,
    )

  return message
