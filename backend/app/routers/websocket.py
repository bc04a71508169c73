import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import SEND_MESSAGE_FAILED, TOGGLE_REACTION_FAILED
from app.dependencies.websocket_auth import get_current_user_ws
from app.realtime.base import LiveView
from app.realtime.conversation_list import ConversationListView
from app.realtime.notifications import NotificationView
from app.realtime.reactions import ReactionView
from app.realtime.thread import MessageThread
from app.websocket.manager import manager

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/ws", tags=["websocket"])


FrameHandler = Callable[[dict], Awaitable[None]]


async def _pump(websocket: WebSocket, channel: str, view: LiveView):
  """События шины -> клиенту. Если представление упало, соединение закрываем"""

  try:
    await view.run()
  except Exception as e:
    logger.error(f"[ws] Поток событий {channel} остановлен с ошибкой: {e}")
    try:
      await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    except RuntimeError:
      # Клиент уже отключился
      pass


async def _serve(
  websocket: WebSocket,
  channel: str,
  user_id: str,
  view: LiveView,
  handle_frame: Optional[FrameHandler] = None,
):
  """
  Общий цикл realtime-соединения:
  1. Подключение и начальная загрузка представления
  2. События шины -> клиенту (фоновая задача)
  3. Кадры клиента -> handle_frame
  4. Отключение = отписка
  """

  await manager.connect(websocket, channel, user_id)

  try:
    try:
      await view.open()
    except ValueError as e:
      logger.warning(f"[ws] Пользователь {user_id} не допущен к {channel}: {e}")
      await manager.send_json(websocket, {"type": "error", "message": str(e)})
      await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
      return

    events = asyncio.create_task(_pump(websocket, channel, view))

    try:
      # Держим соединение открытым ДО отключения
      while True:
        raw_data = await websocket.receive_text()
        if handle_frame is None:
          continue

        try:
          data = json.loads(raw_data)
        except json.JSONDecodeError:
          await manager.send_json(websocket, {
            "type": "error",
            "message": "Неверный формат. Отправьте JSON",
          })
          continue

        if isinstance(data, dict):
          await handle_frame(data)

    except WebSocketDisconnect:
      pass

    finally:
      events.cancel()
      try:
        await events
      except asyncio.CancelledError:
        pass

  finally:
    await view.close()
    await manager.disconnect(websocket, channel)


def _push(websocket: WebSocket, frame_type: str, **extra: Any):
  """Колбэк представления: снимок -> кадр клиенту"""

  async def send(snapshot: Any):
    await manager.send_json(websocket, {"type": frame_type, **extra, "data": snapshot})

  return send


async def _reject(websocket: WebSocket):
  await websocket.close(code=status.WS_1008_POLICY_VIOLATION)


@router.websocket("/conversations")
async def conversations_socket(websocket: WebSocket):
  """Живой список переписок текущего пользователя"""

  user_id = await get_current_user_ws(websocket)
  if user_id is None:
    await _reject(websocket)
    return

  view = ConversationListView(user_id, on_change=_push(websocket, "conversations"))
  await _serve(websocket, f"list:{user_id}", user_id, view)


@router.websocket("/conversations/{conversation_id}")
async def thread_socket(websocket: WebSocket, conversation_id: str):
  """
  Живая лента переписки
  Клиент отправляет {"type": "message", "content": "..."}
  """

  user_id = await get_current_user_ws(websocket)
  if user_id is None:
    await _reject(websocket)
    return

  thread = MessageThread(
    conversation_id,
    user_id,
    on_change=_push(websocket, "messages", conversation_id=conversation_id),
  )

  async def handle_frame(data: dict):
    if data.get("type") != "message":
      return      # игнорируем неизвестные типы

    try:
      await thread.send(str(data.get("content") or ""))
    except ValueError as e:
      await manager.send_json(websocket, {"type": "error", "message": str(e)})
    except SQLAlchemyError as e:
      logger.error(f"[ws] Ошибка сохранения сообщения в {conversation_id}: {e}")
      await manager.send_json(websocket, {"type": "error", "message": SEND_MESSAGE_FAILED})

  await _serve(websocket, f"thread:{conversation_id}", user_id, thread, handle_frame)


@router.websocket("/messages/{message_id}/reactions")
async def reactions_socket(websocket: WebSocket, message_id: str):
  """
  Живые реакции под сообщением
  Клиент отправляет {"type": "toggle", "emoji": "👍"}
  """

  user_id = await get_current_user_ws(websocket)
  if user_id is None:
    await _reject(websocket)
    return

  view = ReactionView(
    message_id,
    user_id,
    on_change=_push(websocket, "reactions", message_id=message_id),
  )

  async def handle_frame(data: dict):
    if data.get("type") != "toggle":
      return

    try:
      await view.toggle(str(data.get("emoji") or ""))
    except ValueError as e:
      await manager.send_json(websocket, {"type": "error", "message": str(e)})
    except SQLAlchemyError as e:
      logger.error(f"[ws] Ошибка переключения реакции на {message_id}: {e}")
      await manager.send_json(websocket, {"type": "error", "message": TOGGLE_REACTION_FAILED})

  await _serve(websocket, f"reactions:{message_id}", user_id, view, handle_frame)


@router.websocket("/notifications")
async def notifications_socket(websocket: WebSocket):
  """Счетчик непрочитанных для плавающего виджета чата"""

  user_id = await get_current_user_ws(websocket)
  if user_id is None:
    await _reject(websocket)
    return

  view = NotificationView(user_id, on_change=_push(websocket, "unread"))
  await _serve(websocket, f"notifications:{user_id}", user_id, view)
