from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime

from app.schemas.common import as_utc


class MessageCreate(BaseModel):
  """Схема создания сообщения"""

  content: str = Field(min_length=1, max_length=4000)

  @field_validator("content")
  @classmethod
  def strip_content(cls, value: str) -> str:
    value = value.strip()
    if not value:
      raise ValueError("Пустое сообщение")
    return value


class MessageResponse(BaseModel):
  """Строка таблицы messages (так же уходит в realtime-событие)"""

  id: str
  conversation_id: str
  sender_id: str
  content: str
  created_at: datetime
  is_read: bool = False

  model_config = ConfigDict(from_attributes=True)

  @field_validator("created_at")
  @classmethod
  def created_at_utc(cls, value: datetime) -> datetime:
    return as_utc(value)


class MessageView(MessageResponse):
  """Сообщение в ленте переписки вместе с именем отправителя"""

  sender_name: str
