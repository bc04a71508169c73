from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime

from app.schemas.common import as_utc
from app.schemas.profile import ProfileResponse


class ConversationCreate(BaseModel):
  """Схема для начала личной переписки"""

  other_user_id: str = Field(min_length=1)


class ConversationResolved(BaseModel):
  """ID найденной или созданной переписки"""

  id: str


class LastMessage(BaseModel):
  """Последнее сообщение в списке переписок"""

  content: str
  created_at: datetime

  @field_validator("created_at")
  @classmethod
  def created_at_utc(cls, value: datetime) -> datetime:
    return as_utc(value)


class ConversationSummary(BaseModel):
  """Строка списка переписок пользователя"""

  id: str
  last_message_at: Optional[datetime] = None
  other_user: ProfileResponse
  last_message: Optional[LastMessage] = None
  unread_count: int = 0

  model_config = ConfigDict(from_attributes=True)

  @field_validator("last_message_at")
  @classmethod
  def last_message_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value)


class UnreadCountResponse(BaseModel):
  unread_count: int
