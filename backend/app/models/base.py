import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
  """Базовый класс всех моделей"""


def utcnow() -> datetime:
  """Текущее время в UTC (с микросекундами, для стабильного порядка сообщений)"""

  return datetime.now(timezone.utc)


def new_uuid() -> str:
  return str(uuid.uuid4())
