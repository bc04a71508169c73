import json
import enum
from datetime import datetime, date
from uuid import UUID
from typing import Any

from app.schemas.common import as_utc


class RealtimeJSONEncoder(json.JSONEncoder):
  """
  JSON encoder для WebSocket-кадров и payload'ов Redis/RabbitMQ
  Использование: json.dumps(data, cls=RealtimeJSONEncoder)
  """

  def default(self, obj: Any) -> Any:
    # 1. Дата и время (всегда в UTC, чтобы клиенты сортировали одинаково)
    if isinstance(obj, datetime):
      return as_utc(obj).isoformat()
    if isinstance(obj, date):
      return obj.isoformat()

    # 2. UUID
    if isinstance(obj, UUID):
      return str(obj)

    # 3. Enum (ChangeOp и т.п.)
    if isinstance(obj, enum.Enum):
      return obj.value

    # 4. Pydantic модель
    if hasattr(obj, "model_dump"):
      return obj.model_dump(mode="json")

    return super().default(obj)


def json_dumps(data: Any, **kwargs) -> str:
  """Сериализация с кастомным encoder"""

  kwargs.setdefault("ensure_ascii", False)    # Иврит и эмодзи без \u-экранирования
  kwargs.setdefault("separators", (",", ":"))
  return json.dumps(data, cls=RealtimeJSONEncoder, **kwargs)
