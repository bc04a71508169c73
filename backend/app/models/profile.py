from sqlalchemy import Column, String, DateTime
from app.models.base import Base, utcnow, new_uuid


class Profile(Base):
  """
  Публичный профиль пользователя
  Таблицу ведет платформа, сервис сообщений только читает ее
  """

  __tablename__ = "profiles"

  id = Column(String(36), primary_key=True, default=new_uuid)
  full_name = Column(String(255), nullable=False)
  avatar_url = Column(String(1024), nullable=True)
  phone = Column(String(32), nullable=True)
  created_at = Column(DateTime(timezone=True), default=utcnow)
