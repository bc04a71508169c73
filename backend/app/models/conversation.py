from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.models.base import Base, utcnow, new_uuid


class Conversation(Base):
  """
  Модель переписки
  pair_key - отсортированная пара участников личного чата ("a:b"),
  у общего чата и старых записей он пустой
  """

  __tablename__ = "conversations"

  id = Column(String(36), primary_key=True, default=new_uuid)
  created_at = Column(DateTime(timezone=True), default=utcnow)
  last_message_at = Column(DateTime(timezone=True), default=utcnow, index=True)
  pair_key = Column(String(80), unique=True, nullable=True)

  # Связи
  participants = relationship(
    "ConversationParticipant",
    back_populates="conversation",
    cascade="all, delete-orphan",
  )


class ConversationParticipant(Base):
  """
  Участник переписки
  Хранит, когда пользователь последний раз открывал чат
  """

  __tablename__ = "conversation_participants"

  id = Column(String(36), primary_key=True, default=new_uuid)
  conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, index=True)
  user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
  joined_at = Column(DateTime(timezone=True), default=utcnow)
  last_read_at = Column(DateTime(timezone=True), nullable=True)

  __table_args__ = (
    UniqueConstraint("conversation_id", "user_id", name="uix_conversation_user"),
  )

  # Связи
  conversation = relationship("Conversation", back_populates="participants")
  profile = relationship("Profile")


def make_pair_key(user_a: str, user_b: str) -> str:
  """Ключ пары не зависит от того, кто начал переписку"""

  first, second = sorted([str(user_a), str(user_b)])
  return f"{first}:{second}"
