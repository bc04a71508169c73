from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint, Boolean, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import false
from app.models.base import Base, utcnow, new_uuid


class Message(Base):
  """
  Модель сообщений
  Сообщения не редактируются и не удаляются, меняется только is_read
  """

  __tablename__ = "messages"

  id = Column(String(36), primary_key=True, default=new_uuid)
  conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False)
  sender_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
  content = Column(Text, nullable=False)
  created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
  is_read = Column(Boolean, nullable=False, default=False, server_default=false())

  __table_args__ = (
    Index("ix_messages_conversation_created", "conversation_id", "created_at"),
  )

  # Связи
  sender = relationship("Profile")
  reactions = relationship(
    "MessageReaction",
    back_populates="message",
    cascade="all, delete-orphan",
  )


class MessageReaction(Base):
  """
  Реакция пользователя на сообщение
  Одна строка на (сообщение, пользователь, эмодзи) - наличие строки = реакция стоит
  """

  __tablename__ = "message_reactions"

  id = Column(String(36), primary_key=True, default=new_uuid)
  message_id = Column(String(36), ForeignKey("messages.id"), nullable=False, index=True)
  user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
  emoji = Column(String(16), nullable=False)
  created_at = Column(DateTime(timezone=True), default=utcnow)

  __table_args__ = (
    UniqueConstraint("message_id", "user_id", "emoji", name="uix_reaction_message_user_emoji"),
  )

  message = relationship("Message", back_populates="reactions")
