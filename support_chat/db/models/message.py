import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from support_chat.db.session import Base


class Sender(str, enum.Enum):
    USER = "user"
    ASSISTANT = "ai"


class Message(Base):
    __tablename__ = "messages"

    # Autoincrement id doubles as the tie-breaker for equal timestamps
    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Text, ForeignKey("conversations.id"), nullable=False, index=True)
    # user | ai
    sender = Column(
        Enum(Sender, name="message_sender", values_callable=lambda members: [m.value for m in members]),
        nullable=False,
    )
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
