from sqlalchemy import Column, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from support_chat.db.session import Base


class Conversation(Base):
    __tablename__ = "conversations"

    # Session identifier chosen by the widget or generated by the relay
    id = Column(Text, primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    messages = relationship("Message", back_populates="conversation", order_by="Message.id")
