from .conversation import Conversation
from .message import Message, Sender

__all__ = ["Conversation", "Message", "Sender"]
