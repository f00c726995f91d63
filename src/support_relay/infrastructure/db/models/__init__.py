"""Import all models so Base.metadata sees every table."""
from support_relay.infrastructure.db.models.conversation import ConversationModel
from support_relay.infrastructure.db.models.message import MessageModel

__all__ = [
    "ConversationModel",
    "MessageModel",
]
