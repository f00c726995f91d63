from __future__ import annotations

from support_relay.domain.entities.message import Message
from support_relay.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        seq=model.seq,
        sender=model.sender,
        sender_display_name=model.sender_display_name,
        content=model.content,
        is_read=model.is_read,
        read_at=model.read_at,
        created_at=model.created_at,
    )


def entity_to_model(entity: Message) -> MessageModel:
    return MessageModel(
        id=entity.id,
        conversation_id=entity.conversation_id,
        seq=entity.seq,
        sender=entity.sender,
        sender_display_name=entity.sender_display_name,
        content=entity.content,
        is_read=entity.is_read,
        read_at=entity.read_at,
        created_at=entity.created_at,
    )
