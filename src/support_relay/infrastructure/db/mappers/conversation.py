from __future__ import annotations

from support_relay.domain.entities.conversation import (
    Conversation,
    CustomerProfile,
    MessagePreview,
    Rating,
)
from support_relay.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    last_message = None
    if model.last_message_content is not None and model.last_message_at is not None:
        last_message = MessagePreview(
            content=model.last_message_content,
            sender=model.last_message_sender or "",
            created_at=model.last_message_at,
        )
    rating = None
    if model.rating_score is not None and model.rated_at is not None:
        rating = Rating(
            score=model.rating_score,
            feedback=model.rating_feedback,
            rated_at=model.rated_at,
        )
    return Conversation(
        id=model.id,
        session_id=model.session_id,
        status=model.status,
        created_at=model.created_at,
        updated_at=model.updated_at,
        last_activity_at=model.last_activity_at,
        customer=CustomerProfile(
            name=model.customer_name,
            phone=model.customer_phone,
            email=model.customer_email,
        ),
        customer_user_id=model.customer_user_id,
        owner_staff_id=model.owner_staff_id,
        owner_staff_name=model.owner_staff_name,
        ownership_version=model.ownership_version,
        taken_over_at=model.taken_over_at,
        closed_at=model.closed_at,
        last_message=last_message,
        unread_for_staff=model.unread_for_staff,
        message_count=model.message_count,
        customer_typing=model.customer_typing,
        staff_typing=model.staff_typing,
        rating=rating,
        tags=tuple(model.tags or ()),
        staff_notes=model.staff_notes,
        user_agent=model.user_agent,
    )


def entity_to_model(entity: Conversation) -> ConversationModel:
    preview = entity.last_message
    rating = entity.rating
    return ConversationModel(
        id=entity.id,
        session_id=entity.session_id,
        customer_user_id=entity.customer_user_id,
        customer_name=entity.customer.name,
        customer_phone=entity.customer.phone,
        customer_email=entity.customer.email,
        status=entity.status,
        owner_staff_id=entity.owner_staff_id,
        owner_staff_name=entity.owner_staff_name,
        ownership_version=entity.ownership_version,
        taken_over_at=entity.taken_over_at,
        closed_at=entity.closed_at,
        last_activity_at=entity.last_activity_at,
        last_message_content=preview.content if preview else None,
        last_message_sender=preview.sender if preview else None,
        last_message_at=preview.created_at if preview else None,
        unread_for_staff=entity.unread_for_staff,
        message_count=entity.message_count,
        customer_typing=entity.customer_typing,
        staff_typing=entity.staff_typing,
        rating_score=rating.score if rating else None,
        rating_feedback=rating.feedback if rating else None,
        rated_at=rating.rated_at if rating else None,
        tags=list(entity.tags),
        staff_notes=entity.staff_notes,
        user_agent=entity.user_agent,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )
