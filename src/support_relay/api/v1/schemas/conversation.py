from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from support_relay.api.v1.schemas.common import PaginatedResponse
from support_relay.application.dto.views import ConversationView

ConversationPage = PaginatedResponse[ConversationView]


class StatsResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    active_chats: int
    waiting_chats: int
    today_chats: int
    unread_messages: int
