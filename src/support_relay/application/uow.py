from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from support_relay.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from support_relay.application.repositories.message import MessageReader, MessageWriter


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    messages: MessageReader
    messages_w: MessageWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
