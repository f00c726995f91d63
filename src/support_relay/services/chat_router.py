"""Real-time event router between customer sessions and support staff.

Inbound frames are validated into typed commands and dispatched through one
handler table per participant kind. Every handler persists its state change
through a unit of work first and only then delivers outbound events, which
are best-effort: a participant that is not connected simply misses them.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from support_relay.application.dto.principal import Principal
from support_relay.application.dto.views import conversation_view, message_view
from support_relay.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from support_relay.application.ports.bus import Fanout
from support_relay.application.ports.clock import Clock, SystemClock
from support_relay.application.uow import UoWFactory
from support_relay.domain.entities.conversation import Conversation, CustomerProfile
from support_relay.domain.value_objects.enums import ConversationStatus, ParticipantKind
from support_relay.infrastructure.ws.protocol import (
    CUSTOMER_EVENTS,
    MAX_SESSION_ID_LENGTH,
    STAFF_EVENTS,
    STAFF_ONLY_EVENTS,
    CloseConversation,
    CustomerCommand,
    CustomerMessage,
    CustomerTyping,
    GetStats,
    ListConversations,
    MarkRead,
    Ping,
    RateConversation,
    Release,
    StaffCommand,
    StaffMessage,
    StaffTyping,
    TakeOver,
    WsInbound,
    command_classes,
    outbound,
    parse_command,
)
from support_relay.infrastructure.ws.registry import Connection, ConnectionRegistry
from support_relay.services import conversation_service, stats_service
from support_relay.services.auto_reply_scheduler import AutoReplyScheduler
from support_relay.services.auto_responder import AutoResponder

logger = logging.getLogger(__name__)

CUSTOMER_ERROR_MESSAGE = "Có lỗi xảy ra, vui lòng thử lại."
CONVERSATION_CLOSED_MESSAGE = "Cuộc trò chuyện đã kết thúc. Cảm ơn bạn đã liên hệ!"


@dataclass(slots=True)
class Participant:
    """One live connection and who is behind it."""

    kind: ParticipantKind
    participant_id: str
    principal: Principal
    connection: Connection

    @property
    def is_staff(self) -> bool:
        return self.kind == ParticipantKind.STAFF

    @property
    def display_name(self) -> str:
        return self.principal.display_name or ("Staff" if self.is_staff else "Guest")


Handler = Callable[[Participant, Any], Awaitable[None]]


def _check_exhaustive(union: Any, handlers: dict[type, Handler]) -> None:
    missing = set(command_classes(union)) - set(handlers)
    if missing:
        names = ", ".join(sorted(cls.__name__ for cls in missing))
        raise TypeError(f"No handler registered for: {names}")


def _error_code(exc: Exception) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ForbiddenError):
        return "forbidden"
    if isinstance(exc, ConflictError):
        return "conflict"
    if isinstance(exc, AppError):
        return "validation_failed"
    if isinstance(exc, SQLAlchemyError):
        return "persistence_failed"
    return "internal_error"


class ChatEventRouter:
    def __init__(
        self,
        *,
        registry: ConnectionRegistry,
        uow_factory: UoWFactory,
        responder: AutoResponder,
        scheduler: AutoReplyScheduler,
        fanout: Fanout | None = None,
        clock: Clock | None = None,
        bot_name: str = "Assistant",
        stats_timezone: str = "UTC",
    ) -> None:
        self._registry = registry
        self._fanout: Fanout = fanout or registry
        self._uow_factory = uow_factory
        self._responder = responder
        self._scheduler = scheduler
        self._clock = clock or SystemClock()
        self._bot_name = bot_name
        self._stats_timezone = stats_timezone

        self._handlers: dict[ParticipantKind, dict[type, Handler]] = {
            ParticipantKind.CUSTOMER: {
                CustomerMessage: self._on_customer_message,
                CustomerTyping: self._on_customer_typing,
                RateConversation: self._on_rate,
                Ping: self._on_ping,
            },
            ParticipantKind.STAFF: {
                TakeOver: self._on_take_over,
                StaffMessage: self._on_staff_message,
                StaffTyping: self._on_staff_typing,
                Release: self._on_release,
                CloseConversation: self._on_close,
                MarkRead: self._on_mark_read,
                ListConversations: self._on_list_conversations,
                GetStats: self._on_get_stats,
                Ping: self._on_ping,
            },
        }
        _check_exhaustive(CustomerCommand, self._handlers[ParticipantKind.CUSTOMER])
        _check_exhaustive(StaffCommand, self._handlers[ParticipantKind.STAFF])

    @property
    def scheduler(self) -> AutoReplyScheduler:
        return self._scheduler

    def attach_fanout(self, fanout: Fanout) -> None:
        """Route outbound deliveries through a cross-process fan-out."""
        self._fanout = fanout

    # -- connection lifecycle ---------------------------------------------------

    async def connect(
        self,
        connection: Connection,
        principal: Principal,
        *,
        session_id: str | None = None,
        user_agent: str | None = None,
    ) -> Participant:
        if principal.is_staff:
            participant = Participant(
                ParticipantKind.STAFF, principal.subject_id, principal, connection,  # type: ignore[arg-type]
            )
            await self._registry.register(participant.kind, participant.participant_id, connection)
            logger.info("Staff %s connected", participant.participant_id)
            await self._guard(participant, "connect", None, self._greet_staff(participant))
            return participant

        if session_id and len(session_id) > MAX_SESSION_ID_LENGTH:
            logger.debug("Discarding oversized session id (%d chars)", len(session_id))
            session_id = None
        generated = not session_id
        participant = Participant(
            ParticipantKind.CUSTOMER, session_id or uuid.uuid4().hex, principal, connection,
        )
        await self._registry.register(participant.kind, participant.participant_id, connection)
        logger.info("Customer session %s connected", participant.participant_id)
        if generated:
            await self._send_direct(participant, "session", {"sessionId": participant.participant_id})
        await self._guard(
            participant, "connect", None, self._greet_customer(participant, user_agent),
        )
        return participant

    async def disconnect(self, participant: Participant) -> None:
        removed = await self._registry.unregister(
            participant.kind, participant.participant_id, participant.connection,
        )
        logger.info("%s %s disconnected", participant.kind, participant.participant_id)
        if removed and participant.kind == ParticipantKind.CUSTOMER:
            await self._to_all_staff("customerLeft", {"sessionId": participant.participant_id})

    async def _greet_staff(self, participant: Participant) -> None:
        await self._send_direct(participant, "stats", await self._stats())
        await self._send_direct(participant, "conversationList", await self._conversation_list())

    async def _greet_customer(self, participant: Participant, user_agent: str | None) -> None:
        async with self._uow_factory() as uow:
            state = await conversation_service.open_session(
                participant.participant_id,
                participant.principal,
                self._responder.greeting(),
                self._bot_name,
                self._clock.now(),
                uow,
                user_agent=user_agent,
            )
        if state.created:
            await self._send_direct(participant, "message", message_view(state.messages[0]))
        else:
            await self._send_direct(
                participant, "history", {"messages": [message_view(m) for m in state.messages]},
            )
        await self._send_direct(
            participant, "agentOnlineStatus", {"online": self._registry.staff_online},
        )
        await self._to_all_staff(
            "customerJoined",
            {
                "sessionId": participant.participant_id,
                "conversation": conversation_view(state.conversation),
            },
        )

    # -- inbound ------------------------------------------------------------------

    async def handle_frame(self, participant: Participant, raw: str) -> None:
        try:
            frame = WsInbound.model_validate_json(raw)
        except PydanticValidationError:
            await self._reply_error(participant, "invalid_payload", "Malformed frame")
            return

        if participant.kind == ParticipantKind.CUSTOMER and frame.type in STAFF_ONLY_EVENTS:
            logger.debug(
                "Dropping staff-only event %r from customer %s",
                frame.type, participant.participant_id,
            )
            return

        known = STAFF_EVENTS if participant.is_staff else CUSTOMER_EVENTS
        if frame.type not in known:
            await self._reply_error(
                participant, "unknown_type", f"Unknown event type {frame.type!r}", action=frame.type,
            )
            return

        try:
            command = parse_command(participant.kind, frame)
        except PydanticValidationError as exc:
            details = "; ".join(err["msg"] for err in exc.errors())
            await self._reply_error(
                participant,
                "validation_failed",
                details,
                action=frame.type,
                conversation_id=frame.data.get("conversationId"),
            )
            return

        await self.dispatch(participant, command)

    async def dispatch(self, participant: Participant, command: Any) -> None:
        handler = self._handlers[participant.kind][type(command)]
        await self._guard(
            participant,
            command.type,
            getattr(command, "conversation_id", None),
            handler(participant, command),
        )

    async def _guard(
        self,
        participant: Participant,
        action: str,
        conversation_id: UUID | None,
        work: Awaitable[None],
    ) -> None:
        """Run one event's work; failures become an ``error`` event, never a crash."""
        try:
            await work
        except AppError as exc:
            logger.info("%s rejected for %s: %s", action, participant.participant_id, exc.detail)
            await self._reply_error(
                participant, _error_code(exc), exc.detail,
                action=action, conversation_id=conversation_id,
            )
        except Exception as exc:
            logger.exception("%s failed for %s", action, participant.participant_id)
            await self._reply_error(
                participant, _error_code(exc), "Internal error",
                action=action, conversation_id=conversation_id,
            )

    # -- customer handlers ----------------------------------------------------------

    async def _on_customer_message(self, participant: Participant, cmd: CustomerMessage) -> None:
        profile = None
        if cmd.customer_info is not None:
            info = cmd.customer_info
            profile = CustomerProfile(name=info.name or "", phone=info.phone, email=info.email)

        async with self._uow_factory() as uow:
            turn = await conversation_service.receive_customer_message(
                participant.participant_id,
                participant.principal,
                cmd.content,
                profile,
                self._clock.now(),
                uow,
            )
        conversation = turn.conversation
        if not conversation.is_owned:
            self._schedule_auto_reply(conversation, cmd.content)

        message = message_view(turn.message)
        await self._to_customer(conversation.session_id, "message", message)
        await self._to_all_staff(
            "newMessage",
            {
                "conversationId": str(conversation.id),
                "sessionId": conversation.session_id,
                "message": message,
                "conversation": conversation_view(conversation),
            },
        )
        await self._push_stats()
        if turn.reopened:
            await self._push_conversation_list()

    async def _on_customer_typing(self, participant: Participant, cmd: CustomerTyping) -> None:
        async with self._uow_factory() as uow:
            conversation = await conversation_service.set_customer_typing(
                participant.participant_id, cmd.is_typing, uow,
            )
        if conversation is None:
            return
        data = {"conversationId": str(conversation.id), "isTyping": cmd.is_typing}
        if conversation.owner_staff_id is not None:
            await self._to_staff(conversation.owner_staff_id, "customerTyping", data)
        else:
            await self._to_all_staff("customerTyping", data)

    async def _on_rate(self, participant: Participant, cmd: RateConversation) -> None:
        async with self._uow_factory() as uow:
            conversation, rating = await conversation_service.rate(
                participant.participant_id, cmd.score, cmd.feedback, self._clock.now(), uow,
            )
        await self._to_customer(conversation.session_id, "rated", {"success": True})
        await self._to_all_staff(
            "conversationUpdated",
            {
                "conversationId": str(conversation.id),
                "action": "rated",
                "rating": {
                    "score": rating.score,
                    "feedback": rating.feedback,
                    "ratedAt": rating.rated_at.isoformat(),
                },
            },
        )
        await self._push_stats()

    async def _on_ping(self, participant: Participant, cmd: Ping) -> None:
        await self._send_direct(participant, "pong", {})

    # -- staff handlers ---------------------------------------------------------------

    async def _on_take_over(self, participant: Participant, cmd: TakeOver) -> None:
        async with self._uow_factory() as uow:
            conversation = await conversation_service.take_over(
                cmd.conversation_id, participant.principal, self._clock.now(), uow,
            )
        self._scheduler.cancel(conversation.id)

        await self._to_customer(
            conversation.session_id, "staffTookOver", {"staffName": participant.display_name},
        )
        await self._to_all_staff("conversationUpdated", self._ownership_delta(conversation, "takenOver"))
        await self._push_stats()

    async def _on_release(self, participant: Participant, cmd: Release) -> None:
        async with self._uow_factory() as uow:
            conversation = await conversation_service.release(cmd.conversation_id, uow)

        await self._to_customer(conversation.session_id, "releasedToAutomated", {})
        await self._to_all_staff("conversationUpdated", self._ownership_delta(conversation, "released"))
        await self._push_stats()

    async def _on_close(self, participant: Participant, cmd: CloseConversation) -> None:
        async with self._uow_factory() as uow:
            conversation = await conversation_service.close(
                cmd.conversation_id,
                ConversationStatus(cmd.target_status),
                self._clock.now(),
                uow,
            )
        self._scheduler.cancel(conversation.id)

        await self._to_customer(
            conversation.session_id, "conversationClosed", {"message": CONVERSATION_CLOSED_MESSAGE},
        )
        await self._to_all_staff("conversationUpdated", self._ownership_delta(conversation, "closed"))
        await self._push_stats()
        await self._push_conversation_list()

    async def _on_staff_message(self, participant: Participant, cmd: StaffMessage) -> None:
        async with self._uow_factory() as uow:
            conversation, msg = await conversation_service.send_staff_message(
                cmd.conversation_id, participant.principal, cmd.content, self._clock.now(), uow,
            )
        message = message_view(msg)
        await self._to_customer(conversation.session_id, "message", message)
        await self._to_staff(
            participant.participant_id,
            "message",
            {"conversationId": str(conversation.id), "message": message},
        )
        await self._to_all_staff(
            "conversationUpdated",
            {
                "conversationId": str(conversation.id),
                "action": "message",
                "lastMessage": conversation_view(conversation)["lastMessage"],
            },
        )

    async def _on_staff_typing(self, participant: Participant, cmd: StaffTyping) -> None:
        async with self._uow_factory() as uow:
            conversation = await conversation_service.set_staff_typing(
                cmd.conversation_id, cmd.is_typing, uow,
            )
        await self._to_customer(conversation.session_id, "staffTyping", {"isTyping": cmd.is_typing})

    async def _on_mark_read(self, participant: Participant, cmd: MarkRead) -> None:
        async with self._uow_factory() as uow:
            changed = await conversation_service.mark_read(
                cmd.conversation_id, self._clock.now(), uow,
            )
        logger.debug("Marked %d messages read in %s", changed, cmd.conversation_id)
        await self._to_all_staff(
            "conversationUpdated",
            {"conversationId": str(cmd.conversation_id), "action": "read", "unreadForStaff": 0},
        )
        await self._push_stats()

    async def _on_list_conversations(self, participant: Participant, cmd: ListConversations) -> None:
        await self._send_direct(participant, "conversationList", await self._conversation_list())

    async def _on_get_stats(self, participant: Participant, cmd: GetStats) -> None:
        await self._send_direct(participant, "stats", await self._stats())

    # -- automated replies ------------------------------------------------------------------

    def _schedule_auto_reply(self, conversation: Conversation, text: str) -> None:
        conversation_id = conversation.id
        session_id = conversation.session_id
        version = conversation.ownership_version

        async def job() -> None:
            await self._deliver_automated_reply(conversation_id, session_id, version, text)

        self._scheduler.schedule(conversation_id, job)

    async def _deliver_automated_reply(
        self,
        conversation_id: UUID,
        session_id: str,
        expected_version: int,
        text: str,
    ) -> None:
        reply = self._responder.respond(text)
        async with self._uow_factory() as uow:
            msg = await conversation_service.append_automated_reply(
                conversation_id, expected_version, reply, self._bot_name, self._clock.now(), uow,
            )
        if msg is None:
            return
        message = message_view(msg)
        await self._to_customer(session_id, "message", message)
        await self._to_all_staff(
            "newMessage",
            {"conversationId": str(conversation_id), "sessionId": session_id, "message": message},
        )
        await self._push_stats()

    # -- outbound -----------------------------------------------------------------------

    @staticmethod
    def _ownership_delta(conversation: Conversation, action: str) -> dict[str, Any]:
        return {
            "conversationId": str(conversation.id),
            "action": action,
            "status": conversation.status,
            "ownerStaffId": conversation.owner_staff_id,
            "ownerStaffName": conversation.owner_staff_name,
        }

    async def _stats(self) -> dict[str, int]:
        async with self._uow_factory() as uow:
            stats = await stats_service.compute_stats(uow, self._clock.now(), self._stats_timezone)
        return stats.to_wire()

    async def _conversation_list(self) -> dict[str, Any]:
        async with self._uow_factory() as uow:
            conversations = await uow.conversations.list_open()
        return {"conversations": [conversation_view(c) for c in conversations]}

    async def _push_stats(self) -> None:
        await self._to_all_staff("stats", await self._stats())

    async def _push_conversation_list(self) -> None:
        await self._to_all_staff("conversationList", await self._conversation_list())

    async def _send_direct(self, participant: Participant, event_type: str, data: dict[str, Any]) -> None:
        try:
            await participant.connection.send_text(outbound(event_type, data))
        except Exception:
            logger.debug("Direct send to %s failed", participant.participant_id, exc_info=True)

    async def _reply_error(
        self,
        participant: Participant,
        code: str,
        detail: str,
        *,
        action: str | None = None,
        conversation_id: UUID | str | None = None,
    ) -> None:
        if not participant.is_staff:
            await self._send_direct(participant, "error", {"code": code, "message": CUSTOMER_ERROR_MESSAGE})
            return
        target = f" for conversation {conversation_id}" if conversation_id else ""
        await self._send_direct(
            participant,
            "error",
            {
                "code": code,
                "message": f"{action or 'request'} failed{target}: {detail}",
                "action": action,
                "conversationId": str(conversation_id) if conversation_id else None,
            },
        )

    async def _to_customer(self, session_id: str, event_type: str, data: dict[str, Any]) -> None:
        await self._deliver(self._fanout.send(ParticipantKind.CUSTOMER, session_id, event_type, data))

    async def _to_staff(self, staff_id: str, event_type: str, data: dict[str, Any]) -> None:
        await self._deliver(self._fanout.send(ParticipantKind.STAFF, staff_id, event_type, data))

    async def _to_all_staff(self, event_type: str, data: dict[str, Any]) -> None:
        await self._deliver(self._fanout.broadcast(ParticipantKind.STAFF, event_type, data))

    @staticmethod
    async def _deliver(delivery: Awaitable[Any]) -> None:
        try:
            await delivery
        except Exception:
            logger.warning("Outbound delivery failed", exc_info=True)
