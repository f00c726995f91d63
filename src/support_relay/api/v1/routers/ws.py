from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from support_relay.application.dto.principal import Principal
from support_relay.application.ports.auth import TokenVerifier
from support_relay.infrastructure.ws.protocol import MAX_SESSION_ID_LENGTH, outbound
from support_relay.services.chat_router import ChatEventRouter, Participant

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


async def _authenticate(verifier: TokenVerifier, token: str | None) -> Principal:
    if not token:
        return Principal.anonymous()
    try:
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed, continuing as anonymous customer", exc_info=True)
        return Principal.anonymous()


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str | None = Query(None),
    session_id: str | None = Query(None, max_length=MAX_SESSION_ID_LENGTH),
) -> None:
    state = websocket.app.state
    chat_router: ChatEventRouter = state.chat_router
    principal = await _authenticate(state.verifier, token)

    await websocket.accept()
    participant = await chat_router.connect(
        websocket,
        principal,
        session_id=session_id,
        user_agent=websocket.headers.get("user-agent"),
    )

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket, state.settings.WS_HEARTBEAT_SECONDS),
        name=f"ws-heartbeat-{participant.participant_id}",
    )
    try:
        await _read_loop(websocket, chat_router, participant)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", participant.participant_id)
    finally:
        heartbeat_task.cancel()
        await chat_router.disconnect(participant)


async def _heartbeat(ws: WebSocket, interval: float) -> None:
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text(outbound("pong"))
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Heartbeat stopped", exc_info=True)


async def _read_loop(ws: WebSocket, chat_router: ChatEventRouter, participant: Participant) -> None:
    while True:
        raw = await ws.receive_text()
        await chat_router.handle_frame(participant, raw)
