from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from dm_service.api.deps import PresenceDep, UoWFactoryDep, get_verifier
from dm_service.application.exceptions import AppError, AuthenticationError
from dm_service.application.ports.auth import TokenVerifier
from dm_service.application.uow import UoWFactory
from dm_service.config import settings
from dm_service.domain.entities.user import User
from dm_service.infrastructure.ws.protocol import (
    MarkAsReadData,
    SendMessageData,
    TypingData,
    WsInbound,
    WsOutbound,
)
from dm_service.services import message_service
from dm_service.services.presence_service import PresenceRegistry

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

CONNECTION_SUCCESS = "connection_success"
MESSAGE_SENT = "message_sent"
MESSAGE_ERROR = "message_error"
USER_TYPING = "user_typing"

CLOSE_AUTH_FAILED = 4001


def _bearer_token(websocket: WebSocket) -> str | None:
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


async def _authenticate(
    token: str | None,
    verifier: TokenVerifier,
    uow_factory: UoWFactory,
) -> User | None:
    if not token:
        return None
    try:
        principal = await verifier.verify(token)
    except AuthenticationError:
        logger.debug("WS auth failed", exc_info=True)
        return None

    async with uow_factory() as uow:
        user = await uow.users.get_by_id(principal.user_id)
    if user is None or not user.is_active:
        logger.info("WS rejected for missing or inactive user %d", principal.user_id)
        return None
    return user


async def _send(ws: WebSocket, event: str, data: dict[str, Any]) -> None:
    await ws.send_text(WsOutbound(type=event, data=data).model_dump_json())


@router.websocket("/ws")
async def ws_endpoint(
    websocket: WebSocket,
    presence: PresenceDep,
    uow_factory: UoWFactoryDep,
    verifier: TokenVerifier = Depends(get_verifier),
    token: str | None = Query(None),
) -> None:
    user = await _authenticate(token or _bearer_token(websocket), verifier, uow_factory)
    if user is None:
        await websocket.close(code=CLOSE_AUTH_FAILED, reason="Authentication failed")
        return

    await websocket.accept()
    await presence.register(user.id, websocket, username=user.username)
    await _send(
        websocket,
        CONNECTION_SUCCESS,
        {
            "user_id": user.id,
            "username": user.username,
            "connected_at": datetime.now(timezone.utc).isoformat(),
        },
    )

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{user.id}",
    )
    try:
        await _read_loop(websocket, user, presence, uow_factory)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for user %d", user.id)
    finally:
        heartbeat_task.cancel()
        await presence.unregister(user.id, websocket, username=user.username)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await _send(ws, "pong", {})
    except asyncio.CancelledError:
        pass
    except Exception:
        pass


async def _read_loop(
    ws: WebSocket,
    user: User,
    presence: PresenceRegistry,
    uow_factory: UoWFactory,
) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except PydanticValidationError:
            await _send(ws, "error", {"code": "invalid_payload"})
            continue

        if msg.type == "ping":
            await _send(ws, "pong", {})

        elif msg.type == "send_message":
            await _handle_send(ws, user, msg.data, presence, uow_factory)

        elif msg.type in ("typing_start", "typing_stop"):
            await _handle_typing(ws, user, msg.type == "typing_start", msg.data, presence)

        elif msg.type == "mark_as_read":
            await _handle_mark_read(ws, user, msg.data, presence, uow_factory)

        else:
            await _send(ws, "error", {"code": "unknown_type", "type": msg.type})


async def _handle_send(
    ws: WebSocket,
    user: User,
    data: dict[str, Any],
    presence: PresenceRegistry,
    uow_factory: UoWFactory,
) -> None:
    try:
        payload = SendMessageData.model_validate(data)
    except PydanticValidationError:
        await _send(ws, MESSAGE_ERROR, {"error": "Invalid message data"})
        return

    try:
        async with uow_factory() as uow:
            msg, conversation, pushed = await message_service.send_direct(
                user.id,
                payload.receiver_id,
                payload.content,
                payload.message_type,
                payload.metadata,
                uow,
                presence,
            )
    except AppError as exc:
        await _send(ws, MESSAGE_ERROR, {"error": exc.detail})
        return
    except Exception:
        logger.exception("Live send from user %d failed", user.id)
        await _send(ws, MESSAGE_ERROR, {"error": "Failed to send message"})
        return

    await _send(
        ws,
        MESSAGE_SENT,
        {
            "message": {
                "id": str(msg.id),
                "receiver_id": msg.receiver_id,
                "content": msg.content,
                "message_type": msg.message_type,
                "metadata": msg.metadata,
                "created_at": msg.created_at.isoformat(),
            },
            "conversation": {
                "id": str(conversation.id),
                "last_message": str(msg.id),
                "last_message_at": msg.created_at.isoformat(),
            },
            "delivered": pushed,
        },
    )


async def _handle_typing(
    ws: WebSocket,
    user: User,
    is_typing: bool,
    data: dict[str, Any],
    presence: PresenceRegistry,
) -> None:
    try:
        payload = TypingData.model_validate(data)
    except PydanticValidationError:
        await _send(ws, "error", {"code": "invalid_data"})
        return

    await presence.push(
        payload.receiver_id,
        USER_TYPING,
        {"user_id": user.id, "username": user.username, "is_typing": is_typing},
    )


async def _handle_mark_read(
    ws: WebSocket,
    user: User,
    data: dict[str, Any],
    presence: PresenceRegistry,
    uow_factory: UoWFactory,
) -> None:
    try:
        payload = MarkAsReadData.model_validate(data)
    except PydanticValidationError:
        await _send(ws, "error", {"code": "invalid_data"})
        return

    try:
        async with uow_factory() as uow:
            await message_service.mark_read(
                payload.message_id, user.id, payload.sender_id, uow, presence,
            )
    except AppError as exc:
        await _send(ws, "error", {"code": "mark_read_failed", "detail": exc.detail})
    except Exception:
        logger.exception("mark_as_read failed for user %d", user.id)
        await _send(ws, "error", {"code": "mark_read_failed"})
