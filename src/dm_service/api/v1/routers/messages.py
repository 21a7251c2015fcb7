from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Body, Query

from dm_service.api.deps import CurrentPrincipal, PresenceDep, UoWDep
from dm_service.api.v1.schemas.conversation import ConversationResponse, ParticipantResponse
from dm_service.api.v1.schemas.message import (
    MarkReadRequest,
    MessageHistoryResponse,
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
    UnreadCountResponse,
)
from dm_service.services import conversation_state, message_service

router = APIRouter(prefix="/api/v1/messages", tags=["messages"])


@router.post("/send", response_model=SendMessageResponse, status_code=201)
async def send_message(
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    presence: PresenceDep,
) -> SendMessageResponse:
    msg, conversation, pushed = await message_service.send_direct(
        principal.user_id,
        body.receiver_id,
        body.content,
        body.message_type,
        body.metadata,
        uow,
        presence,
    )
    return SendMessageResponse(
        message=MessageResponse.from_entity(msg, principal.user_id),
        conversation_id=conversation.id,
        pushed=pushed,
    )


@router.get("/history/{user_id}", response_model=MessageHistoryResponse)
async def message_history(
    user_id: int,
    principal: CurrentPrincipal,
    uow: UoWDep,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
) -> MessageHistoryResponse:
    page = await message_service.history(principal.user_id, user_id, cursor, limit, uow)
    other = page.other_user
    return MessageHistoryResponse(
        other_user=ParticipantResponse(
            id=other.id, username=other.username, last_seen=other.last_seen,
        ),
        messages=[MessageResponse.from_entity(m, principal.user_id) for m in page.messages],
        total=page.total,
        next_cursor=page.next_cursor,
    )


@router.get("/conversations", response_model=list[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(50, ge=1, le=200),
) -> list[ConversationResponse]:
    conversations = await message_service.list_conversations(principal, limit, uow)
    others = [c.other_participant(principal.user_id) for c in conversations]
    users = {u.id: u for u in await uow.users.list_by_ids(others)} if others else {}

    result: list[ConversationResponse] = []
    for conv in conversations:
        other_id = conv.other_participant(principal.user_id)
        other = users.get(other_id)
        result.append(
            ConversationResponse(
                id=conv.id,
                other_participant=ParticipantResponse(
                    id=other_id,
                    username=other.username if other else None,
                    last_seen=other.last_seen if other else None,
                ),
                last_message_id=conv.last_message_id,
                last_message_at=conv.last_message_at,
                unread_count=conv.unread_for(principal.user_id),
                created_at=conv.created_at,
                updated_at=conv.updated_at,
            )
        )
    return result


@router.put("/{message_id}/read", response_model=MessageResponse)
async def mark_message_read(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    presence: PresenceDep,
    body: MarkReadRequest | None = Body(None),
) -> MessageResponse:
    msg = await message_service.mark_read(
        message_id,
        principal.user_id,
        body.sender_id if body else None,
        uow,
        presence,
    )
    return MessageResponse.from_entity(msg, principal.user_id)


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.soft_delete(message_id, principal, uow)
    return MessageResponse.from_entity(msg, principal.user_id)


@router.get("/unread/count", response_model=UnreadCountResponse)
async def unread_count(
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> UnreadCountResponse:
    total = await conversation_state.unread_total(principal.user_id, uow)
    return UnreadCountResponse(unread_count=total)
