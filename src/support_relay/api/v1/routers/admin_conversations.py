from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Query, Request, Response, status

from support_relay.api.deps import CurrentStaff, UoWDep
from support_relay.api.v1.schemas.admin import UpdateNotesRequest, UpdateTagsRequest
from support_relay.api.v1.schemas.conversation import ConversationPage, StatsResponse
from support_relay.application.dto.conversation import ConversationFilterDTO, ExportRangeDTO
from support_relay.application.dto.views import (
    ConversationDetailView,
    ConversationView,
    MessageView,
)
from support_relay.domain.value_objects.enums import ConversationStatus
from support_relay.services import admin_service, stats_service

router = APIRouter(prefix="/api/v1/support/admin/conversations", tags=["admin"])


@router.get("", response_model=ConversationPage)
async def list_conversations(
    staff: CurrentStaff,
    uow: UoWDep,
    status_: ConversationStatus | None = Query(None, alias="status"),
    owned: bool | None = Query(None),
    search: str | None = Query(None, max_length=100),
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> ConversationPage:
    filters = ConversationFilterDTO(
        status=status_,
        owned=owned,
        search=search or None,
        cursor=cursor,
        limit=limit,
    )
    convs, next_cursor = await admin_service.list_conversations(filters, uow)
    return ConversationPage(
        items=[ConversationView.model_validate(c) for c in convs],
        next_cursor=next_cursor,
    )


@router.get("/active", response_model=list[ConversationView])
async def list_active(staff: CurrentStaff, uow: UoWDep) -> list[ConversationView]:
    convs = await admin_service.list_active(uow)
    return [ConversationView.model_validate(c) for c in convs]


@router.get("/stats", response_model=StatsResponse)
async def get_stats(staff: CurrentStaff, uow: UoWDep, request: Request) -> StatsResponse:
    stats = await stats_service.compute_stats(
        uow, datetime.now(timezone.utc), request.app.state.settings.STATS_TIMEZONE,
    )
    return StatsResponse.model_validate(stats)


@router.get("/export/csv")
async def export_csv(
    staff: CurrentStaff,
    uow: UoWDep,
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
) -> Response:
    body = await admin_service.export_csv(ExportRangeDTO(start=start, end=end), uow)
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="conversations.csv"'},
    )


@router.get("/{conversation_id}", response_model=ConversationDetailView)
async def get_conversation(
    conversation_id: UUID,
    staff: CurrentStaff,
    uow: UoWDep,
) -> ConversationDetailView:
    conv, messages = await admin_service.get_conversation(conversation_id, uow)
    view = ConversationView.model_validate(conv)
    return ConversationDetailView(
        **view.model_dump(),
        messages=[MessageView.model_validate(m) for m in messages],
    )


@router.put("/{conversation_id}/notes", response_model=ConversationView)
async def update_notes(
    conversation_id: UUID,
    body: UpdateNotesRequest,
    staff: CurrentStaff,
    uow: UoWDep,
) -> ConversationView:
    conv = await admin_service.update_notes(conversation_id, body.notes, uow)
    return ConversationView.model_validate(conv)


@router.put("/{conversation_id}/tags", response_model=ConversationView)
async def update_tags(
    conversation_id: UUID,
    body: UpdateTagsRequest,
    staff: CurrentStaff,
    uow: UoWDep,
) -> ConversationView:
    conv = await admin_service.update_tags(conversation_id, body.tags, uow)
    return ConversationView.model_validate(conv)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: UUID,
    staff: CurrentStaff,
    uow: UoWDep,
) -> Response:
    await admin_service.delete_conversation(conversation_id, uow)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
