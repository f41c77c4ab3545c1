from fastapi import APIRouter, Query
from outbox_service.core.config import MAX_RETRIES
from outbox_service.repositories.outbox_repository import OutboxRepository, OutboxState
from outbox_service.schemas.outbox import OutboxMessageResponse, OutboxStatsResponse
from outbox_service.schemas.response import SuccessResponse

router = APIRouter()


@router.get("/", response_model=SuccessResponse)
async def list_outbox_messages(state: OutboxState = OutboxState.PENDING, limit: int = Query(50, ge=1, le=500)):
    """Lists outbox rows in one lifecycle state (pending, failed, processed) for inspection."""
    messages = await OutboxRepository().list_messages(state, max_retries=MAX_RETRIES, limit=limit)
    data = [OutboxMessageResponse.model_validate(m).model_dump(mode="json") for m in messages]
    return SuccessResponse(data=data)


@router.get("/stats", response_model=SuccessResponse)
async def outbox_stats():
    """Row counts per lifecycle state."""
    counts = await OutboxRepository().count_by_state(max_retries=MAX_RETRIES)
    return SuccessResponse(data=OutboxStatsResponse(max_retries=MAX_RETRIES, counts=counts).model_dump())
