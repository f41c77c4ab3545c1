import uuid
from datetime import datetime
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict


class OutboxMessageResponse(BaseModel):
    """Operator view of one outbox row."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: str
    occurred_on: datetime
    processed_on: Optional[datetime] = None
    error: Optional[str] = None
    retry_count: int

class OutboxStatsResponse(BaseModel):
    max_retries: int
    counts: Dict[str, int]
