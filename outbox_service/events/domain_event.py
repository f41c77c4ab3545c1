from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    """
    A fact raised by an aggregate during a business operation.
    Lives in memory only: it is harvested by the UnitOfWork on commit and never persisted as-is.
    """
    model_config = ConfigDict(frozen=True)

    event_type: str = Field(..., min_length=1)
    aggregate_type: str = Field(..., min_length=1)
    aggregate_id: str = Field(..., min_length=1)
    occurred_on: datetime = Field(default_factory=_utcnow)
