from pydantic import BaseModel, Field
from typing import Any, Optional
import uuid


def _rid():
    return uuid.uuid4().hex

class SuccessResponse(BaseModel):
    """Envelope for successful responses; errors use the shape built in core.exception_handlers."""
    success: bool = Field(default=True)
    request_id: str = Field(default_factory=_rid)
    data: Optional[Any] = None
