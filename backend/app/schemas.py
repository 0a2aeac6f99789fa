"""Pydantic models for request and response bodies."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

# user_id columns are BIGINT
MAX_USER_ID = 2**63 - 1


class EventIn(BaseModel):
    user_id: StrictInt = Field(
        ..., le=MAX_USER_ID, description="Identifier of the user who performed the action"
    )
    action: StrictStr = Field(..., description="Name of the action, e.g. click")
    metadata: Optional[Dict[str, StrictStr]] = Field(
        default=None,
        description="Optional string metadata; only the 'page' key is persisted.",
    )


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    action: str
    metadata_page: Optional[str] = None
    created_at: datetime


class UserEventCountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    period_start: datetime
    period_end: datetime
    event_count: int
