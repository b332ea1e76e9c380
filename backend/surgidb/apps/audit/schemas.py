from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class AuditEventRead(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    action: str
    occurred_at: datetime
    before: Optional[Any] = None
    after: Optional[Any] = None
    correlation_id: Optional[str] = None

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True
