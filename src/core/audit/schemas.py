from datetime import datetime

from src.shared.schemas.base import BaseSchema


class AuditEntryResponse(BaseSchema):
    """Single audit log entry of the current school."""

    id: int
    actor: str
    action: str
    entity_type: str
    entity_id: int
    entity_identifier: str | None
    old_values: dict | None
    new_values: dict | None
    comment: str | None
    created_at: datetime
