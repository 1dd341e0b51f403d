from datetime import datetime

from pydantic import BaseModel


class ActivityLogOut(BaseModel):
    id: str
    user_id: str | None
    action: str
    entity_type: str | None
    entity_id: str | None
    entity_name: str | None
    details: dict
    created_at: datetime | None

    model_config = {"from_attributes": True}
