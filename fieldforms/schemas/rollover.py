from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel


class RolloverRequest(BaseModel):
    triggered_by: Optional[int] = None


class SystemEventResponse(BaseModel):
    id: int
    event_type: str
    event_data: Dict[str, Any]
    triggered_by: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SystemEventListResponse(BaseModel):
    events: List[SystemEventResponse]
    total: int
