from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
import uuid
from datetime import datetime

class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    title: str
    message: str
    type: str = "info"  # success, info, warning
    course_id: Optional[str] = None
    provider_ref: Optional[str] = None  # Payment the notification is about
    action_url: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)  # Raw provider fields kept for operator follow-up
    read: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
