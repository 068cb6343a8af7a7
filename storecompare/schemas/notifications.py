from datetime import datetime
from typing import List

from pydantic import BaseModel


class Notification(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    read: bool = False
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: List[Notification]


class UnreadCountResponse(BaseModel):
    unread: int
