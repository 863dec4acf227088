from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Any, Dict
from enum import Enum


class NotificationType(str, Enum):
    """Badge categories shown in the sidebar and header"""
    MESSAGES = "messages"
    RFIS = "rfis"
    DOCUMENTS = "documents"
    TENDERS = "tenders"

    @classmethod
    def parse(cls, value: Any) -> Optional["NotificationType"]:
        """Return the matching type, or None for anything unrecognised"""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except (ValueError, TypeError):
            return None


class NotificationCounts(BaseModel):
    """Immutable snapshot of the four unread counts"""
    messages: int = Field(default=0, ge=0)
    rfis: int = Field(default=0, ge=0)
    documents: int = Field(default=0, ge=0)
    tenders: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def total(self) -> int:
        return self.messages + self.rfis + self.documents + self.tenders

    def get(self, notification_type: NotificationType) -> int:
        return getattr(self, notification_type.value)

    def with_count(self, notification_type: NotificationType, value: int) -> "NotificationCounts":
        """Copy with one count replaced (floored at zero)"""
        return self.model_copy(update={notification_type.value: max(0, value)})

    @classmethod
    def zero(cls) -> "NotificationCounts":
        return cls()


class NotificationCountsResponse(BaseModel):
    counts: NotificationCounts
    total: int
    connection_status: str


class MarkAsReadRequest(BaseModel):
    type: NotificationType
    entity_id: Optional[str] = None


class MarkAsReadResponse(BaseModel):
    accepted: bool
    counts: NotificationCounts


class CountsMessage(BaseModel):
    """Server -> client WebSocket frame"""
    type: str = "counts"
    data: Dict[str, Any]
