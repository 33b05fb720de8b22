from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import Text
from sqlmodel import SQLModel, Field, Column

DEVICE_ONLINE = "online"
DEVICE_OFFLINE = "offline"

COMMAND_PENDING = "pending"
COMMAND_COMPLETED = "completed"

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Device(SQLModel, table=True):
    id: str = Field(primary_key=True, index=True)
    code: str = Field(index=True)
    kind: str = Field(default="")
    last_seen: datetime = Field(default_factory=utcnow, index=True)
    status: str = Field(default=DEVICE_ONLINE, index=True)  # online|offline
    created_at: datetime = Field(default_factory=utcnow)

class Command(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    device_id: str = Field(index=True)
    device_code: str = Field(index=True)
    payload: str = Field(sa_column=Column(Text, nullable=False))  # JSON text
    status: str = Field(default=COMMAND_PENDING, index=True)  # pending|completed
    created_at: datetime = Field(default_factory=utcnow, index=True)
    executed_at: Optional[datetime] = None

class Response(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    device_id: str = Field(index=True)
    device_code: str = Field(index=True)
    payload: str = Field(sa_column=Column(Text, nullable=False))  # JSON text
    created_at: datetime = Field(default_factory=utcnow, index=True)
