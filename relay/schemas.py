from datetime import datetime
from pydantic import BaseModel
from typing import Any

class RegisterRequest(BaseModel):
    deviceId: str | None = None
    type: str | None = None

class RegisterResponse(BaseModel):
    success: bool = True
    deviceId: str
    code: str

class DeviceOut(BaseModel):
    id: str
    code: str
    type: str
    status: str
    lastSeen: datetime

class FindResult(BaseModel):
    found: bool
    device: DeviceOut | None = None

class CommandRequest(BaseModel):
    code: str | None = None
    command: Any = None

class CommandResponse(BaseModel):
    success: bool = True
    commandId: int

class PostResponseResult(BaseModel):
    success: bool = True
    responseId: int

class ErrorOut(BaseModel):
    success: bool = False
    error: str
    detail: str
