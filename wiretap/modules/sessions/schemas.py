from pydantic import BaseModel
from typing import Optional, Dict
from datetime import datetime
from wiretap.modules.openstack.schemas import ConsoleType


class SessionCreate(BaseModel):
    console_type: ConsoleType = ConsoleType.NOVNC


class SessionResponse(BaseModel):
    id: str
    user_id: str
    instance_id: str
    session_token: str
    console_type: ConsoleType
    expires_at: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreateSessionResponse(BaseModel):
    session_token: str
    console_url: str
    expires_at: datetime


class ExtendSessionResponse(BaseModel):
    session_token: str
    expires_at: datetime


class SessionClaims(BaseModel):
    userId: str
    instanceId: str
    consoleType: ConsoleType
    type: str
    jti: Optional[str] = None
    exp: Optional[int] = None


class SessionStats(BaseModel):
    total: int = 0
    active: int = 0
    expired: int = 0
    by_console_type: Dict[str, int] = {}
