from pydantic import BaseModel, field_validator, model_validator
from typing import Optional, Union
from datetime import datetime, timezone


class WorkshopResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    provider_id: str
    openstack_project_id: Optional[str] = None
    openstack_project_name: str
    enabled: bool = True
    # Kept as stored; an unparsable value means "no boundary" to the lockout scheduler
    lockout_start: Optional[Union[datetime, str]] = None
    lockout_end: Optional[Union[datetime, str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LockoutWindowUpdate(BaseModel):
    lockout_start: Optional[datetime] = None
    lockout_end: Optional[datetime] = None

    @field_validator("lockout_start", "lockout_end")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive values are UTC, like the stored timestamps
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def start_before_end(self):
        if self.lockout_start and self.lockout_end and self.lockout_start >= self.lockout_end:
            raise ValueError("lockout_start must be before lockout_end")
        return self


class LockoutScheduleEntry(BaseModel):
    workshop_id: str
    has_start_timer: bool
    has_end_timer: bool


class LockoutStateResponse(BaseModel):
    workshop_id: str
    state: str
