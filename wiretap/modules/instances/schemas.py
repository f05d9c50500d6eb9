from pydantic import BaseModel, field_validator
from typing import Optional, List
from datetime import datetime
import json


class InstanceCreate(BaseModel):
    name: str
    workshop_id: str
    openstack_id: str
    team_id: Optional[str] = None
    user_id: Optional[str] = None


class InstanceUpdate(BaseModel):
    name: Optional[str] = None
    team_id: Optional[str] = None
    user_id: Optional[str] = None
    locked: Optional[bool] = None


class InstanceResponse(BaseModel):
    id: str
    name: str
    openstack_id: str
    workshop_id: str
    team_id: Optional[str] = None
    user_id: Optional[str] = None
    status: str = "UNKNOWN"
    power_state: str = "UNKNOWN"
    ip_addresses: List[str] = []
    locked: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("ip_addresses", mode="before")
    @classmethod
    def decode_ip_addresses(cls, value):
        # Older rows hold the list as a JSON string
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return json.loads(value)
        return value

    class Config:
        from_attributes = True


class IngestRequest(BaseModel):
    provider_id: str
    team_id: Optional[str] = None
    user_id: Optional[str] = None
    project_name: Optional[str] = None  # required with instance_ids
    instance_ids: Optional[List[str]] = None


class IngestedInstance(BaseModel):
    id: str
    name: str
    openstack_id: str
    workshop_id: str
    status: str
    power_state: str
    created: bool


class IngestResult(BaseModel):
    ingested_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    instances: List[IngestedInstance] = []

    def merge(self, other: "IngestResult") -> None:
        self.ingested_count += other.ingested_count
        self.updated_count += other.updated_count
        self.error_count += other.error_count
        self.instances.extend(other.instances)


class SyncResult(BaseModel):
    instance: InstanceResponse
    status: str
    power_state: str
    ip_addresses: List[str]


class SyncAllResult(BaseModel):
    synced_count: int = 0
    error_count: int = 0
    total: int = 0


class PowerActionResponse(BaseModel):
    instance_id: str
    action: str
    power_state: str
