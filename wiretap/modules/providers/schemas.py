from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime


class ProviderConfig(BaseModel):
    """Full provider row, credentials included. Never returned from a route."""
    id: str
    name: str
    description: Optional[str] = None
    auth_url: str
    identity_version: Optional[str] = "v3"
    username: str
    password: str
    project_name: str
    domain_name: Optional[str] = "Default"
    region_name: Optional[str] = None
    proxy_through_host: Optional[str] = None
    enabled: bool = True

    class Config:
        from_attributes = True


class ProviderResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    auth_url: str
    identity_version: Optional[str] = "v3"
    project_name: str
    domain_name: Optional[str] = None
    region_name: Optional[str] = None
    enabled: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ConnectionTestResponse(BaseModel):
    provider_id: str
    success: bool
    message: str
    projects: List[Dict[str, Any]] = []
