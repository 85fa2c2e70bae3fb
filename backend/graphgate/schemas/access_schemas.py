"""
Access API Schemas

Pydantic request/response models for the /access endpoints.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.authorization_models import AccessAttemptRecord


class AccessDecisionResponse(BaseModel):
    """Decision the gate made for the current request"""

    status: str
    reason: str
    action: Optional[str] = None
    resource_path: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: str


class AccessAttemptListResponse(BaseModel):
    attempts: List[AccessAttemptRecord]
    total: int
    limit: int
    offset: int


class KnownAddressesResponse(BaseModel):
    identity_id: str
    addresses: List[str]


class PermissionCheckRequest(BaseModel):
    permission: str = Field(..., min_length=1, max_length=200, description="Permission name, e.g. READ_USERS")


class PermissionCheckResponse(BaseModel):
    permission: str
    granted: bool
