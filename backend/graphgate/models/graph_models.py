"""
Graph node models

Pydantic views of the nodes stored in the permission graph. Used by the
seeding tool to validate what it writes, and by callers that want typed
node data instead of raw query rows.

Edges:
    (Identity)-[:HAS_ROLE]->(Role)-[:GRANTS]->(Permission)-[:ACCESS_TO]->(Resource)
    (Identity)-[:CONNECTS_FROM]->(IPAddress)        # only after AUTHORIZED
    (Identity)-[:TRIED_TO_ACCESS]->(AccessAttempt)
    (AccessAttempt)-[:TARGET]->(Resource)
    (AccessAttempt)-[:FROM_IP]->(IPAddress)
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, validator

from ..services.authorization.exceptions import MalformedPermissionTokenError
from ..services.authorization.tokens import validate_permission_name
from .authorization_models import ActionType, DecisionReason, DecisionStatus, utc_now


class Identity(BaseModel):
    """Keyed by an opaque id; the username is display data only"""

    id: str = Field(..., min_length=1)
    username: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class Role(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None

    @validator("name")
    def role_name_uppercase(cls, v):
        if v != v.upper():
            raise ValueError("Role names are uppercase")
        return v


class Permission(BaseModel):
    name: str

    @validator("name")
    def permission_name_format(cls, v):
        try:
            return validate_permission_name(v)
        except MalformedPermissionTokenError as e:
            raise ValueError(e.message) from e


class Resource(BaseModel):
    path: str
    name: Optional[str] = None
    type: str = "route"

    @validator("path")
    def path_is_absolute(cls, v):
        if not v.startswith("/"):
            raise ValueError("Resource paths start with '/'")
        return v.rstrip("/") or "/"


class IPAddress(BaseModel):
    address: str
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None


class AccessAttempt(BaseModel):
    """Write-once record of one decision"""

    id: str
    timestamp: datetime
    method: str
    action: Optional[ActionType] = None
    path: str
    status: DecisionStatus
    reason: DecisionReason
    identity_id: str
    username: Optional[str] = None
    ip_address: str

    class Config:
        frozen = True
