"""
Access Decision Models for GraphGate
Defines the data structures exchanged by the access decision pipeline

Every protected request produces exactly one AccessDecision. The decision is
terminal: AUTHORIZED, SUSPICIOUS or REFUSED, each with a machine-readable
reason code that audit consumers can filter on.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Timezone-aware current time used for decisions and audit records."""
    return datetime.now(timezone.utc)


class ActionType(str, Enum):
    """Canonical action vocabulary for permission names"""

    READ = "READ"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    EXECUTE = "EXECUTE"


class DecisionStatus(str, Enum):
    """Terminal outcome of an access decision"""

    AUTHORIZED = "AUTHORIZED"
    SUSPICIOUS = "SUSPICIOUS"
    REFUSED = "REFUSED"


class DecisionReason(str, Enum):
    """Machine-checkable reason codes attached to every decision"""

    NO_SESSION = "no_session"
    NO_PERMISSION = "no_permission"
    FIRST_IP = "first_ip"
    KNOWN_IP = "known_ip"
    NEW_IP_DETECTED = "new_ip_detected"
    SYSTEM_ERROR = "system_error"


class SuspiciousPolicy(str, Enum):
    """How a SUSPICIOUS decision is enforced"""

    BLOCK = "block"  # Deny with 403
    STEP_UP = "step_up"  # Pass through, flagged for step-up verification


@dataclass(frozen=True)
class IdentityContext:
    """Already-resolved identity supplied by the session layer"""

    identity_id: str
    roles: List[str] = field(default_factory=list)
    username: Optional[str] = None

    def has_role(self, role_name: str) -> bool:
        return role_name in self.roles


@dataclass(frozen=True)
class IpState:
    """Origin address classification relative to an identity's history"""

    is_first_ip: bool
    is_known_ip: bool


@dataclass(frozen=True)
class RequestAttributes:
    """Transport attributes the decision pipeline needs from a request"""

    method: str
    path: str
    ip_address: str


@dataclass(frozen=True)
class AccessDecision:
    """Result of the access decision pipeline for one request"""

    status: DecisionStatus
    reason: DecisionReason
    action: Optional[ActionType] = None
    resource_path: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def is_authorized(self) -> bool:
        return self.status == DecisionStatus.AUTHORIZED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason.value,
            "action": self.action.value if self.action else None,
            "resource_path": self.resource_path,
            "ip_address": self.ip_address,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class Enforcement:
    """Enforcement action derived from a decision"""

    allow: bool
    status_code: int
    step_up_required: bool = False


class AccessAttemptRecord(BaseModel):
    """Immutable audit record of one access decision"""

    id: str
    timestamp: Optional[str] = None
    method: Optional[str] = None
    action: Optional[str] = None
    path: Optional[str] = None
    status: str
    reason: str
    identity_id: Optional[str] = None
    username: Optional[str] = None
    ip_address: Optional[str] = None


class AccessAttemptPage(BaseModel):
    """Paginated slice of access attempts with the unpaginated total"""

    items: List[AccessAttemptRecord] = Field(default_factory=list)
    total: int = 0
    limit: int
    offset: int


class AuthorizationConfiguration(BaseModel):
    """Access decision pipeline configuration"""

    admin_role: str = "ADMIN"
    suspicious_policy: SuspiciousPolicy = SuspiciousPolicy.BLOCK
    serialize_per_identity: bool = False  # Hardening: closes the first-IP race
    audit_in_background: bool = False
