"""
Authorization Module - Graph-backed RBAC access decisions

This module decides, for every protected request, whether the calling
identity may perform the requested action on the requested route, and
folds in a per-identity origin address anomaly signal.

Architecture Overview:
    1. Tokens (tokens.py)
       - HTTP method -> action, route path -> permission name
    2. Permission Resolver (permission_resolver.py)
       - Identity -HAS_ROLE-> Role -GRANTS-> Permission -ACCESS_TO-> Resource
       - Absolute ADMIN override
    3. IP Reputation Tracker (ip_reputation.py)
       - first-seen / known / new address classification
    4. Decision Combinator (decision.py)
       - Pure truth table and enforcement mapping
    5. Audit Recorder (audit_recorder.py)
       - Immutable AccessAttempt records and the audit listing
    6. Service Layer (service.py)
       - AccessDecisionService pipeline, fail-closed error handling

Design Philosophy:
    - Fail-Secure: REFUSED/system_error on any store failure
    - Comprehensive Audit: every decision with an identity is recorded
    - Heuristic anomaly signal: SUSPICIOUS is a detection aid, not a boundary

Quick Start:
    from graphgate.services.authorization import (
        AccessDecisionService,
        get_access_decision_service,
    )
    from graphgate.models.authorization_models import IdentityContext, RequestAttributes

    service = get_access_decision_service(graph_store)
    decision = await service.decide(
        IdentityContext(identity_id="3f7c...", roles=["USER"]),
        RequestAttributes(method="GET", path="/users", ip_address="10.0.0.1"),
    )
    if decision.status == DecisionStatus.AUTHORIZED:
        print("Access granted")
    else:
        print(f"Access denied: {decision.reason}")
"""

import logging

from graphgate.models.authorization_models import (  # noqa: F401
    AccessAttemptPage,
    AccessAttemptRecord,
    AccessDecision,
    ActionType,
    AuthorizationConfiguration,
    DecisionReason,
    DecisionStatus,
    Enforcement,
    IdentityContext,
    IpState,
    RequestAttributes,
    SuspiciousPolicy,
)

from .audit_recorder import AuditRecorder
from .decision import combine_decision, enforcement_for, no_session_decision, system_error_decision
from .exceptions import (
    AuditWriteError,
    AuthorizationError,
    GraphStoreError,
    IdentityMissingError,
    MalformedPermissionTokenError,
    StoreUnavailableError,
)
from .ip_reputation import IpReputationTracker
from .permission_resolver import PermissionResolver
from .service import AccessDecisionService, IdentityLockRegistry, get_access_decision_service
from .tokens import build_permission_name, derive_resource_token, http_method_to_action, validate_permission_name

logger = logging.getLogger(__name__)

__all__ = [
    # Core service
    "AccessDecisionService",
    "IdentityLockRegistry",
    "get_access_decision_service",
    # Components
    "AuditRecorder",
    "IpReputationTracker",
    "PermissionResolver",
    "combine_decision",
    "enforcement_for",
    "no_session_decision",
    "system_error_decision",
    # Tokens
    "build_permission_name",
    "derive_resource_token",
    "http_method_to_action",
    "validate_permission_name",
    # Exceptions
    "AuditWriteError",
    "AuthorizationError",
    "GraphStoreError",
    "IdentityMissingError",
    "MalformedPermissionTokenError",
    "StoreUnavailableError",
    # Models (re-exported for convenience)
    "AccessAttemptPage",
    "AccessAttemptRecord",
    "AccessDecision",
    "ActionType",
    "AuthorizationConfiguration",
    "DecisionReason",
    "DecisionStatus",
    "Enforcement",
    "IdentityContext",
    "IpState",
    "RequestAttributes",
    "SuspiciousPolicy",
]

__version__ = "1.0.0"
