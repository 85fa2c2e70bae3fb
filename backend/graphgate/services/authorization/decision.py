"""
Decision Combinator

Pure functions mapping the permission result and IP state onto a terminal
decision, and a decision onto an enforcement action. No I/O.

| permission | first ip | known ip | status     | reason          |
|------------|----------|----------|------------|-----------------|
| False      | -        | -        | REFUSED    | no_permission   |
| True       | True     | -        | AUTHORIZED | first_ip        |
| True       | False    | True     | AUTHORIZED | known_ip        |
| True       | False    | False    | SUSPICIOUS | new_ip_detected |
"""

from typing import Optional

from fastapi import status

from ...models.authorization_models import (
    AccessDecision,
    ActionType,
    DecisionReason,
    DecisionStatus,
    Enforcement,
    IpState,
    SuspiciousPolicy,
)


def combine_decision(
    permission_granted: bool,
    ip_state: IpState,
    action: Optional[ActionType] = None,
    resource_path: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> AccessDecision:
    if not permission_granted:
        decision_status, reason = DecisionStatus.REFUSED, DecisionReason.NO_PERMISSION
    elif ip_state.is_first_ip:
        decision_status, reason = DecisionStatus.AUTHORIZED, DecisionReason.FIRST_IP
    elif ip_state.is_known_ip:
        decision_status, reason = DecisionStatus.AUTHORIZED, DecisionReason.KNOWN_IP
    else:
        decision_status, reason = DecisionStatus.SUSPICIOUS, DecisionReason.NEW_IP_DETECTED

    return AccessDecision(
        status=decision_status,
        reason=reason,
        action=action,
        resource_path=resource_path,
        ip_address=ip_address,
    )


def no_session_decision(
    action: Optional[ActionType] = None,
    resource_path: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> AccessDecision:
    return AccessDecision(
        status=DecisionStatus.REFUSED,
        reason=DecisionReason.NO_SESSION,
        action=action,
        resource_path=resource_path,
        ip_address=ip_address,
    )


def system_error_decision(
    action: Optional[ActionType] = None,
    resource_path: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> AccessDecision:
    return AccessDecision(
        status=DecisionStatus.REFUSED,
        reason=DecisionReason.SYSTEM_ERROR,
        action=action,
        resource_path=resource_path,
        ip_address=ip_address,
    )


def enforcement_for(decision: AccessDecision, policy: SuspiciousPolicy = SuspiciousPolicy.BLOCK) -> Enforcement:
    """Map a decision to allow/deny and the HTTP status used when denying."""
    if decision.status == DecisionStatus.AUTHORIZED:
        return Enforcement(allow=True, status_code=status.HTTP_200_OK)

    if decision.status == DecisionStatus.SUSPICIOUS:
        if policy == SuspiciousPolicy.STEP_UP:
            return Enforcement(allow=True, status_code=status.HTTP_200_OK, step_up_required=True)
        return Enforcement(allow=False, status_code=status.HTTP_403_FORBIDDEN)

    if decision.reason == DecisionReason.NO_SESSION:
        return Enforcement(allow=False, status_code=status.HTTP_401_UNAUTHORIZED)
    if decision.reason == DecisionReason.SYSTEM_ERROR:
        return Enforcement(allow=False, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Enforcement(allow=False, status_code=status.HTTP_403_FORBIDDEN)
