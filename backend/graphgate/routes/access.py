"""
Access Decision API Routes

Every route here sits behind the access gate, so a handler only runs for a
request that was AUTHORIZED (or SUSPICIOUS under the step_up policy). The
gate's decision is available at ``request.state.access_decision``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from ..models.authorization_models import DecisionStatus
from ..schemas.access_schemas import (
    AccessAttemptListResponse,
    AccessDecisionResponse,
    KnownAddressesResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
)
from ..services.authorization.audit_recorder import MAX_PAGE_SIZE
from ..services.authorization.exceptions import GraphStoreError, MalformedPermissionTokenError
from ..services.authorization.service import AccessDecisionService
from ..utils.logging_security import sanitize_for_log, sanitize_id_for_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/access", tags=["Access"])


def _decision_service(request: Request) -> AccessDecisionService:
    service = getattr(request.app.state, "access_decision_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Access decision service unavailable")
    return service


@router.get("/decision", response_model=AccessDecisionResponse)
async def get_current_decision(request: Request) -> AccessDecisionResponse:
    """
    Echo the decision the gate made for this request
    """
    decision = getattr(request.state, "access_decision", None)
    if decision is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No access decision for this request")
    return AccessDecisionResponse(**decision.to_dict())


@router.get("/attempts", response_model=AccessAttemptListResponse)
async def list_access_attempts(
    request: Request,
    identity_id: Optional[str] = Query(None, max_length=128),
    status_filter: Optional[DecisionStatus] = Query(None, alias="status"),
    ip_address: Optional[str] = Query(None, max_length=64),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
) -> AccessAttemptListResponse:
    """
    List recorded access attempts, newest first
    """
    service = _decision_service(request)
    try:
        page = await service.audit_recorder.list_attempts(
            identity_id=identity_id,
            status=status_filter,
            ip_address=ip_address,
            limit=limit,
            offset=offset,
        )
    except GraphStoreError as e:
        logger.error(f"Error retrieving access attempts: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to retrieve access attempts")

    return AccessAttemptListResponse(attempts=page.items, total=page.total, limit=page.limit, offset=page.offset)


@router.get("/identities/{identity_id}/ips", response_model=KnownAddressesResponse)
async def list_known_addresses(identity_id: str, request: Request) -> KnownAddressesResponse:
    service = _decision_service(request)
    try:
        addresses = await service.ip_tracker.known_addresses(identity_id)
    except GraphStoreError as e:
        logger.error(f"Error retrieving addresses for identity {sanitize_id_for_log(identity_id)}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to retrieve known addresses")

    return KnownAddressesResponse(identity_id=identity_id, addresses=addresses)


@router.post("/check-permission", response_model=PermissionCheckResponse)
async def check_permission(body: PermissionCheckRequest, request: Request) -> PermissionCheckResponse:
    """
    Check whether the calling identity's roles grant a named permission
    """
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    service = _decision_service(request)
    try:
        granted = await service.permission_resolver.check_named_permission(identity, body.permission)
    except MalformedPermissionTokenError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except GraphStoreError as e:
        logger.error(f"Permission check {sanitize_for_log(body.permission)} failed: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Permission check failed")

    return PermissionCheckResponse(permission=body.permission, granted=granted)
