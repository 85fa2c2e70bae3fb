"""
Access Gate Middleware for GraphGate
Runs the access decision pipeline in front of every protected route

GATING FLOW:
1. Public route (configured regex list) -> pass through untouched
2. Resolve the identity from the session; none -> 401 REFUSED/no_session
3. AccessDecisionService.decide() -> AUTHORIZED / SUSPICIOUS / REFUSED
4. Enforce: pass through, or a JSON error response with the decision's status code

Fail-secure: any error raised while deciding denies the request with 500.
"""

import logging
import re
from typing import Awaitable, Callable, List, Optional, Pattern

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from ..config import DEFAULT_PUBLIC_PATHS
from ..models.authorization_models import (
    AccessDecision,
    IdentityContext,
    RequestAttributes,
    utc_now,
)
from ..services.authorization.decision import system_error_decision
from ..services.authorization.service import AccessDecisionService
from ..services.authorization.tokens import http_method_to_action
from ..services.session_store import SessionStoreError
from ..utils.logging_security import sanitize_for_log, sanitize_path_for_log

logger = logging.getLogger(__name__)

STEP_UP_HEADER = "X-Step-Up-Required"

_DENIAL_MESSAGES = {
    "no_session": "Authentication required",
    "no_permission": "Insufficient permissions",
    "new_ip_detected": "Access from an unrecognized address requires verification",
    "system_error": "Authorization system error",
}


class AccessGateMiddleware(BaseHTTPMiddleware):
    """
    Gates every non-public request on an access decision.

    The decision service and identity resolver are read from ``app.state``
    (``access_decision_service`` and ``identity_resolver``) on each request,
    so they can be built in the application lifespan after the middleware
    stack has been assembled.
    """

    def __init__(
        self,
        app,
        public_paths: Optional[List[str]] = None,
        service_factory: Callable[[Request], AccessDecisionService] = None,
    ):
        super().__init__(app)
        self.public_patterns: List[Pattern] = [
            re.compile(pattern) for pattern in (public_paths if public_paths is not None else DEFAULT_PUBLIC_PATHS)
        ]
        self.service_factory = service_factory or self._service_from_app_state

        logger.info(f"Access gate middleware initialized with {len(self.public_patterns)} public path patterns")

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        path = self._canonical_path(request.url.path)

        if self._is_public_path(path):
            request.state.is_public_path = True
            return await call_next(request)
        request.state.is_public_path = False

        attributes = RequestAttributes(
            method=request.method.upper(),
            path=path,
            ip_address=self._get_client_ip(request),
        )

        try:
            identity = await self._resolve_identity(request)
        except SessionStoreError as e:
            logger.error(f"Session lookup failed for {attributes.method} {sanitize_path_for_log(path)}: {e}")
            decision = system_error_decision(http_method_to_action(attributes.method), path, attributes.ip_address)
            request.state.access_decision = decision
            return self._create_decision_response(decision, status.HTTP_500_INTERNAL_SERVER_ERROR, path)

        try:
            service = self.service_factory(request)
            decision = await service.decide(identity, attributes)
            enforcement = service.enforce(decision)
        except Exception as e:
            logger.error(f"Access gate error on {attributes.method} {sanitize_path_for_log(path)}: {e!r}")

            # Fail securely - deny access on any error
            return self._create_error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Authorization system error",
                path,
            )

        request.state.access_decision = decision
        if identity is not None:
            request.state.identity = identity

        if not enforcement.allow:
            return self._create_decision_response(decision, enforcement.status_code, path)

        response = await call_next(request)
        if enforcement.step_up_required:
            response.headers[STEP_UP_HEADER] = "true"
        return response

    def _is_public_path(self, path: str) -> bool:
        return any(pattern.match(path) for pattern in self.public_patterns)

    @staticmethod
    def _canonical_path(path: str) -> str:
        """Route path without trailing slashes; the root stays "/"."""
        return path.rstrip("/") or "/"

    async def _resolve_identity(self, request: Request) -> Optional[IdentityContext]:
        resolver = getattr(request.app.state, "identity_resolver", None)
        if resolver is None:
            logger.warning("No identity resolver configured; treating request as unauthenticated")
            return None
        return await resolver.resolve(request)

    @staticmethod
    def _service_from_app_state(request: Request) -> AccessDecisionService:
        service = getattr(request.app.state, "access_decision_service", None)
        if service is None:
            raise RuntimeError("Access decision service is not initialized")
        return service

    def _get_client_ip(self, request: Request) -> str:
        """
        Get client IP address from request
        """
        # Check for forwarded headers first (behind proxy)
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first

        if request.client and request.client.host:
            return request.client.host

        logger.debug(f"No client address for {sanitize_for_log(request.url.path)}")
        return "unknown"

    def _create_error_response(self, status_code: int, message: str, path: str) -> JSONResponse:
        """
        Create standardized error response
        """
        return JSONResponse(
            status_code=status_code,
            content={
                "error": message,
                "status": "REFUSED",
                "reason": "system_error",
                "path": path,
                "timestamp": utc_now().isoformat(),
                "type": "authorization_error",
            },
        )

    def _create_decision_response(self, decision: AccessDecision, status_code: int, path: str) -> JSONResponse:
        headers = {"WWW-Authenticate": "Session"} if status_code == status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(
            status_code=status_code,
            content={
                "error": _DENIAL_MESSAGES.get(decision.reason.value, "Access denied"),
                "status": decision.status.value,
                "reason": decision.reason.value,
                "path": path,
                "timestamp": decision.timestamp.isoformat(),
                "type": "authorization_error",
            },
            headers=headers,
        )


def create_authorization_middleware(app, public_paths: Optional[List[str]] = None, service_factory: Callable = None):
    """
    Factory function to create access gate middleware instance
    """
    return AccessGateMiddleware(app, public_paths=public_paths, service_factory=service_factory)
