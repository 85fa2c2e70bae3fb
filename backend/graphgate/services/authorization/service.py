"""
Access Decision Service
Runs the per-request decision pipeline for protected routes

PIPELINE:
1. No identity -> REFUSED/no_session (no graph access, no audit record)
2. Permission Resolver and IP Reputation Tracker reads, issued concurrently
3. Decision Combinator (pure)
4. Audit Recorder, always, for every decision with a resolved identity
5. Store failure at step 2 -> REFUSED/system_error (fail closed)

The only shared state is the graph store's connection pool. The first-IP
determination is not locked: two concurrent first requests from different
addresses may both be AUTHORIZED/first_ip. Enable ``serialize_per_identity``
to run each identity's pipeline (audit write included) one at a time.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Set

from ...models.authorization_models import (
    AccessDecision,
    ActionType,
    AuthorizationConfiguration,
    DecisionStatus,
    Enforcement,
    IdentityContext,
    RequestAttributes,
)
from ...utils.logging_security import create_decision_log_entry, sanitize_id_for_log
from ..prometheus_metrics import get_metrics_instance
from .audit_recorder import AuditRecorder
from .decision import combine_decision, enforcement_for, no_session_decision, system_error_decision
from .exceptions import AuditWriteError, GraphStoreError
from .ip_reputation import IpReputationTracker
from .permission_resolver import PermissionResolver
from .tokens import http_method_to_action

logger = logging.getLogger(__name__)


class IdentityLockRegistry:
    """One asyncio.Lock per identity, dropped once nobody holds or awaits it"""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, identity_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(identity_id, asyncio.Lock())
        self._holders[identity_id] = self._holders.get(identity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[identity_id] -= 1
            if self._holders[identity_id] == 0:
                del self._holders[identity_id]
                del self._locks[identity_id]


class AccessDecisionService:
    """
    Orchestrates permission resolution, IP reputation, decision and audit.

    Example:
        service = get_access_decision_service(graph_store)
        decision = await service.decide(identity, RequestAttributes("GET", "/users", "10.0.0.1"))
        enforcement = service.enforce(decision)
    """

    def __init__(
        self,
        graph_store=None,
        config: Optional[AuthorizationConfiguration] = None,
        permission_resolver: Optional[PermissionResolver] = None,
        ip_tracker: Optional[IpReputationTracker] = None,
        audit_recorder: Optional[AuditRecorder] = None,
    ):
        self.config = config or AuthorizationConfiguration()
        self.permission_resolver = permission_resolver or PermissionResolver(graph_store, self.config)
        self.ip_tracker = ip_tracker or IpReputationTracker(graph_store)
        self.audit_recorder = audit_recorder or AuditRecorder(graph_store)
        self.identity_locks = IdentityLockRegistry()
        self.metrics = get_metrics_instance()
        self._pending_audits: Set[asyncio.Task] = set()

        logger.info(f"Access decision service initialized with config: {self.config}")

    async def decide(self, identity: Optional[IdentityContext], request: RequestAttributes) -> AccessDecision:
        """
        Produce exactly one decision for a protected request.

        Args:
            identity: Resolved identity, or None when the request has no session
            request: Method, canonical path and origin address

        Returns:
            AccessDecision: Terminal decision with reason code
        """
        start_time = time.time()
        action = http_method_to_action(request.method)

        if identity is None:
            decision = no_session_decision(action, request.path, request.ip_address)
        elif self.config.serialize_per_identity:
            async with self.identity_locks.hold(identity.identity_id):
                decision = await self._evaluate(identity, request, action, background_audit=False)
        else:
            decision = await self._evaluate(
                identity, request, action, background_audit=self.config.audit_in_background
            )

        self._observe(identity, request, decision, start_time)
        return decision

    def enforce(self, decision: AccessDecision) -> Enforcement:
        return enforcement_for(decision, self.config.suspicious_policy)

    async def drain(self) -> None:
        """Wait for background audit writes still in flight."""
        if self._pending_audits:
            logger.info(f"Waiting for {len(self._pending_audits)} pending audit writes")
            await asyncio.gather(*list(self._pending_audits), return_exceptions=True)

    async def _evaluate(
        self,
        identity: IdentityContext,
        request: RequestAttributes,
        action: ActionType,
        background_audit: bool,
    ) -> AccessDecision:
        permission_result, ip_result = await asyncio.gather(
            self.permission_resolver.resolve_permission(identity, action, request.path),
            self.ip_tracker.ip_state(identity, request.ip_address),
            return_exceptions=True,
        )

        for result in (permission_result, ip_result):
            if isinstance(result, GraphStoreError):
                logger.error(
                    f"Graph store failure while deciding for identity "
                    f"{sanitize_id_for_log(identity.identity_id)}: {result.message}"
                )
                decision = system_error_decision(action, request.path, request.ip_address)
                # The store just failed; never hold the response on a second attempt
                self._schedule_audit(identity, request, decision)
                return decision
            if isinstance(result, BaseException):
                raise result

        decision = combine_decision(
            permission_granted=permission_result,
            ip_state=ip_result,
            action=action,
            resource_path=request.path,
            ip_address=request.ip_address,
        )

        if background_audit:
            self._schedule_audit(identity, request, decision)
        else:
            await self._record_audit(identity, request, decision)

        return decision

    async def _record_audit(self, identity: IdentityContext, request: RequestAttributes, decision: AccessDecision) -> None:
        try:
            await self.audit_recorder.record(
                identity=identity,
                action=decision.action,
                resource_path=request.path,
                method=request.method,
                address=request.ip_address,
                status=decision.status,
                reason=decision.reason,
            )
        except AuditWriteError as e:
            self.metrics.record_audit_write_failure()
            logger.error(f"AUDIT WRITE FAILED ({decision.status.value}/{decision.reason.value}): {e.message}")

    def _schedule_audit(self, identity: IdentityContext, request: RequestAttributes, decision: AccessDecision) -> None:
        task = asyncio.create_task(self._record_audit(identity, request, decision))
        self._pending_audits.add(task)
        task.add_done_callback(self._on_audit_done)

    def _on_audit_done(self, task: asyncio.Task) -> None:
        self._pending_audits.discard(task)
        if task.cancelled():
            self.metrics.record_audit_write_failure()
            logger.error("Background audit write was cancelled")
            return
        error = task.exception()
        if error is not None:
            self.metrics.record_audit_write_failure()
            logger.error(f"Background audit write crashed: {error!r}")

    def _observe(
        self,
        identity: Optional[IdentityContext],
        request: RequestAttributes,
        decision: AccessDecision,
        start_time: float,
    ) -> None:
        duration = time.time() - start_time
        self.metrics.record_decision(decision.status.value, decision.reason.value, duration)

        entry = create_decision_log_entry(
            identity.identity_id if identity else None,
            request.method,
            request.path,
            request.ip_address,
            decision.status.value,
            decision.reason.value,
            duration_ms=int(duration * 1000),
        )
        if decision.status == DecisionStatus.AUTHORIZED:
            logger.info(f"ACCESS GRANTED: {entry}")
        else:
            logger.warning(f"ACCESS {decision.status.value}: {entry}")


# Factory function
def get_access_decision_service(
    graph_store, config: Optional[AuthorizationConfiguration] = None
) -> AccessDecisionService:
    """Factory function to create AccessDecisionService instance"""
    return AccessDecisionService(graph_store, config)
