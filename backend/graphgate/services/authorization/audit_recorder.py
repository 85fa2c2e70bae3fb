"""
Audit Recorder

Persists every decision made for a resolved identity as an immutable
AccessAttempt node, and serves the read-only audit listing.

AUDIT GUARANTEES:
- One AccessAttempt per decision, created (never merged, never updated)
- IPAddress and Resource nodes are merged; lastSeen is refreshed on every attempt
- CONNECTS_FROM is merged only for AUTHORIZED decisions, so logging a
  SUSPICIOUS address never whitelists it
"""

import logging
import uuid
from typing import Any, Dict, Optional

from ...models.authorization_models import (
    AccessAttemptPage,
    AccessAttemptRecord,
    ActionType,
    DecisionReason,
    DecisionStatus,
    IdentityContext,
    utc_now,
)
from ...utils.logging_security import sanitize_id_for_log, sanitize_path_for_log
from .exceptions import AuditWriteError, GraphStoreError

logger = logging.getLogger(__name__)

RECORD_ATTEMPT_QUERY = """
    MATCH (i:Identity {id: $identityId})
    MERGE (ip:IPAddress {address: $address})
      ON CREATE SET ip.firstSeen = datetime($timestamp)
    SET ip.lastSeen = datetime($timestamp)
    MERGE (res:Resource {path: $path})
      ON CREATE SET res.name = $path, res.type = 'route'
    CREATE (attempt:AccessAttempt {
      id: $attemptId,
      timestamp: datetime($timestamp),
      method: $method,
      action: $action,
      path: $path,
      status: $status,
      reason: $reason,
      identityId: $identityId,
      username: $username,
      ipAddress: $address
    })
    CREATE (i)-[:TRIED_TO_ACCESS]->(attempt)
    CREATE (attempt)-[:TARGET]->(res)
    CREATE (attempt)-[:FROM_IP]->(ip)
    FOREACH (_ IN CASE WHEN $status = 'AUTHORIZED' THEN [1] ELSE [] END |
      MERGE (i)-[c:CONNECTS_FROM]->(ip)
        ON CREATE SET c.since = datetime($timestamp)
    )
    RETURN attempt.id AS id
"""

_ATTEMPT_FILTER = """
    MATCH (attempt:AccessAttempt)
    WHERE ($identityId IS NULL OR attempt.identityId = $identityId)
      AND ($status IS NULL OR attempt.status = $status)
      AND ($ipAddress IS NULL OR attempt.ipAddress = $ipAddress)
"""

COUNT_ATTEMPTS_QUERY = _ATTEMPT_FILTER + """
    RETURN count(attempt) AS total
"""

LIST_ATTEMPTS_QUERY = _ATTEMPT_FILTER + """
    RETURN
      attempt.id AS id,
      toString(attempt.timestamp) AS timestamp,
      attempt.method AS method,
      attempt.action AS action,
      attempt.path AS path,
      attempt.status AS status,
      attempt.reason AS reason,
      attempt.identityId AS identity_id,
      attempt.username AS username,
      attempt.ipAddress AS ip_address
    ORDER BY attempt.timestamp DESC
    SKIP $offset
    LIMIT $limit
"""

MAX_PAGE_SIZE = 500


class AuditRecorder:
    """Writes and lists AccessAttempt records"""

    def __init__(self, graph_store):
        self.graph_store = graph_store

    async def record(
        self,
        identity: IdentityContext,
        action: Optional[ActionType],
        resource_path: str,
        method: str,
        address: str,
        status: DecisionStatus,
        reason: DecisionReason,
    ) -> str:
        """
        Persist one access attempt as a single write.

        Returns:
            str: The new AccessAttempt id

        Raises:
            AuditWriteError: the write failed or the identity is absent from the graph
        """
        attempt_id = str(uuid.uuid4())
        params: Dict[str, Any] = {
            "identityId": identity.identity_id,
            "username": identity.username,
            "attemptId": attempt_id,
            "timestamp": utc_now().isoformat(),
            "method": (method or "").upper(),
            "action": action.value if action else None,
            "path": resource_path,
            "address": address,
            "status": status.value,
            "reason": reason.value,
        }

        try:
            rows = await self.graph_store.execute_write(RECORD_ATTEMPT_QUERY, params)
        except GraphStoreError as e:
            raise AuditWriteError(f"Failed to record access attempt {attempt_id}: {e.message}") from e

        if not rows:
            raise AuditWriteError(
                f"Identity {sanitize_id_for_log(identity.identity_id)} not found; access attempt {attempt_id} not recorded"
            )

        logger.debug(
            f"Access attempt {attempt_id} recorded: identity={sanitize_id_for_log(identity.identity_id)} "
            f"path={sanitize_path_for_log(resource_path)} status={status.value}"
        )
        return attempt_id

    async def list_attempts(
        self,
        identity_id: Optional[str] = None,
        status: Optional[DecisionStatus] = None,
        ip_address: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> AccessAttemptPage:
        """List access attempts, newest first, with the unpaginated total."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        filters = {
            "identityId": identity_id,
            "status": status.value if status else None,
            "ipAddress": ip_address,
        }

        count_rows = await self.graph_store.execute_read(COUNT_ATTEMPTS_QUERY, filters)
        rows = await self.graph_store.execute_read(LIST_ATTEMPTS_QUERY, {**filters, "limit": limit, "offset": offset})

        return AccessAttemptPage(
            items=[AccessAttemptRecord(**row) for row in rows],
            total=count_rows[0]["total"] if count_rows else 0,
            limit=limit,
            offset=offset,
        )
