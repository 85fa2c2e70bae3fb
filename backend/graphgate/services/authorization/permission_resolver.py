"""
Permission Resolver

Decides whether an identity's role set grants an action on a route by
walking Identity -HAS_ROLE-> Role -GRANTS-> Permission -ACCESS_TO-> Resource.
"""

import logging
from typing import Optional

from ...models.authorization_models import ActionType, AuthorizationConfiguration, IdentityContext
from ...utils.logging_security import sanitize_id_for_log, sanitize_path_for_log
from .exceptions import MalformedPermissionTokenError
from .tokens import build_permission_name, validate_permission_name

logger = logging.getLogger(__name__)

ADMIN_ROLE_QUERY = """
    MATCH (i:Identity {id: $identityId})-[:HAS_ROLE]->(r:Role {name: $adminRole})
    RETURN count(r) > 0 AS isAdmin
"""

# A Resource matches the exact route or any ancestor of it (hierarchical routes)
PERMISSION_QUERY = """
    MATCH (i:Identity {id: $identityId})-[:HAS_ROLE]->(:Role)
          -[:GRANTS]->(p:Permission {name: $permissionName})
          -[:ACCESS_TO]->(res:Resource)
    WHERE res.path = $path OR $path STARTS WITH res.path + '/'
    RETURN count(p) > 0 AS hasPermission
"""

NAMED_PERMISSION_QUERY = """
    MATCH (i:Identity {id: $identityId})-[:HAS_ROLE]->(:Role)
          -[:GRANTS]->(p:Permission {name: $permissionName})
    RETURN count(p) > 0 AS hasPermission
"""


class PermissionResolver:
    """
    Resolves role-based permissions against the graph store.

    The ADMIN override is evaluated before any permission-name work and is
    absolute. Store errors propagate to the caller, which fails closed.
    """

    def __init__(self, graph_store, config: Optional[AuthorizationConfiguration] = None):
        self.graph_store = graph_store
        self.config = config or AuthorizationConfiguration()

    async def resolve_permission(self, identity: IdentityContext, action: ActionType, resource_path: str) -> bool:
        """
        Check whether the identity may perform ``action`` on ``resource_path``.

        Args:
            identity: Resolved identity context
            action: Requested action
            resource_path: Canonical route path, e.g. "/users"

        Returns:
            bool: True if granted

        Raises:
            GraphStoreError: the store could not answer
        """
        if await self.is_admin(identity):
            logger.debug(f"Administrative override for identity {sanitize_id_for_log(identity.identity_id)}")
            return True

        try:
            permission_name = build_permission_name(action, resource_path)
        except MalformedPermissionTokenError as e:
            logger.info(f"No permission token for {sanitize_path_for_log(resource_path)}: {e.message}")
            return False

        rows = await self.graph_store.execute_read(
            PERMISSION_QUERY,
            {
                "identityId": identity.identity_id,
                "permissionName": permission_name,
                "path": resource_path,
            },
        )
        granted = bool(rows and rows[0].get("hasPermission"))

        logger.debug(
            f"Permission {permission_name} for identity {sanitize_id_for_log(identity.identity_id)} "
            f"on {sanitize_path_for_log(resource_path)}: {granted}"
        )
        return granted

    async def is_admin(self, identity: IdentityContext) -> bool:
        """Session roles are checked first; the graph is consulted only if they do not carry ADMIN."""
        if identity.has_role(self.config.admin_role):
            return True

        rows = await self.graph_store.execute_read(
            ADMIN_ROLE_QUERY,
            {"identityId": identity.identity_id, "adminRole": self.config.admin_role},
        )
        return bool(rows and rows[0].get("isAdmin"))

    async def check_named_permission(self, identity: IdentityContext, permission_name: str) -> bool:
        """Check whether any of the identity's roles grants ``permission_name``."""
        validate_permission_name(permission_name)

        if await self.is_admin(identity):
            return True

        rows = await self.graph_store.execute_read(
            NAMED_PERMISSION_QUERY,
            {"identityId": identity.identity_id, "permissionName": permission_name},
        )
        return bool(rows and rows[0].get("hasPermission"))
