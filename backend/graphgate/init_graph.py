"""
Initialize the permission graph: uniqueness constraints and default RBAC seed

Safe to run repeatedly; constraints use IF NOT EXISTS and every node or edge
is MERGEd.
"""

import argparse
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from .config import get_settings
from .database import GraphStore
from .models.graph_models import Identity, Permission, Resource, Role
from .models.authorization_models import utc_now
from .utils.logging_security import sanitize_id_for_log

logger = logging.getLogger(__name__)

SCHEMA_CONSTRAINTS = [
    "CREATE CONSTRAINT identity_id IF NOT EXISTS FOR (i:Identity) REQUIRE i.id IS UNIQUE",
    "CREATE CONSTRAINT role_name IF NOT EXISTS FOR (r:Role) REQUIRE r.name IS UNIQUE",
    "CREATE CONSTRAINT permission_name IF NOT EXISTS FOR (p:Permission) REQUIRE p.name IS UNIQUE",
    "CREATE CONSTRAINT resource_path IF NOT EXISTS FOR (r:Resource) REQUIRE r.path IS UNIQUE",
    "CREATE CONSTRAINT ip_address IF NOT EXISTS FOR (ip:IPAddress) REQUIRE ip.address IS UNIQUE",
    "CREATE CONSTRAINT access_attempt_id IF NOT EXISTS FOR (a:AccessAttempt) REQUIRE a.id IS UNIQUE",
]

DEFAULT_ROLES = [
    Role(name="ADMIN", description="Full access to every route"),
    Role(name="USER", description="Read access to the directory and graph views"),
    Role(name="GUEST", description="No default permissions"),
]

DEFAULT_RESOURCES = [
    Resource(path="/users", name="Users"),
    Resource(path="/roles", name="Roles"),
    Resource(path="/permissions", name="Permissions"),
    Resource(path="/resources", name="Resources"),
    Resource(path="/ips", name="IP Addresses"),
    Resource(path="/access", name="Access Decisions"),
    Resource(path="/graph", name="Graph"),
]

# role -> [(permission name, resource path)]
DEFAULT_GRANTS: Dict[str, List[Tuple[str, str]]] = {
    "USER": [
        ("READ_USERS", "/users"),
        ("READ_RESOURCES", "/resources"),
        ("READ_GRAPH", "/graph"),
        ("READ_ACCESS_DECISION", "/access"),
        ("CREATE_ACCESS_CHECK_PERMISSION", "/access"),
    ],
}

MERGE_ROLE_QUERY = """
    MERGE (r:Role {name: $name})
    SET r.description = $description
"""

MERGE_RESOURCE_QUERY = """
    MERGE (res:Resource {path: $path})
    SET res.name = $name, res.type = $type
"""

MERGE_GRANT_QUERY = """
    MATCH (r:Role {name: $role})
    MATCH (res:Resource {path: $path})
    MERGE (p:Permission {name: $permission})
    MERGE (r)-[:GRANTS]->(p)
    MERGE (p)-[:ACCESS_TO]->(res)
"""

MERGE_IDENTITY_QUERY = """
    MERGE (i:Identity {id: $id})
      ON CREATE SET i.createdAt = datetime($createdAt)
    SET i.username = $username
    WITH i
    UNWIND $roles AS roleName
    MATCH (r:Role {name: roleName})
    MERGE (i)-[:HAS_ROLE]->(r)
"""


async def initialize_graph_schema(store: GraphStore) -> None:
    """Create uniqueness constraints for every node key"""
    for statement in SCHEMA_CONSTRAINTS:
        await store.execute_write(statement)
    logger.info(f"Graph schema initialized ({len(SCHEMA_CONSTRAINTS)} constraints)")


async def seed_default_rbac(store: GraphStore, grants: Optional[Dict[str, List[Tuple[str, str]]]] = None) -> int:
    """
    Seed default roles, resources and permission grants.

    Returns:
        int: Number of grants merged
    """
    grants = DEFAULT_GRANTS if grants is None else grants

    for role in DEFAULT_ROLES:
        await store.execute_write(MERGE_ROLE_QUERY, {"name": role.name, "description": role.description})

    for resource in DEFAULT_RESOURCES:
        await store.execute_write(
            MERGE_RESOURCE_QUERY,
            {"path": resource.path, "name": resource.name, "type": resource.type},
        )

    count = 0
    for role_name, role_grants in grants.items():
        for permission_name, path in role_grants:
            permission = Permission(name=permission_name)
            resource = Resource(path=path)
            await store.execute_write(
                MERGE_GRANT_QUERY,
                {"role": role_name, "permission": permission.name, "path": resource.path},
            )
            count += 1

    logger.info(f"Default RBAC seeded: {len(DEFAULT_ROLES)} roles, {len(DEFAULT_RESOURCES)} resources, {count} grants")
    return count


async def ensure_identity(store: GraphStore, identity: Identity, roles: List[str]) -> None:
    """Create (or update) an identity and attach it to existing roles"""
    await store.execute_write(
        MERGE_IDENTITY_QUERY,
        {
            "id": identity.id,
            "username": identity.username,
            "createdAt": (identity.created_at or utc_now()).isoformat(),
            "roles": [Role(name=role).name for role in roles],
        },
    )
    logger.info(f"Identity {sanitize_id_for_log(identity.id)} ensured with roles {roles}")


async def initialize_graph(admin_id: Optional[str] = None, admin_username: Optional[str] = None) -> None:
    settings = get_settings()
    async with GraphStore.from_settings(settings) as store:
        await initialize_graph_schema(store)
        await seed_default_rbac(store)
        if admin_id:
            await ensure_identity(store, Identity(id=admin_id, username=admin_username), ["ADMIN"])


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Initialize the GraphGate permission graph")
    parser.add_argument("--admin-id", help="Create an identity with the ADMIN role")
    parser.add_argument("--admin-username", help="Display name for the admin identity")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    asyncio.run(initialize_graph(args.admin_id, args.admin_username))


if __name__ == "__main__":
    main()
