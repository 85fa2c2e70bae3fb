"""
Unit test fixtures and helpers.

Provides an in-memory permission graph that stands in for the Neo4j-backed
resolver, tracker and recorder, so decision pipeline and HTTP tests run
without a database.
"""

import asyncio
import uuid
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

import pytest
from fastapi import FastAPI

from graphgate.config import Settings
from graphgate.main import create_app
from graphgate.models.authorization_models import (
    AccessAttemptPage,
    AccessAttemptRecord,
    ActionType,
    AuthorizationConfiguration,
    DecisionReason,
    DecisionStatus,
    IdentityContext,
    IpState,
    utc_now,
)
from graphgate.services.authorization.exceptions import (
    AuditWriteError,
    MalformedPermissionTokenError,
    StoreUnavailableError,
)
from graphgate.services.authorization.service import AccessDecisionService
from graphgate.services.authorization.tokens import build_permission_name, validate_permission_name
from graphgate.services.session_store import InMemorySessionStore


class InMemoryAccessGraph:
    """
    Dict-backed permission graph with the same semantics as the Cypher
    queries: hierarchical resource matching, ADMIN override, CONNECTS_FROM
    merged only for AUTHORIZED attempts.
    """

    def __init__(self, admin_role: str = "ADMIN") -> None:
        self.admin_role = admin_role
        self.usernames: Dict[str, Optional[str]] = {}
        self.identity_roles: Dict[str, Set[str]] = defaultdict(set)
        self.grants: Dict[str, Set[Tuple[str, str]]] = defaultdict(set)
        self.connects_from: Dict[str, Set[str]] = defaultdict(set)
        self.attempts: List[AccessAttemptRecord] = []
        self.fail_reads = False
        self.fail_writes = False
        self.read_calls = 0
        self.write_calls = 0

    def add_identity(self, identity_id: str, username: Optional[str] = None, roles: Optional[List[str]] = None) -> None:
        self.usernames[identity_id] = username
        self.identity_roles[identity_id].update(roles or [])

    def grant(self, role: str, permission_name: str, path: str) -> None:
        self.grants[role].add((validate_permission_name(permission_name), path))

    async def _read(self) -> None:
        self.read_calls += 1
        await asyncio.sleep(0)
        if self.fail_reads:
            raise StoreUnavailableError("Graph read timed out after 2.0s", mode="read")

    def _is_admin(self, identity: IdentityContext) -> bool:
        return identity.has_role(self.admin_role) or self.admin_role in self.identity_roles[identity.identity_id]

    # Permission Resolver surface

    async def resolve_permission(self, identity: IdentityContext, action: ActionType, resource_path: str) -> bool:
        await self._read()
        if self._is_admin(identity):
            return True
        try:
            permission_name = build_permission_name(action, resource_path)
        except MalformedPermissionTokenError:
            return False

        for role in self.identity_roles[identity.identity_id]:
            for name, path in self.grants[role]:
                if name == permission_name and (resource_path == path or resource_path.startswith(path + "/")):
                    return True
        return False

    async def check_named_permission(self, identity: IdentityContext, permission_name: str) -> bool:
        validate_permission_name(permission_name)
        await self._read()
        if self._is_admin(identity):
            return True
        return any(
            name == permission_name
            for role in self.identity_roles[identity.identity_id]
            for name, _ in self.grants[role]
        )

    # IP Reputation Tracker surface

    async def ip_state(self, identity: IdentityContext, address: str) -> IpState:
        await self._read()
        addresses = self.connects_from[identity.identity_id]
        return IpState(is_first_ip=len(addresses) == 0, is_known_ip=address in addresses)

    async def known_addresses(self, identity_id: str) -> List[str]:
        await self._read()
        return sorted(self.connects_from[identity_id])

    # Audit Recorder surface

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
        self.write_calls += 1
        await asyncio.sleep(0)
        if self.fail_writes:
            raise AuditWriteError("Failed to record access attempt: store unavailable")
        if identity.identity_id not in self.usernames:
            raise AuditWriteError(f"Identity {identity.identity_id} not found")

        attempt_id = str(uuid.uuid4())
        self.attempts.append(
            AccessAttemptRecord(
                id=attempt_id,
                timestamp=utc_now().isoformat(),
                method=method,
                action=action.value if action else None,
                path=resource_path,
                status=status.value,
                reason=reason.value,
                identity_id=identity.identity_id,
                username=identity.username,
                ip_address=address,
            )
        )
        if status == DecisionStatus.AUTHORIZED:
            self.connects_from[identity.identity_id].add(address)
        return attempt_id

    async def list_attempts(
        self,
        identity_id: Optional[str] = None,
        status: Optional[DecisionStatus] = None,
        ip_address: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> AccessAttemptPage:
        await self._read()
        matching = [
            a
            for a in reversed(self.attempts)
            if (identity_id is None or a.identity_id == identity_id)
            and (status is None or a.status == status.value)
            and (ip_address is None or a.ip_address == ip_address)
        ]
        return AccessAttemptPage(items=matching[offset : offset + limit], total=len(matching), limit=limit, offset=offset)

    def attempts_for(self, identity_id: str) -> List[AccessAttemptRecord]:
        return [a for a in self.attempts if a.identity_id == identity_id]


@pytest.fixture
def access_graph() -> InMemoryAccessGraph:
    """Graph seeded with a USER (alice), a role-less identity (bob) and an ADMIN (root)."""
    graph = InMemoryAccessGraph()
    graph.grant("USER", "READ_USERS", "/users")
    graph.grant("USER", "READ_RESOURCES", "/resources")
    graph.grant("USER", "READ_ACCESS_DECISION", "/access")
    graph.grant("USER", "CREATE_ACCESS_CHECK_PERMISSION", "/access")
    graph.add_identity("alice-id", "alice", ["USER"])
    graph.add_identity("bob-id", "bob", [])
    graph.add_identity("root-id", "root", ["ADMIN"])
    return graph


@pytest.fixture
def alice() -> IdentityContext:
    return IdentityContext(identity_id="alice-id", roles=["USER"], username="alice")


@pytest.fixture
def bob() -> IdentityContext:
    return IdentityContext(identity_id="bob-id", roles=[], username="bob")


@pytest.fixture
def root() -> IdentityContext:
    return IdentityContext(identity_id="root-id", roles=["ADMIN"], username="root")


@pytest.fixture
def service_factory(access_graph: InMemoryAccessGraph):
    """Build an AccessDecisionService over the in-memory graph with config overrides."""

    def _build(**config) -> AccessDecisionService:
        return AccessDecisionService(
            config=AuthorizationConfiguration(**config),
            permission_resolver=access_graph,
            ip_tracker=access_graph,
            audit_recorder=access_graph,
        )

    return _build


@pytest.fixture
def decision_service(service_factory) -> AccessDecisionService:
    return service_factory()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    """Sessions for alice, bob and root keyed by "<name>-session"."""
    store = InMemorySessionStore()
    sessions = {
        "alice-session": {"identityId": "alice-id", "roles": ["USER"], "username": "alice"},
        "bob-session": {"identityId": "bob-id", "roles": [], "username": "bob"},
        "root-session": {"identityId": "root-id", "roles": ["ADMIN"], "username": "root"},
    }
    for session_id, data in sessions.items():
        asyncio.run(store.set(session_id, data))
    return store


@pytest.fixture
def app_factory(service_factory, session_store):
    """Build the application around the in-memory graph, plus a couple of protected routes."""

    def _build(settings: Optional[Settings] = None, **config) -> FastAPI:
        app = create_app(
            settings=settings or Settings(_env_file=None),
            session_store=session_store,
            decision_service=service_factory(**config),
        )

        @app.get("/users")
        async def list_users():
            return {"users": ["alice", "bob", "root"]}

        @app.delete("/users/{user_id}")
        async def delete_user(user_id: str):
            return {"deleted": user_id}

        @app.get("/public/info")
        async def public_info():
            return {"public": True}

        return app

    return _build


def session_headers(session_id: str, ip: str = "10.0.0.1") -> Dict[str, str]:
    return {"X-Session-Id": session_id, "X-Forwarded-For": ip}


@pytest.fixture
def headers_for():
    return session_headers
