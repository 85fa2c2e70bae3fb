"""
Unit tests for AuditRecorder.

Tests the single-write audit record parameters and the paginated listing
using a mocked graph store.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from graphgate.models.authorization_models import (
    ActionType,
    DecisionReason,
    DecisionStatus,
    IdentityContext,
)
from graphgate.services.authorization.audit_recorder import (
    COUNT_ATTEMPTS_QUERY,
    LIST_ATTEMPTS_QUERY,
    MAX_PAGE_SIZE,
    RECORD_ATTEMPT_QUERY,
    AuditRecorder,
)
from graphgate.services.authorization.exceptions import AuditWriteError, StoreUnavailableError


@pytest.fixture
def identity() -> IdentityContext:
    return IdentityContext(identity_id="u-1", roles=["USER"], username="alice")


def _recorder(write_result=None, read_results=None) -> AuditRecorder:
    store = MagicMock()
    store.execute_write = AsyncMock(return_value=write_result)
    store.execute_read = AsyncMock(side_effect=list(read_results or []))
    return AuditRecorder(store)


async def _record(recorder: AuditRecorder, identity: IdentityContext, status=DecisionStatus.AUTHORIZED, reason=DecisionReason.FIRST_IP):
    return await recorder.record(
        identity=identity,
        action=ActionType.READ,
        resource_path="/users",
        method="get",
        address="10.0.0.1",
        status=status,
        reason=reason,
    )


@pytest.mark.unit
class TestRecord:
    @pytest.mark.asyncio
    async def test_single_write_with_attempt_fields(self, identity: IdentityContext) -> None:
        recorder = _recorder(write_result=[{"id": "x"}])

        attempt_id = await _record(recorder, identity)

        recorder.graph_store.execute_write.assert_awaited_once()
        query, params = recorder.graph_store.execute_write.await_args.args
        assert query == RECORD_ATTEMPT_QUERY
        assert params["attemptId"] == attempt_id
        assert params["identityId"] == "u-1"
        assert params["username"] == "alice"
        assert params["method"] == "GET"
        assert params["action"] == "READ"
        assert params["path"] == "/users"
        assert params["address"] == "10.0.0.1"
        assert params["status"] == "AUTHORIZED"
        assert params["reason"] == "first_ip"

    @pytest.mark.asyncio
    async def test_attempt_ids_are_unique(self, identity: IdentityContext) -> None:
        recorder = _recorder(write_result=[{"id": "x"}])

        first = await _record(recorder, identity)
        second = await _record(recorder, identity)

        assert first != second

    @pytest.mark.asyncio
    async def test_refused_status_is_passed_through(self, identity: IdentityContext) -> None:
        recorder = _recorder(write_result=[{"id": "x"}])

        await _record(recorder, identity, DecisionStatus.SUSPICIOUS, DecisionReason.NEW_IP_DETECTED)

        _, params = recorder.graph_store.execute_write.await_args.args
        assert params["status"] == "SUSPICIOUS"
        assert params["reason"] == "new_ip_detected"

    @pytest.mark.asyncio
    async def test_store_failure_becomes_audit_write_error(self, identity: IdentityContext) -> None:
        recorder = _recorder()
        recorder.graph_store.execute_write.side_effect = StoreUnavailableError("down", mode="write")

        with pytest.raises(AuditWriteError):
            await _record(recorder, identity)

    @pytest.mark.asyncio
    async def test_unknown_identity_is_audit_write_error(self, identity: IdentityContext) -> None:
        recorder = _recorder(write_result=[])

        with pytest.raises(AuditWriteError) as exc_info:
            await _record(recorder, identity)
        assert "not found" in exc_info.value.message


@pytest.mark.unit
class TestQueryShape:
    """Guards on the write query's invariants."""

    def test_connects_from_only_for_authorized(self) -> None:
        assert "CASE WHEN $status = 'AUTHORIZED'" in RECORD_ATTEMPT_QUERY
        assert "MERGE (i)-[c:CONNECTS_FROM]->(ip)" in RECORD_ATTEMPT_QUERY

    def test_attempt_is_created_not_merged(self) -> None:
        assert "CREATE (attempt:AccessAttempt" in RECORD_ATTEMPT_QUERY
        assert "MERGE (attempt" not in RECORD_ATTEMPT_QUERY


@pytest.mark.unit
class TestListAttempts:
    @pytest.mark.asyncio
    async def test_filters_and_pagination(self) -> None:
        row = {
            "id": "a-1",
            "timestamp": "2026-01-01T00:00:00Z",
            "method": "GET",
            "action": "READ",
            "path": "/users",
            "status": "REFUSED",
            "reason": "no_permission",
            "identity_id": "u-1",
            "username": "alice",
            "ip_address": "10.0.0.1",
        }
        recorder = _recorder(read_results=[[{"total": 7}], [row]])

        page = await recorder.list_attempts(identity_id="u-1", status=DecisionStatus.REFUSED, limit=1, offset=3)

        assert page.total == 7
        assert page.limit == 1
        assert page.offset == 3
        assert page.items[0].reason == "no_permission"

        count_call, list_call = recorder.graph_store.execute_read.await_args_list
        assert count_call.args == (
            COUNT_ATTEMPTS_QUERY,
            {"identityId": "u-1", "status": "REFUSED", "ipAddress": None},
        )
        assert list_call.args[0] == LIST_ATTEMPTS_QUERY
        assert list_call.args[1]["limit"] == 1
        assert list_call.args[1]["offset"] == 3

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self) -> None:
        recorder = _recorder(read_results=[[{"total": 0}], []])

        page = await recorder.list_attempts(limit=10_000, offset=-5)

        assert page.limit == MAX_PAGE_SIZE
        assert page.offset == 0
        assert page.items == []
