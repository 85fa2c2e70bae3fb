"""
IP Reputation Tracker

Classifies a request's origin address against the cumulative set of
addresses an identity has been AUTHORIZED from (its CONNECTS_FROM edges).
This is an anomaly heuristic, not an access-control boundary.
"""

import logging
from typing import List

from ...models.authorization_models import IdentityContext, IpState
from ...utils.logging_security import sanitize_id_for_log, sanitize_ip_for_log

logger = logging.getLogger(__name__)

# Both flags come from one read so they describe the same snapshot
IP_STATE_QUERY = """
    OPTIONAL MATCH (:Identity {id: $identityId})-[:CONNECTS_FROM]->(ip:IPAddress)
    WITH collect(ip.address) AS addresses
    RETURN size(addresses) = 0 AS isFirstIp, $address IN addresses AS isKnownIp
"""

KNOWN_ADDRESSES_QUERY = """
    MATCH (:Identity {id: $identityId})-[:CONNECTS_FROM]->(ip:IPAddress)
    RETURN ip.address AS address
    ORDER BY ip.address
"""


class IpReputationTracker:
    """Per-identity origin address history lookups. Never cached."""

    def __init__(self, graph_store):
        self.graph_store = graph_store

    async def ip_state(self, identity: IdentityContext, address: str) -> IpState:
        rows = await self.graph_store.execute_read(
            IP_STATE_QUERY,
            {"identityId": identity.identity_id, "address": address},
        )

        if not rows:
            state = IpState(is_first_ip=True, is_known_ip=False)
        else:
            state = IpState(
                is_first_ip=bool(rows[0].get("isFirstIp")),
                is_known_ip=bool(rows[0].get("isKnownIp")),
            )

        logger.debug(
            f"IP state for identity {sanitize_id_for_log(identity.identity_id)} from "
            f"{sanitize_ip_for_log(address)}: first={state.is_first_ip} known={state.is_known_ip}"
        )
        return state

    async def known_addresses(self, identity_id: str) -> List[str]:
        rows = await self.graph_store.execute_read(KNOWN_ADDRESSES_QUERY, {"identityId": identity_id})
        return [row["address"] for row in rows if row.get("address")]
