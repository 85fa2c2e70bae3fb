"""
Access Decision Exceptions

Error taxonomy for the access decision pipeline. Each class maps to a fixed
decision outcome; see AccessDecisionService for where they are handled.
"""

from typing import Optional


class AuthorizationError(Exception):
    """Base class for access decision errors."""

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)


class IdentityMissingError(AuthorizationError):
    """Raised when a protected request carries no resolvable identity.

    Maps to REFUSED/no_session (HTTP 401). Never retried and never audited,
    since there is no identity to attach an access attempt to.
    """


class GraphStoreError(AuthorizationError):
    """Raised when a graph store query fails.

    Attributes:
        mode: "read" or "write"
    """

    def __init__(self, message: str = None, mode: Optional[str] = None):
        self.mode = mode
        super().__init__(message)


class StoreUnavailableError(GraphStoreError):
    """Raised when the graph store is unreachable or a call exceeds its timeout.

    The decision fails closed: REFUSED/system_error (HTTP 500).

    Example:
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError("Graph read timed out after 2.0s", mode="read") from e
    """


class MalformedPermissionTokenError(AuthorizationError):
    """Raised when a resource path or permission name yields no valid token.

    Treated as a non-match (REFUSED/no_permission), not as a system error.

    Attributes:
        value: The offending path or permission name
    """

    def __init__(self, value: str = None, message: str = None):
        self.value = value
        super().__init__(message or f"Malformed permission token derived from: {value!r}")


class AuditWriteError(AuthorizationError):
    """Raised when an access attempt could not be persisted.

    The caller-visible decision is unaffected. The failure is logged and
    counted as a reliability signal.
    """
