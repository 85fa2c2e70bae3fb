"""
Security Logging Utilities for GraphGate
Prevents log injection (CWE-117) from request-controlled values such as
paths, forwarded addresses and session-supplied identifiers.
"""

import ipaddress
import re
from typing import Any, Optional
from urllib.parse import quote

# CR/LF, escaped newlines, NUL and other control characters
_LOG_INJECTION = re.compile(r"[\r\n]|%0[ad]|\\[rn]|[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", re.IGNORECASE)
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._@:/\-\s]")


def sanitize_for_log(value: Optional[Any], max_length: int = 100) -> str:
    """
    Sanitize any value for safe logging.

    Args:
        value: Value to sanitize
        max_length: Maximum length of output

    Returns:
        str: Sanitized string safe for logging
    """
    if value is None:
        return "null"

    str_value = str(value)
    if len(str_value) > max_length:
        str_value = str_value[:max_length] + "..."

    str_value = _LOG_INJECTION.sub("", str_value)
    str_value = _UNSAFE_CHARS.sub("", str_value).strip()

    return str_value or "[sanitized]"


def sanitize_id_for_log(id_value: Optional[Any]) -> str:
    """Sanitize identity or record ids."""
    if id_value is None:
        return "[no_id]"
    return sanitize_for_log(id_value, max_length=64)


def sanitize_path_for_log(path: Optional[str]) -> str:
    """Sanitize a route path, URL-encoding anything outside the safe set."""
    if not path:
        return "[no_path]"
    return sanitize_for_log(quote(path, safe="/.:-_"), max_length=200)


def sanitize_ip_for_log(ip_address: Optional[str]) -> str:
    """Return the address unchanged when it parses as IPv4/IPv6, else sanitize."""
    if not ip_address:
        return "[no_ip]"
    try:
        return str(ipaddress.ip_address(ip_address))
    except ValueError:
        return sanitize_for_log(ip_address, max_length=45)


def create_decision_log_entry(
    identity_id: Optional[str],
    method: str,
    path: str,
    ip_address: Optional[str],
    status: str,
    reason: str,
    duration_ms: Optional[int] = None,
) -> str:
    """
    Create a standardized, injection-safe log line for an access decision.

    Example:
        identity=42 | request=GET /users | ip=10.0.0.1 | status=AUTHORIZED | reason=known_ip
    """
    parts = [
        f"identity={sanitize_id_for_log(identity_id)}",
        f"request={sanitize_for_log(method, max_length=10)} {sanitize_path_for_log(path)}",
        f"ip={sanitize_ip_for_log(ip_address)}",
        f"status={status}",
        f"reason={reason}",
    ]
    if duration_ms is not None:
        parts.append(f"duration_ms={duration_ms}")

    return " | ".join(parts)
