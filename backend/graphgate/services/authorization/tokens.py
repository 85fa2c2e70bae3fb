"""
Permission token derivation.

Pure mappings from HTTP method to action and from route path to permission
name. Permission names have the fixed form ``{ACTION}_{RESOURCE_TOKEN}``:

    >>> build_permission_name(ActionType.READ, "/dashboard")
    'READ_DASHBOARD'
    >>> build_permission_name(ActionType.UPDATE, "/user-profiles/settings/")
    'UPDATE_USER_PROFILES_SETTINGS'
"""

import re
from typing import Dict, Union

from ...models.authorization_models import ActionType
from .exceptions import MalformedPermissionTokenError

HTTP_METHOD_ACTIONS: Dict[str, ActionType] = {
    "GET": ActionType.READ,
    "POST": ActionType.CREATE,
    "PUT": ActionType.UPDATE,
    "PATCH": ActionType.UPDATE,
    "DELETE": ActionType.DELETE,
}

_SEPARATORS = re.compile(r"[/\-]+")
_RESOURCE_TOKEN = re.compile(r"^[A-Z0-9]+(?:_[A-Z0-9]+)*$")
PERMISSION_NAME_PATTERN = re.compile(
    r"^(?P<action>%s)_(?P<token>[A-Z0-9]+(?:_[A-Z0-9]+)*)$" % "|".join(a.value for a in ActionType)
)


def http_method_to_action(method: str) -> ActionType:
    """Map an HTTP method to its action. Unknown methods map to EXECUTE."""
    return HTTP_METHOD_ACTIONS.get((method or "").upper(), ActionType.EXECUTE)


def derive_resource_token(resource_path: str) -> str:
    """
    Derive the resource token from a canonical route path.

    Separators ("/" and "-") collapse to a single underscore and
    leading/trailing separators are dropped before uppercasing.

    Raises:
        MalformedPermissionTokenError: path is empty after stripping or
            contains characters outside [A-Za-z0-9/-]
    """
    stripped = (resource_path or "").strip("/-")
    token = _SEPARATORS.sub("_", stripped).upper()

    if not token or not _RESOURCE_TOKEN.match(token):
        raise MalformedPermissionTokenError(resource_path)

    return token


def build_permission_name(action: Union[ActionType, str], resource_path: str) -> str:
    """Build the canonical permission name for an action on a route."""
    action_value = action.value if isinstance(action, ActionType) else ActionType(action).value
    return f"{action_value}_{derive_resource_token(resource_path)}"


def validate_permission_name(name: str) -> str:
    """
    Validate a permission name against the fixed ``{ACTION}_{TOKEN}`` format.

    Returns the name unchanged when valid.
    """
    if not isinstance(name, str) or not PERMISSION_NAME_PATTERN.match(name):
        raise MalformedPermissionTokenError(name, f"Invalid permission name: {name!r}")
    return name
