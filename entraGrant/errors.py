"""
Exceptions raised by the API clients and the directory components
"""

from typing import List, Optional


class EntraGrantError(Exception):
    """Base class for all entra-grant errors"""


class NotFoundError(EntraGrantError):
    """A lookup matched zero directory objects."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"No {kind} found matching '{key}'")


class AmbiguousError(EntraGrantError):
    """A lookup matched more than one directory object.

    Display names are not unique in a directory, so the caller has to supply a
    more specific identifier (e.g. the object ID) instead of picking one.
    """

    def __init__(self, kind: str, key: str, object_ids: List[str]):
        self.kind = kind
        self.key = key
        self.object_ids = list(object_ids)
        super().__init__(
            f"{len(self.object_ids)} {kind}s match '{key}' ({', '.join(self.object_ids)}). "
            f"Use an object ID instead."
        )


class RoleNotFoundError(EntraGrantError):
    """A permission name is not an application permission of the resource."""

    def __init__(self, permission: str, resource_name: str):
        self.permission = permission
        self.resource_name = resource_name
        super().__init__(f"'{permission}' is not an application permission of '{resource_name}'")


class ApiError(EntraGrantError):
    """A directory or ARM call failed.

    ``status_code`` is None when no HTTP response was received (e.g. a timeout).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        self.message = message
        if status_code is not None:
            super().__init__(f"HTTP {status_code}: {message}")
        else:
            super().__init__(message)


class AuthError(EntraGrantError):
    """No authenticated session could be established, or the token was rejected."""


class ConnectivityError(EntraGrantError):
    """The API endpoint could not be reached at all."""
