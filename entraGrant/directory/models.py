"""
Typed records for the directory objects the reconciler works with
"""

# Standard library imports
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

APPLICATION_MEMBER_TYPE = "Application"


@dataclass(frozen=True)
class Principal:
    """A service principal that can be granted application permissions."""
    object_id: str
    display_name: str
    app_id: Optional[str] = None
    service_principal_type: Optional[str] = None

    @classmethod
    def from_graph(cls, data: Dict) -> 'Principal':
        return cls(
            object_id=data['id'],
            display_name=data.get('displayName') or '',
            app_id=data.get('appId'),
            service_principal_type=data.get('servicePrincipalType'),
        )


@dataclass(frozen=True)
class AppRole:
    """An application permission exposed by a resource."""
    id: str
    value: str
    allowed_member_types: Tuple[str, ...] = ()
    display_name: Optional[str] = None
    is_enabled: bool = True

    @classmethod
    def from_graph(cls, data: Dict) -> 'AppRole':
        return cls(
            id=data['id'],
            value=data.get('value') or '',
            allowed_member_types=tuple(data.get('allowedMemberTypes') or ()),
            display_name=data.get('displayName'),
            is_enabled=data.get('isEnabled', True),
        )

    @property
    def is_application_permission(self) -> bool:
        return APPLICATION_MEMBER_TYPE in self.allowed_member_types


@dataclass(frozen=True)
class Resource:
    """A service principal representing an API (e.g. Microsoft Graph)."""
    object_id: str
    app_id: str
    display_name: str
    app_roles: Tuple[AppRole, ...] = field(default=())

    @classmethod
    def from_graph(cls, data: Dict) -> 'Resource':
        return cls(
            object_id=data['id'],
            app_id=data.get('appId') or '',
            display_name=data.get('displayName') or '',
            app_roles=tuple(AppRole.from_graph(role) for role in data.get('appRoles') or []),
        )


@dataclass(frozen=True)
class AppRoleAssignment:
    """Grant of one app role on a resource to a principal.

    ``id`` is assigned by the directory and is None until the assignment has been
    created. Two assignments are the same grant when their ``key`` matches.
    """
    principal_id: str
    resource_id: str
    app_role_id: str
    id: Optional[str] = None

    @classmethod
    def from_graph(cls, data: Dict) -> 'AppRoleAssignment':
        return cls(
            principal_id=data.get('principalId') or '',
            resource_id=data.get('resourceId') or '',
            app_role_id=data.get('appRoleId') or '',
            id=data.get('id'),
        )

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.principal_id.lower(), self.resource_id.lower(), self.app_role_id.lower())

    def to_request_body(self) -> Dict[str, str]:
        return {
            "principalId": self.principal_id,
            "resourceId": self.resource_id,
            "appRoleId": self.app_role_id,
        }
