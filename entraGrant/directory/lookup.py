"""
Resolution of human-chosen names to directory object identifiers
"""

# Standard library imports
from typing import Dict, List

# Local imports
from .models import AppRole, Principal, Resource
from ..graph.api_client import GraphAPIClient, odata_quote
from ..errors import AmbiguousError, NotFoundError, RoleNotFoundError

PRINCIPAL_FIELDS = "id,appId,displayName,servicePrincipalType"
RESOURCE_FIELDS = "id,appId,displayName,appRoles"


class DirectoryLookup:
    """Looks up principals, resources and app roles in the directory"""

    def __init__(self, api_client: GraphAPIClient):
        """Initialize the lookup.

        Parameters:
            api_client (GraphAPIClient): Authenticated Graph API client
        """
        self.api_client = api_client

    @staticmethod
    def _single(matches: List[Dict], kind: str, key: str) -> Dict:
        if not matches:
            raise NotFoundError(kind, key)
        if len(matches) > 1:
            raise AmbiguousError(kind, key, [m.get('id', '?') for m in matches])
        return matches[0]

    def find_principal_by_name(self, name: str) -> Principal:
        """Find the service principal whose display name is exactly ``name``.

        Raises:
            NotFoundError: No service principal has this display name
            AmbiguousError: Several service principals share this display name
        """
        matches = self.api_client.list_service_principals(
            f"displayName eq {odata_quote(name)}", select=PRINCIPAL_FIELDS
        )
        return Principal.from_graph(self._single(matches, "service principal", name))

    def find_principal_by_id(self, object_id: str) -> Principal:
        """Find a service principal by its object ID.

        Raises:
            NotFoundError: No service principal has this object ID
        """
        data = self.api_client.get_service_principal(object_id, select=PRINCIPAL_FIELDS)
        if not data:
            raise NotFoundError("service principal", object_id)
        return Principal.from_graph(data)

    def find_resource_by_well_known_id(self, app_id: str) -> Resource:
        """Find the service principal of an API by its application ID.

        Raises:
            NotFoundError: The API has no service principal in this tenant
            AmbiguousError: More than one service principal carries this appId
        """
        matches = self.api_client.list_service_principals(
            f"appId eq {odata_quote(app_id)}", select=RESOURCE_FIELDS
        )
        return Resource.from_graph(self._single(matches, "resource", app_id))

    @staticmethod
    def resolve_app_role(resource: Resource, permission_name: str) -> AppRole:
        """Find the application permission ``permission_name`` on ``resource``.

        Roles that can only be granted to users (delegated-style roles) are ignored
        even when their value matches.

        Raises:
            RoleNotFoundError: No application permission with this value exists
        """
        for role in resource.app_roles:
            if role.value == permission_name and role.is_application_permission:
                return role
        raise RoleNotFoundError(permission_name, resource.display_name or resource.app_id)
