"""
Microsoft Graph API client for service principals and app role assignments
"""

# Standard library imports
from typing import List, Dict, Optional
from urllib.parse import quote

# Third-party imports
import requests

# Local imports
from ..directory.models import AppRoleAssignment
from ..errors import ApiError, AuthError
from ..http_client import BaseAPIClient


def odata_quote(value: str) -> str:
    """Quote a string literal for use in an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"


class GraphAPIClient(BaseAPIClient):
    """Client for Microsoft Graph API operations"""

    domain = "graph.microsoft.com"

    def _url(self, path: str, version: str = "v1.0") -> str:
        if path.startswith("https://"):
            return path
        return f"https://{self.domain}/{version}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, body: Dict = None, version: str = "v1.0") -> requests.Response:
        return self._send(method, self._url(path, version), body)

    def _get_paged(self, path: str, version: str = "v1.0") -> List[Dict]:
        """GET a collection, following @odata.nextLink until exhausted."""
        items = []
        url = self._url(path, version)

        while url:
            data = self._request("GET", url).json()
            items.extend(data.get('value', []))
            url = data.get('@odata.nextLink')

        return items

    def validate_token(self) -> tuple[bool, str]:
        """Validate the access token by making a test API call.

        Uses /organization, which works for both delegated and application tokens.
        A 403 still means Graph accepted the token; the operations that follow
        need other permissions than reading the organization.

        Returns:
            tuple[bool, str]: (True, "") if Graph accepts the token, otherwise (False, reason)

        Raises:
            ConnectivityError: If Graph cannot be reached at all
        """
        try:
            self._request("GET", "organization?$select=id")
            return True, ""
        except AuthError:
            return False, "Invalid or expired access token. Please provide a valid Microsoft Graph access token."
        except ApiError as e:
            if e.status_code == 403:
                return True, ""
            return False, f"Token validation failed: {e}"

    # Service principals ##########################################################################

    def list_service_principals(self, filter_query: str, select: str = None) -> List[Dict]:
        """Query service principals using $filter parameter.

        Args:
            filter_query: OData filter expression (e.g., "displayName eq 'adf-01'")
            select: Optional comma-separated $select list

        Returns:
            List of service principal objects matching the filter
        """
        path = f"servicePrincipals?$filter={quote(filter_query, safe='')}"
        if select:
            path += f"&$select={select}"
        return self._get_paged(path)

    def get_service_principal(self, object_id: str, select: str = None) -> Optional[Dict]:
        """Get a service principal by object ID, or None if it does not exist."""
        path = f"servicePrincipals/{object_id}"
        if select:
            path += f"?$select={select}"
        try:
            return self._request("GET", path).json()
        except ApiError as e:
            if e.status_code in (400, 404):
                # 400 is returned for malformed object IDs
                return None
            raise

    def list_all_service_principals(self, select: str = None) -> List[Dict]:
        path = "servicePrincipals"
        if select:
            path += f"?$select={select}"
        return self._get_paged(path)

    def list_all_applications(self, select: str = None) -> List[Dict]:
        path = "applications"
        if select:
            path += f"?$select={select}"
        return self._get_paged(path)

    # App role assignments ########################################################################

    def list_app_role_assignments(self, principal_id: str) -> List[Dict]:
        """List app role assignments granted to a principal (the assignee)."""
        return self._get_paged(f"servicePrincipals/{principal_id}/appRoleAssignments")

    def list_app_role_assigned_to(self, resource_id: str) -> List[Dict]:
        """List app role assignments other principals hold on a resource."""
        return self._get_paged(f"servicePrincipals/{resource_id}/appRoleAssignedTo")

    def create_app_role_assignment(self, assignment: AppRoleAssignment) -> Dict:
        """Create an app role assignment for assignment.principal_id.

        Returns:
            Dict: The created assignment, including its server-assigned id
        """
        response = self._request(
            "POST",
            f"servicePrincipals/{assignment.principal_id}/appRoleAssignments",
            body=assignment.to_request_body(),
        )
        return response.json()

    def delete_app_role_assignment(self, principal_id: str, assignment_id: str) -> None:
        self._request("DELETE", f"servicePrincipals/{principal_id}/appRoleAssignments/{assignment_id}")

    # Report enrichment ###########################################################################

    def list_service_principal_owners(self, object_id: str) -> List[Dict]:
        return self._get_paged(f"servicePrincipals/{object_id}/owners")

    def list_application_owners(self, application_object_id: str) -> List[Dict]:
        return self._get_paged(f"applications/{application_object_id}/owners")

    def list_oauth2_permission_grants(self, object_id: str) -> List[Dict]:
        """List delegated permission grants made to a service principal."""
        return self._get_paged(f"servicePrincipals/{object_id}/oauth2PermissionGrants")

    def get_last_sign_in(self, service_principal_id: str) -> Optional[Dict]:
        """Get the most recent sign-in of a service principal (needs AuditLog.Read.All)."""
        filter_query = quote(f"servicePrincipalId eq {odata_quote(service_principal_id)}", safe='')
        data = self._request("GET", f"auditLogs/signIns?$filter={filter_query}&$top=1").json()
        values = data.get('value', [])
        return values[0] if values else None

    # SharePoint sites ############################################################################

    def grant_site_permission(self, site_id: str, app_id: str, display_name: str, roles: List[str]) -> Dict:
        """Grant an application access to a single SharePoint site (Sites.Selected model)."""
        body = {
            "roles": list(roles),
            "grantedToIdentities": [
                {"application": {"id": app_id, "displayName": display_name}}
            ]
        }
        return self._request("POST", f"sites/{site_id}/permissions", body=body).json()
