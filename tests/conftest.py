"""
Shared fixtures: an in-memory directory standing in for GraphAPIClient
"""

import json
import re
from typing import Dict, List

import pytest
import requests

from entraGrant.directory.models import AppRoleAssignment
from entraGrant.errors import ApiError
from entraGrant.permission_config import GRAPH_APP_ID

FILTER_PATTERN = re.compile(r"^(\w+) eq '(.*)'$")


def make_response(status_code=200, body=None, url="https://graph.microsoft.com/v1.0/x"):
    """Build a real requests.Response carrying a JSON body."""
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body if body is not None else {}).encode()
    response.url = url
    response.reason = "Reason"
    return response


SITES_SELECTED = {"id": "R1", "value": "Sites.Selected", "allowedMemberTypes": ["Application"],
                  "displayName": "Access selected site collections", "isEnabled": True}
USER_READ_ALL = {"id": "R2", "value": "User.Read.All", "allowedMemberTypes": ["Application"],
                 "displayName": "Read all users' full profiles", "isEnabled": True}
GROUP_READ_ALL = {"id": "R3", "value": "Group.Read.All", "allowedMemberTypes": ["Application"],
                  "displayName": "Read all groups", "isEnabled": True}
USER_ONLY_ROLE = {"id": "R4", "value": "Tasks.Manage", "allowedMemberTypes": ["User"],
                  "displayName": "Manage tasks (user only)", "isEnabled": True}


class FakeGraphClient:
    """Minimal stand-in for GraphAPIClient that keeps assignments in memory."""

    def __init__(self, service_principals: List[Dict], assignments: Dict[str, List[Dict]] = None):
        self.service_principals = service_principals
        self.assignments = {k: list(v) for k, v in (assignments or {}).items()}
        self.calls = []
        self.create_errors = {}
        self.delete_errors = {}
        self.list_error = None
        self.sites = []
        self.token_check = (True, "")
        self._next_id = 1

    def validate_token(self):
        self.calls.append(('validate_token',))
        return self.token_check

    # Lookups

    def list_service_principals(self, filter_query: str, select: str = None) -> List[Dict]:
        self.calls.append(('list_service_principals', filter_query))
        field, value = FILTER_PATTERN.match(filter_query).groups()
        value = value.replace("''", "'")
        return [dict(sp) for sp in self.service_principals if sp.get(field) == value]

    def get_service_principal(self, object_id: str, select: str = None):
        self.calls.append(('get_service_principal', object_id))
        for sp in self.service_principals:
            if sp['id'] == object_id:
                return dict(sp)
        return None

    # Assignments

    def list_app_role_assignments(self, principal_id: str) -> List[Dict]:
        self.calls.append(('list_app_role_assignments', principal_id))
        if self.list_error:
            raise self.list_error
        return [dict(a) for a in self.assignments.get(principal_id, [])]

    def create_app_role_assignment(self, assignment: AppRoleAssignment) -> Dict:
        self.calls.append(('create', assignment.principal_id, assignment.resource_id, assignment.app_role_id))
        if assignment.app_role_id in self.create_errors:
            raise self.create_errors[assignment.app_role_id]
        created = dict(assignment.to_request_body(), id=f"A{self._next_id}")
        self._next_id += 1
        self.assignments.setdefault(assignment.principal_id, []).append(created)
        return dict(created)

    def delete_app_role_assignment(self, principal_id: str, assignment_id: str) -> None:
        self.calls.append(('delete', principal_id, assignment_id))
        if assignment_id in self.delete_errors:
            raise self.delete_errors[assignment_id]
        remaining = [a for a in self.assignments.get(principal_id, []) if a['id'] != assignment_id]
        if len(remaining) == len(self.assignments.get(principal_id, [])):
            raise ApiError("Resource not found", 404)
        self.assignments[principal_id] = remaining

    def grant_site_permission(self, site_id, app_id, display_name, roles):
        self.calls.append(('grant_site_permission', site_id, app_id, tuple(roles)))
        self.sites.append((site_id, app_id, display_name, list(roles)))
        return {"id": "site-perm-1", "roles": list(roles)}

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def graph_sp():
    return {
        "id": "G1",
        "appId": GRAPH_APP_ID,
        "displayName": "Microsoft Graph",
        "servicePrincipalType": "Application",
        "appRoles": [SITES_SELECTED, USER_READ_ALL, GROUP_READ_ALL, USER_ONLY_ROLE],
    }


@pytest.fixture
def adf_sp():
    return {
        "id": "P1",
        "appId": "11111111-1111-1111-1111-111111111111",
        "displayName": "adf-01",
        "servicePrincipalType": "ManagedIdentity",
    }


@pytest.fixture
def fake_client(graph_sp, adf_sp):
    return FakeGraphClient([graph_sp, adf_sp])
