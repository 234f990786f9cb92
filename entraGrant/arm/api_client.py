"""
Azure Resource Manager client for provisioning identities
"""

# Standard library imports
from typing import Dict, Optional, Tuple

# Third-party imports
import requests

# Local imports
from ..errors import ApiError
from ..http_client import BaseAPIClient

RESOURCE_GROUP_API_VERSION = "2021-04-01"
DATA_FACTORY_API_VERSION = "2018-06-01"
MANAGED_IDENTITY_API_VERSION = "2023-01-31"

SYSTEM_ASSIGNED = "SystemAssigned"


class ARMAPIClient(BaseAPIClient):
    """Client for the Azure Resource Manager operations entra-grant needs"""

    domain = "management.azure.com"

    def __init__(self, token: str, proxy: str = None, timeout: float = 60,
                 max_attempts: int = 3, retry_delay: float = 1.0):
        """Initialize the ARM client with an access token.

        Parameters:
            token (str): ARM access token (scope https://management.azure.com/.default)
            proxy (str): Proxy address in format 'host:port', see BaseAPIClient
            timeout (float): Per-request timeout in seconds
        """
        super().__init__(token, proxy=proxy, timeout=timeout, max_attempts=max_attempts, retry_delay=retry_delay)

    def _request(self, method: str, path: str, api_version: str, body: Dict = None) -> requests.Response:
        return self._send(method, f"https://{self.domain}{path}?api-version={api_version}", body)

    def _get_or_none(self, path: str, api_version: str) -> Optional[Dict]:
        try:
            return self._request("GET", path, api_version).json()
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise

    @staticmethod
    def _resource_group_path(subscription_id: str, resource_group: str) -> str:
        return f"/subscriptions/{subscription_id}/resourcegroups/{resource_group}"

    def get_resource_group(self, subscription_id: str, resource_group: str) -> Optional[Dict]:
        return self._get_or_none(self._resource_group_path(subscription_id, resource_group),
                                 RESOURCE_GROUP_API_VERSION)

    def ensure_resource_group(self, subscription_id: str, resource_group: str, location: str) -> Tuple[Dict, bool]:
        """Create the resource group unless it already exists.

        Returns:
            tuple[Dict, bool]: The resource group and whether it was created
        """
        group = self.get_resource_group(subscription_id, resource_group)
        if group:
            return group, False

        group = self._request(
            "PUT",
            self._resource_group_path(subscription_id, resource_group),
            RESOURCE_GROUP_API_VERSION,
            body={"location": location},
        ).json()
        return group, True

    def get_data_factory(self, subscription_id: str, resource_group: str, name: str) -> Optional[Dict]:
        path = (f"{self._resource_group_path(subscription_id, resource_group)}"
                f"/providers/Microsoft.DataFactory/factories/{name}")
        return self._get_or_none(path, DATA_FACTORY_API_VERSION)

    def create_data_factory(self, subscription_id: str, resource_group: str, name: str,
                            location: str) -> Tuple[Dict, bool]:
        """Create a Data Factory (V2) with a system-assigned managed identity.

        An existing factory is reused; its identity is switched on if missing.

        Returns:
            tuple[Dict, bool]: The factory and whether it was created or updated
        """
        existing = self.get_data_factory(subscription_id, resource_group, name)
        if existing:
            identity_type = (existing.get('identity') or {}).get('type') or ''
            if SYSTEM_ASSIGNED in identity_type:
                return existing, False
            location = existing.get('location', location)

        path = (f"{self._resource_group_path(subscription_id, resource_group)}"
                f"/providers/Microsoft.DataFactory/factories/{name}")
        factory = self._request(
            "PUT",
            path,
            DATA_FACTORY_API_VERSION,
            body={"location": location, "identity": {"type": SYSTEM_ASSIGNED}, "properties": {}},
        ).json()
        return factory, True

    def get_user_assigned_identity(self, subscription_id: str, resource_group: str, name: str) -> Optional[Dict]:
        path = (f"{self._resource_group_path(subscription_id, resource_group)}"
                f"/providers/Microsoft.ManagedIdentity/userAssignedIdentities/{name}")
        return self._get_or_none(path, MANAGED_IDENTITY_API_VERSION)

    def create_user_assigned_identity(self, subscription_id: str, resource_group: str, name: str,
                                      location: str) -> Tuple[Dict, bool]:
        """Create a user-assigned managed identity unless it already exists.

        Returns:
            tuple[Dict, bool]: The identity and whether it was created
        """
        existing = self.get_user_assigned_identity(subscription_id, resource_group, name)
        if existing:
            return existing, False

        path = (f"{self._resource_group_path(subscription_id, resource_group)}"
                f"/providers/Microsoft.ManagedIdentity/userAssignedIdentities/{name}")
        identity = self._request("PUT", path, MANAGED_IDENTITY_API_VERSION, body={"location": location}).json()
        return identity, True
