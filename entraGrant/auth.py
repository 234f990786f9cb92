"""
Access token acquisition for Microsoft Graph and Azure Resource Manager
"""

# Standard library imports
import logging
from typing import Optional

# Third-party imports
import jwt
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import CredentialUnavailableError, DefaultAzureCredential

# Local imports
from .errors import AuthError

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
ARM_SCOPE = "https://management.azure.com/.default"


def build_credential(tenant_id: Optional[str] = None) -> DefaultAzureCredential:
    """Build the credential chain used when no token is passed explicitly.

    Covers an 'az login' session, AZURE_CLIENT_ID/AZURE_CLIENT_SECRET environment
    variables and managed identities. Interactive browser login is not attempted.
    """
    kwargs = {"exclude_interactive_browser_credential": True}
    if tenant_id:
        kwargs["additionally_allowed_tenants"] = [tenant_id]
    return DefaultAzureCredential(**kwargs)


def get_access_token(scope: str, token: Optional[str] = None, tenant_id: Optional[str] = None,
                     credential=None) -> str:
    """Get an access token for ``scope``.

    Parameters:
        scope (str): OAuth scope, e.g. GRAPH_SCOPE
        token (str): Pre-acquired token. Returned as is when given.
        tenant_id (str): Tenant to request the token from
        credential: azure-identity credential to use instead of the default chain

    Returns:
        str: The bearer token

    Raises:
        AuthError: If no credential in the chain could produce a token
    """
    if token:
        return token

    credential = credential or build_credential(tenant_id)
    try:
        if tenant_id:
            access_token = credential.get_token(scope, tenant_id=tenant_id)
        else:
            access_token = credential.get_token(scope)
    except (ClientAuthenticationError, CredentialUnavailableError) as e:
        raise AuthError(f"Could not acquire a token for {scope}. Run 'az login' or pass --token. ({e})") from e

    logger.debug("Acquired token for %s", scope)
    return access_token.token


def get_tenant_id(token: str) -> Optional[str]:
    """Read the tenant ID ('tid' claim) from an access token without verifying it."""
    try:
        decoded = jwt.decode(token, options={"verify_signature": False})
    except jwt.exceptions.DecodeError:
        return None
    return decoded.get('tid')
