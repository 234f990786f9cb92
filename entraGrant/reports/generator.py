"""
CSV inventory report of every service principal in a tenant
"""

# Standard library imports
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

# Local imports
from ..auth import get_tenant_id
from ..graph.api_client import GraphAPIClient
from ..errors import ApiError

logger = logging.getLogger(__name__)

COLUMNS = [
    "DisplayName",
    "AppId",
    "ObjectId",
    "ServicePrincipalType",
    "AccountEnabled",
    "CreatedDateTime",
    "LastSignInDateTime",
    "Owners",
    "SignInAudience",
    "HomepageURL",
    "Tags",
    "SecretExpiryDates",
    "CertificateExpiryDates",
    "ApiPermissions",
    "AppRoleAssignments",
    "AppRoleAssignedTo",
]

APPLICATION_FIELDS = "id,appId,displayName,signInAudience,web"


def sanitize(value) -> str:
    """Make a value safe to put between double quotes in a CSV row."""
    text = "" if value is None else str(value)
    return text.replace("\r", "").replace("\n", "").replace(",", ";").replace('"', "'")


def format_row(values: List[str]) -> str:
    return ",".join(f'"{sanitize(v)}"' for v in values)


class ReportGenerator:
    """Generates the service principal inventory report"""

    def __init__(self, api_client: GraphAPIClient, token: str = None, source: str = None,
                 progress_callback: Callable = None):
        """Initialize the report generator.

        Extracts tenant ID from the access token for use in report folder names.

        Parameters:
            api_client (GraphAPIClient): Graph API client used to enumerate principals
            token (str, optional): Microsoft Graph access token (JWT)
            source (str, optional): Source of the report ('cli'), included in filename
            progress_callback (callable, optional): Callback function(percent, message)
        """
        self.api_client = api_client
        self.token = token
        self.source = source
        self.progress_callback = progress_callback
        self.tenant_id = get_tenant_id(token) if token else None

    def _progress(self, percent: int, message: str):
        if self.progress_callback:
            self.progress_callback(percent, message)

    @staticmethod
    def _join_or(items: List[str], empty: str) -> str:
        return "; ".join(items) if items else empty

    @staticmethod
    def _format_owner(owner: Dict) -> str:
        return owner.get('userPrincipalName') or owner.get('displayName') or f"id:{owner.get('id')}"

    @staticmethod
    def _expiries(credentials: Optional[List[Dict]]) -> str:
        dates = [(c.get('endDateTime') or 'Unknown')[:10] for c in credentials or []]
        return ReportGenerator._join_or(dates, "None")

    def _owners(self, sp_type: str, application: Optional[Dict]) -> str:
        if sp_type != "Application":
            return "Not an Application"
        if not application:
            return "App object not found"
        try:
            owners = self.api_client.list_application_owners(application['id'])
        except ApiError as e:
            logger.debug("Could not read owners of %s: %s", application.get('appId'), e)
            return "Unknown"
        return self._join_or([self._format_owner(o) for o in owners], "No owners assigned")

    def _last_sign_in(self, object_id: str) -> str:
        try:
            sign_in = self.api_client.get_last_sign_in(object_id)
        except ApiError as e:
            logger.debug("Could not read sign-ins of %s: %s", object_id, e)
            return "Unknown"
        if not sign_in or not sign_in.get('createdDateTime'):
            return "No sign-in found"
        return sign_in['createdDateTime'].replace('T', ' ').replace('Z', '')[:19]

    def _delegated_permissions(self, object_id: str) -> str:
        try:
            grants = self.api_client.list_oauth2_permission_grants(object_id)
        except ApiError:
            return "Unknown"
        return self._join_or(
            [f"Resource: {g.get('resourceId')} | Scope: {(g.get('scope') or '').strip()}" for g in grants],
            "None",
        )

    def _assignments_as_grantee(self, object_id: str) -> str:
        try:
            assignments = self.api_client.list_app_role_assignments(object_id)
        except ApiError:
            return "Unknown"
        return self._join_or(
            [f"RoleId: {a.get('appRoleId')} on Resource: {a.get('resourceDisplayName') or a.get('resourceId')}"
             for a in assignments],
            "None",
        )

    def _assignments_as_granter(self, object_id: str) -> str:
        try:
            assignments = self.api_client.list_app_role_assigned_to(object_id)
        except ApiError:
            return "Unknown"
        return self._join_or(
            [f"RoleId: {a.get('appRoleId')} to Principal: {a.get('principalDisplayName') or a.get('principalId')}"
             for a in assignments],
            "None",
        )

    def build_record(self, sp: Dict, applications: Dict[str, Dict]) -> Dict[str, str]:
        """Flatten one service principal into a report record.

        Parameters:
            sp (Dict): Service principal object from Graph
            applications (Dict[str, Dict]): Application objects keyed by appId

        Returns:
            Dict[str, str]: One string per column in COLUMNS
        """
        object_id = sp.get('id') or ''
        app_id = sp.get('appId') or ''
        sp_type = sp.get('servicePrincipalType') or 'N/A'
        application = applications.get(app_id) if sp_type == "Application" and app_id else None

        homepage = sp.get('homepage') or ''
        if not homepage and application:
            homepage = (application.get('web') or {}).get('homePageUrl') or ''

        created = sp.get('createdDateTime')
        enabled = sp.get('accountEnabled')

        return {
            "DisplayName": sp.get('displayName') or '',
            "AppId": app_id,
            "ObjectId": object_id,
            "ServicePrincipalType": sp_type,
            "AccountEnabled": str(bool(enabled)).lower(),
            "CreatedDateTime": created[:10] if created else "Unknown",
            "LastSignInDateTime": self._last_sign_in(object_id),
            "Owners": self._owners(sp_type, application),
            "SignInAudience": (application or {}).get('signInAudience') or 'N/A',
            "HomepageURL": homepage,
            "Tags": "; ".join(sp.get('tags') or []),
            "SecretExpiryDates": self._expiries(sp.get('passwordCredentials')),
            "CertificateExpiryDates": self._expiries(sp.get('keyCredentials')),
            "ApiPermissions": self._delegated_permissions(object_id),
            "AppRoleAssignments": self._assignments_as_grantee(object_id),
            "AppRoleAssignedTo": self._assignments_as_granter(object_id),
        }

    def compile_records(self) -> List[Dict[str, str]]:
        """Fetch every service principal and build its report record."""
        self._progress(0, "Fetching all service principals... (this may take a few minutes)")
        service_principals = self.api_client.list_all_service_principals()

        self._progress(5, "Fetching all applications...")
        applications = {
            app['appId']: app
            for app in self.api_client.list_all_applications(select=APPLICATION_FIELDS)
            if app.get('appId')
        }

        records = []
        total = len(service_principals)
        for index, sp in enumerate(service_principals, start=1):
            records.append(self.build_record(sp, applications))
            percent = 5 + int(index * 90 / total)
            self._progress(percent, f"Processing service principals: {index}/{total} - {sp.get('displayName')}")

        return records

    def generate_csv_report(self, filename: str = None) -> str:
        """Write the inventory report.

        Parameters:
            filename (str, optional): Output path. Generated when omitted.

        Returns:
            str: Path to the generated CSV file
        """
        if not filename:
            filename = self._generate_filename("csv")

        records = self.compile_records()

        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8', newline='') as f:
            f.write(",".join(COLUMNS) + "\n")
            for record in records:
                f.write(format_row([record[column] for column in COLUMNS]) + "\n")

        self._progress(100, f"✓ Exported {len(records)} service principal(s) to {path}")
        return str(path)

    def _generate_filename(self, extension: str) -> str:
        """Generate a filename with timestamp and source.

        - Folder: entragrant_reports_{tenantId}/ (when the tenant is known)
        - Filename: YYYY-MM-DD_HH-MM-SS_service_principal_report[_{source}].{ext}
        """
        datetime_str = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

        filename_parts = [datetime_str, "service_principal_report"]
        if self.source:
            filename_parts.append(self.source)
        filename = "_".join(filename_parts) + f".{extension}"

        if self.tenant_id:
            output_folder = Path.cwd() / f"entragrant_reports_{self.tenant_id}"
            output_folder.mkdir(parents=True, exist_ok=True)
            return str(output_folder / filename)

        return filename
