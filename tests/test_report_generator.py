import jwt
import pytest

from entraGrant.errors import ApiError
from entraGrant.reports.generator import COLUMNS, ReportGenerator, format_row, sanitize


class ReportClient:
    """Directory contents for report tests."""

    def __init__(self):
        self.service_principals = [
            {
                "id": "SP1", "appId": "APP1", "displayName": "Payroll, Inc. Connector",
                "servicePrincipalType": "Application", "accountEnabled": True,
                "createdDateTime": "2024-03-01T10:00:00Z", "homepage": None,
                "tags": ["WindowsAzureActiveDirectoryIntegratedApp", "HideApp"],
                "passwordCredentials": [{"endDateTime": "2026-01-31T00:00:00Z"}],
                "keyCredentials": [],
            },
            {
                "id": "SP2", "appId": "APP2", "displayName": "adf-01",
                "servicePrincipalType": "ManagedIdentity", "accountEnabled": False,
            },
        ]
        self.applications = [
            {"id": "OBJ1", "appId": "APP1", "signInAudience": "AzureADMyOrg",
             "web": {"homePageUrl": "https://payroll.example.com"}},
        ]
        self.failing = set()

    def _maybe_fail(self, name):
        if name in self.failing:
            raise ApiError("Forbidden", 403)

    def list_all_service_principals(self, select=None):
        return self.service_principals

    def list_all_applications(self, select=None):
        return self.applications

    def list_application_owners(self, application_object_id):
        self._maybe_fail('owners')
        return [{"id": "U1", "userPrincipalName": "alice@contoso.com"}, {"id": "U2"}]

    def get_last_sign_in(self, object_id):
        self._maybe_fail('sign_in')
        if object_id == "SP1":
            return {"createdDateTime": "2025-06-30T08:15:42.1234567Z"}
        return None

    def list_oauth2_permission_grants(self, object_id):
        self._maybe_fail('grants')
        if object_id == "SP1":
            return [{"resourceId": "G1", "scope": " User.Read openid "}]
        return []

    def list_app_role_assignments(self, object_id):
        self._maybe_fail('assignments')
        if object_id == "SP2":
            return [{"appRoleId": "R1", "resourceId": "G1", "resourceDisplayName": "Microsoft Graph"}]
        return []

    def list_app_role_assigned_to(self, object_id):
        self._maybe_fail('assigned_to')
        if object_id == "SP1":
            return [{"appRoleId": "R9", "principalId": "SP2", "principalDisplayName": "adf-01"}]
        return []


@pytest.fixture
def report_client():
    return ReportClient()


def test_sanitize_keeps_rows_intact():
    assert sanitize('a,b\r\nc "d"') == "a;bc 'd'"
    assert sanitize(None) == ""
    assert format_row(["x,y", "z"]) == '"x;y","z"'


def test_application_record(report_client):
    generator = ReportGenerator(report_client)
    applications = {app["appId"]: app for app in report_client.applications}

    record = generator.build_record(report_client.service_principals[0], applications)

    assert list(record) == COLUMNS
    assert record["AccountEnabled"] == "true"
    assert record["CreatedDateTime"] == "2024-03-01"
    assert record["LastSignInDateTime"] == "2025-06-30 08:15:42"
    assert record["Owners"] == "alice@contoso.com; id:U2"
    assert record["SignInAudience"] == "AzureADMyOrg"
    assert record["HomepageURL"] == "https://payroll.example.com"
    assert record["Tags"] == "WindowsAzureActiveDirectoryIntegratedApp; HideApp"
    assert record["SecretExpiryDates"] == "2026-01-31"
    assert record["CertificateExpiryDates"] == "None"
    assert record["ApiPermissions"] == "Resource: G1 | Scope: User.Read openid"
    assert record["AppRoleAssignments"] == "None"
    assert record["AppRoleAssignedTo"] == "RoleId: R9 to Principal: adf-01"


def test_managed_identity_record_uses_sentinels(report_client):
    record = ReportGenerator(report_client).build_record(report_client.service_principals[1], {})

    assert record["AccountEnabled"] == "false"
    assert record["CreatedDateTime"] == "Unknown"
    assert record["LastSignInDateTime"] == "No sign-in found"
    assert record["Owners"] == "Not an Application"
    assert record["SignInAudience"] == "N/A"
    assert record["SecretExpiryDates"] == "None"
    assert record["AppRoleAssignments"] == "RoleId: R1 on Resource: Microsoft Graph"


def test_missing_application_object(report_client):
    record = ReportGenerator(report_client).build_record(report_client.service_principals[0], {})

    assert record["Owners"] == "App object not found"


def test_enrichment_failures_render_unknown(report_client):
    report_client.failing = {'owners', 'sign_in', 'grants', 'assignments', 'assigned_to'}
    applications = {app["appId"]: app for app in report_client.applications}

    record = ReportGenerator(report_client).build_record(report_client.service_principals[0], applications)

    for column in ("Owners", "LastSignInDateTime", "ApiPermissions", "AppRoleAssignments", "AppRoleAssignedTo"):
        assert record[column] == "Unknown"


def test_generate_csv_report(report_client, tmp_path):
    messages = []
    generator = ReportGenerator(report_client, progress_callback=lambda p, m: messages.append((p, m)))

    path = generator.generate_csv_report(str(tmp_path / "report.csv"))

    lines = (tmp_path / "report.csv").read_text(encoding="utf-8").splitlines()
    assert path == str(tmp_path / "report.csv")
    assert lines[0] == ",".join(COLUMNS)
    assert len(lines) == 3
    assert lines[1].startswith('"Payroll; Inc. Connector","APP1","SP1"')
    for line in lines[1:]:
        assert line.count('","') == len(COLUMNS) - 1
    assert messages[-1][0] == 100


def test_filename_uses_tenant_folder(report_client, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    token = jwt.encode({"tid": "tenant-123"}, "not-a-secret-but-long-enough-for-hs256", algorithm="HS256")

    generator = ReportGenerator(report_client, token=token, source="cli")
    filename = generator._generate_filename("csv")

    assert generator.tenant_id == "tenant-123"
    assert "entragrant_reports_tenant-123" in filename
    assert filename.endswith("_service_principal_report_cli.csv")


def test_filename_without_token(report_client):
    filename = ReportGenerator(report_client)._generate_filename("csv")

    assert filename.endswith("_service_principal_report.csv")
