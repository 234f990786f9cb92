"""
Main CLI entry point for entra-grant
"""

import argparse
import json
import logging
import os
import sys
import traceback
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from .arm.api_client import ARMAPIClient
from .auth import ARM_SCOPE, GRAPH_SCOPE, get_access_token
from .directory.lookup import DirectoryLookup
from .directory.models import Principal
from .directory.reconciler import AssignmentReconciler, Mode, Outcome, Status
from .errors import AuthError, EntraGrantError
from .graph.api_client import GraphAPIClient
from .permission_config import DEFAULT_PROFILE, PermissionProfiles
from .reports.generator import ReportGenerator

STATUS_MARKERS = {
    Status.GRANTED: "✓",
    Status.REVOKED: "✓",
    Status.ALREADY_GRANTED: "•",
    Status.ALREADY_ABSENT: "•",
    Status.DECLINED: "-",
    Status.SKIPPED: "[WARN]",
    Status.FAILED: "❌",
}


def split_permissions(values: Optional[List[str]]) -> List[str]:
    """Accept permissions as separate arguments or comma-separated lists."""
    permissions = []
    for value in values or []:
        permissions.extend(p.strip() for p in value.split(',') if p.strip())
    return permissions


def load_profiles(profile_file: Optional[str]) -> PermissionProfiles:
    profiles = PermissionProfiles.from_file(profile_file) if profile_file else PermissionProfiles()
    is_valid, problems = profiles.validate()
    if not is_valid:
        raise ValueError("Invalid permission profiles:\n  " + "\n  ".join(problems))
    return profiles


def build_confirm(dry_run: bool, interactive: bool) -> Optional[Callable[[str], bool]]:
    """Build the callback asked before every create/delete."""
    if dry_run:
        def plan_only(action: str) -> bool:
            print(f"  [DRY RUN] Would {action[0].lower()}{action[1:]}")
            return False
        return plan_only

    if interactive:
        def ask(action: str) -> bool:
            try:
                answer = input(f"  {action}? [y/N] ")
            except EOFError:
                # No terminal to answer from
                print()
                return False
            return answer.strip().lower() in ('y', 'yes')
        return ask

    return None


def find_principal(lookup: DirectoryLookup, args) -> Principal:
    if args.principal_id:
        return lookup.find_principal_by_id(args.principal_id)
    return lookup.find_principal_by_name(args.principal_name)


def print_outcomes(outcomes: List[Outcome]):
    for outcome in outcomes:
        print(f"  {STATUS_MARKERS[outcome.status]} {outcome}")


def connect_graph(args) -> Tuple[str, GraphAPIClient]:
    """Acquire a Graph token and make sure Graph accepts it before any lookup."""
    token = get_access_token(GRAPH_SCOPE, token=args.token, tenant_id=args.tenant_id)
    api_client = GraphAPIClient(token, proxy=args.proxy)

    is_valid, error_msg = api_client.validate_token()
    if not is_valid:
        raise AuthError(error_msg)
    print("✓ Access token is valid")
    return token, api_client


def run_reconcile(args, mode: Mode) -> int:
    """Grant or revoke the requested permissions and report each outcome."""
    profiles = load_profiles(args.profile_file)
    profile = profiles.get(args.profile)
    permissions = split_permissions(args.permissions) or profile['permissions']
    resource_app_id = PermissionProfiles.resolve_resource(args.resource or profile['resource'])

    _, api_client = connect_graph(args)
    lookup = DirectoryLookup(api_client)

    print("Fetching required IDs...")
    principal = find_principal(lookup, args)
    print(f"  - Found principal '{principal.display_name}': {principal.object_id}")
    resource = lookup.find_resource_by_well_known_id(resource_app_id)
    print(f"  - Found resource '{resource.display_name}': {resource.object_id}")

    reconciler = AssignmentReconciler(api_client, lookup, confirm=build_confirm(args.dry_run, args.confirm))
    verb = "Granting" if mode is Mode.GRANT else "Revoking"
    print(f"\n{verb} {', '.join(permissions)}...")
    outcomes = reconciler.reconcile(principal, resource, permissions, mode)
    print_outcomes(outcomes)

    failures = [o for o in outcomes if o.is_failure]
    print(f"\n{'='*60}")
    print(f"{len(outcomes)} permission(s) processed, {len(failures)} failed or skipped")
    print(f"{'='*60}")
    return 1 if failures else 0


def run_site_grant(args) -> int:
    """Grant the principal's application access to one SharePoint site."""
    _, api_client = connect_graph(args)
    principal = find_principal(DirectoryLookup(api_client), args)
    if not principal.app_id:
        print(f"Error: '{principal.display_name}' has no application ID")
        return 1

    print(f"Granting '{args.role}' on site '{args.site_id}' to '{principal.display_name}'...")
    permission = api_client.grant_site_permission(args.site_id, principal.app_id,
                                                  principal.display_name, [args.role])
    print(f"✓ Created site permission {permission.get('id')}")
    return 0


def run_report(args) -> int:
    token, api_client = connect_graph(args)

    last_percent = {'value': -1}

    def progress_callback(percent: int, message: str):
        # Print once per percent step
        if message and percent != last_percent['value']:
            last_percent['value'] = percent
            print(message)

    generator = ReportGenerator(api_client, token=token, source='cli', progress_callback=progress_callback)
    path = generator.generate_csv_report(args.output)
    print(f"\nReport generation complete: {path}")
    return 0


def _arm_context(args):
    subscription_id = args.subscription_id or os.environ.get('AZURE_SUBSCRIPTION_ID')
    if not subscription_id:
        raise ValueError("A subscription is required (--subscription-id or AZURE_SUBSCRIPTION_ID)")
    token = get_access_token(ARM_SCOPE, tenant_id=args.tenant_id)
    return ARMAPIClient(token, proxy=args.proxy), subscription_id


def _ensure_resource_group(arm_client: ARMAPIClient, subscription_id: str, args):
    print(f"Checking for resource group '{args.resource_group_name}'...")
    _, created = arm_client.ensure_resource_group(subscription_id, args.resource_group_name, args.location)
    if created:
        print(f"✓ Created resource group '{args.resource_group_name}' in '{args.location}'.")
    else:
        print(f"✓ Resource group '{args.resource_group_name}' already exists.")


def run_create_data_factory(args) -> int:
    arm_client, subscription_id = _arm_context(args)
    _ensure_resource_group(arm_client, subscription_id, args)

    print(f"Creating Azure Data Factory '{args.data_factory_name}'...")
    factory, changed = arm_client.create_data_factory(
        subscription_id, args.resource_group_name, args.data_factory_name, args.location
    )
    principal_id = (factory.get('identity') or {}).get('principalId')
    if changed:
        print(f"✓ Data Factory '{args.data_factory_name}' has a SystemAssigned managed identity.")
    else:
        print(f"✓ Data Factory '{args.data_factory_name}' already exists with a SystemAssigned managed identity.")
    print(f"  Resource ID:  {factory.get('id')}")
    portal_url = (factory.get('properties') or {}).get('portalUrl')
    if portal_url:
        print(f"  Portal URL:   {portal_url}")
    print(f"  Principal ID: {principal_id}")
    if principal_id:
        print(f"\nNext: python -m entraGrant grant --principal-id {principal_id} --profile data-factory")
    return 0


def run_create_identity(args) -> int:
    arm_client, subscription_id = _arm_context(args)
    _ensure_resource_group(arm_client, subscription_id, args)

    print(f"Creating user-assigned managed identity '{args.identity_name}'...")
    identity, created = arm_client.create_user_assigned_identity(
        subscription_id, args.resource_group_name, args.identity_name, args.location
    )
    properties = identity.get('properties') or {}
    state = "Created" if created else "Found existing"
    print(f"✓ {state} managed identity '{args.identity_name}'.")
    print(f"  Principal ID: {properties.get('principalId')}")
    print(f"  Client ID:    {properties.get('clientId')}")
    if properties.get('principalId'):
        print(f"\nNext: python -m entraGrant grant --principal-id {properties['principalId']} --profile managed-identity")
    return 0


def run_profiles(args) -> int:
    profiles = load_profiles(args.profile_file)
    for name in profiles.names():
        profile = profiles.get(name)
        print(f"  {name:<20} {profile['resource']:<12} {', '.join(profile['permissions'])}")
    if args.export:
        profiles.save(args.export)
        print(f"\n✓ Profiles written to {args.export}")
    return 0


def add_common_arguments(parser: argparse.ArgumentParser, graph_token: bool = True):
    if graph_token:
        parser.add_argument('--token', help='Microsoft Graph access token (default: acquired from az login / environment)')
    parser.add_argument('--tenant-id', default=os.environ.get('AZURE_TENANT_ID'),
                        help='Tenant to authenticate against (default: AZURE_TENANT_ID)')
    parser.add_argument('--proxy', metavar='HOST:PORT',
                        help='Route all HTTP requests through specified proxy (e.g. 127.0.0.1:8080) without certificate verification')
    parser.add_argument('--debug', action='store_true', help='Log every HTTP request')


def add_principal_arguments(parser: argparse.ArgumentParser):
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument('--principal-name', help='Display name of the service principal / managed identity')
    group.add_argument('--principal-id', help='Object ID of the service principal (use when the name is ambiguous)')


def add_provisioning_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('--resource-group-name', required=True, help='Resource group (created if missing)')
    parser.add_argument('--location', required=True, help="Azure region, e.g. 'eastus'")
    parser.add_argument('--subscription-id', help='Subscription (default: AZURE_SUBSCRIPTION_ID)')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='entra-grant',
        description='Provision managed identities and manage their application permissions',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ---------- Grant Sites.Selected to an Azure Data Factory ---------
  python -m entraGrant grant --principal-name my-unique-adf --profile data-factory

  ---------- Grant User.Read.All and Group.Read.All to a managed identity ---------
  python -m entraGrant grant --principal-name mySampleWebAppIdentity --profile managed-identity

  ---------- Revoke a specific permission, asking before each change ---------
  python -m entraGrant revoke --principal-name my-unique-adf --permissions Sites.Selected --confirm

  ---------- Show what would change without changing anything ---------
  python -m entraGrant grant --principal-id 00000000-0000-0000-0000-000000000000 --permissions User.Read.All --dry-run

  ---------- Inventory every service principal into a CSV file ---------
  python -m entraGrant report --output sp_report.csv
        """
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    for name, help_text in (('grant', 'Grant application permissions'),
                            ('revoke', 'Revoke application permissions')):
        sub = subparsers.add_parser(name, help=help_text)
        add_principal_arguments(sub)
        sub.add_argument('--resource',
                         help="Resource API: 'graph', 'sharepoint' or an application ID (default: from profile)")
        sub.add_argument('--permissions', nargs='+', metavar='PERMISSION',
                         help='Permission names, e.g. Sites.Selected (default: from profile)')
        sub.add_argument('--profile', default=DEFAULT_PROFILE,
                         help=f'Permission profile to use when --permissions is omitted (default: {DEFAULT_PROFILE})')
        sub.add_argument('--profile-file', help='Path to JSON file with additional permission profiles')
        mutation = sub.add_mutually_exclusive_group()
        mutation.add_argument('--dry-run', action='store_true', help='Show the changes without applying them')
        mutation.add_argument('--confirm', action='store_true', help='Ask before every grant/revoke')
        add_common_arguments(sub)

    report = subparsers.add_parser('report', help='Export all service principals to CSV')
    report.add_argument('--output', help='Output CSV path (default: timestamped file)')
    add_common_arguments(report)

    adf = subparsers.add_parser('create-data-factory', help='Create a Data Factory with a system-assigned identity')
    adf.add_argument('--data-factory-name', required=True, help='Globally unique Data Factory name')
    add_provisioning_arguments(adf)
    add_common_arguments(adf, graph_token=False)

    identity = subparsers.add_parser('create-identity', help='Create a user-assigned managed identity')
    identity.add_argument('--identity-name', required=True, help='Managed identity name')
    add_provisioning_arguments(identity)
    add_common_arguments(identity, graph_token=False)

    site = subparsers.add_parser('site-grant', help='Grant a principal access to one SharePoint site')
    add_principal_arguments(site)
    site.add_argument('--site-id', required=True, help='SharePoint site ID (hostname,siteCollectionId,siteId)')
    site.add_argument('--role', choices=['read', 'write'], default='read', help='Site role (default: read)')
    add_common_arguments(site)

    profiles = subparsers.add_parser('profiles', help='List the permission profiles')
    profiles.add_argument('--profile-file', help='Path to JSON file with additional permission profiles')
    profiles.add_argument('--export', metavar='PATH', help='Write the merged profiles to a JSON file')

    return parser


COMMANDS = {
    'grant': lambda args: run_reconcile(args, Mode.GRANT),
    'revoke': lambda args: run_reconcile(args, Mode.REVOKE),
    'report': run_report,
    'create-data-factory': run_create_data_factory,
    'create-identity': run_create_identity,
    'site-grant': run_site_grant,
    'profiles': run_profiles,
}


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for entra-grant."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, 'debug', False) else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    start_timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"entra-grant {args.command} - started {start_timestamp}\n")

    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 1
    except EntraGrantError as e:
        # Lookup, authentication, connectivity and API errors end the run
        print(f"\n❌ Error: {e}")
        return 1
    except FileNotFoundError as e:
        print(f"\nError: {e}")
        return 1
    except json.JSONDecodeError as e:
        print(f"\nError: Invalid profile file format: {e}")
        return 1
    except ValueError as e:
        print(f"\nError: {e}")
        return 1
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
