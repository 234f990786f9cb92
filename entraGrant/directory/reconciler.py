"""
Convergence of a principal's app role assignments toward a desired permission set

For every requested permission the reconciler ends in exactly one terminal state:

    SKIPPED          the name is not an application permission of the resource
    GRANTED          (grant) assignment created
    ALREADY_GRANTED  (grant) an assignment with the same role and resource exists
    REVOKED          (revoke) every assignment with the same role and resource deleted
    ALREADY_ABSENT   (revoke) no assignment with the same role and resource exists
    DECLINED         the confirmation callback refused the create/delete
    FAILED           the directory rejected the list/create/delete call

Authentication and connectivity errors are not per-permission outcomes; they
propagate and abort the run.
"""

# Standard library imports
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

# Local imports
from .lookup import DirectoryLookup
from .models import AppRole, AppRoleAssignment, Principal, Resource
from ..graph.api_client import GraphAPIClient
from ..errors import ApiError, RoleNotFoundError

logger = logging.getLogger(__name__)


class Mode(Enum):
    GRANT = "grant"
    REVOKE = "revoke"


class Status(Enum):
    GRANTED = "Granted"
    ALREADY_GRANTED = "AlreadyGranted"
    REVOKED = "Revoked"
    ALREADY_ABSENT = "AlreadyAbsent"
    SKIPPED = "Skipped"
    DECLINED = "Declined"
    FAILED = "Failed"


FAILURE_STATUSES = {Status.SKIPPED, Status.FAILED}


@dataclass
class Outcome:
    """Result of reconciling one requested permission."""
    permission: str
    status: Status
    reason: Optional[str] = None
    assignment: Optional[AppRoleAssignment] = None

    @property
    def is_failure(self) -> bool:
        return self.status in FAILURE_STATUSES

    def __str__(self) -> str:
        text = f"{self.permission}: {self.status.value}"
        if self.reason:
            text += f" ({self.reason})"
        return text


def _is_duplicate_error(error: ApiError) -> bool:
    return error.status_code in (400, 409) and 'already exists' in (error.message or '').lower()


class AssignmentReconciler:
    """Grants or revokes application permissions on a principal idempotently"""

    def __init__(self, api_client: GraphAPIClient, lookup: DirectoryLookup = None,
                 confirm: Callable[[str], bool] = None):
        """Initialize the reconciler.

        Parameters:
            api_client (GraphAPIClient): Authenticated Graph API client
            lookup (DirectoryLookup): Lookup to resolve permission names. Defaults to
                                      a DirectoryLookup over the same client.
            confirm (Callable[[str], bool]): Optional callback asked before every
                                             create/delete with a description of the
                                             change. Returning False skips the change.
        """
        self.api_client = api_client
        self.lookup = lookup or DirectoryLookup(api_client)
        self.confirm = confirm

    def reconcile(self, principal: Principal, resource: Resource,
                  desired_permissions: Iterable[str], mode: Mode) -> List[Outcome]:
        """Converge the assignments of ``principal`` on ``resource``.

        Parameters:
            principal (Principal): The assignee
            resource (Resource): The API exposing the permissions
            desired_permissions (Iterable[str]): Permission values, e.g. "Sites.Selected"
            mode (Mode): GRANT to ensure presence, REVOKE to ensure absence

        Returns:
            List[Outcome]: One outcome per distinct permission, in request order
        """
        outcomes: List[Outcome] = []
        resolved: List[AppRole] = []
        slots: List[int] = []

        for permission in dict.fromkeys(desired_permissions):
            try:
                role = self.lookup.resolve_app_role(resource, permission)
            except RoleNotFoundError as e:
                outcomes.append(Outcome(permission, Status.SKIPPED, f"RoleNotFound: {e}"))
                continue
            outcomes.append(None)
            slots.append(len(outcomes) - 1)
            resolved.append(role)

        if not resolved:
            return outcomes

        try:
            existing = [
                AppRoleAssignment.from_graph(a)
                for a in self.api_client.list_app_role_assignments(principal.object_id)
            ]
        except ApiError as e:
            for slot, role in zip(slots, resolved):
                outcomes[slot] = Outcome(role.value, Status.FAILED, f"Could not list assignments: {e}")
            return outcomes

        for slot, role in zip(slots, resolved):
            if mode is Mode.GRANT:
                outcomes[slot] = self._grant(principal, resource, role, existing)
            else:
                outcomes[slot] = self._revoke(principal, resource, role, existing)

        return outcomes

    @staticmethod
    def _matching(existing: List[AppRoleAssignment], principal: Principal, resource: Resource,
                  role: AppRole) -> List[AppRoleAssignment]:
        wanted = AppRoleAssignment(principal.object_id, resource.object_id, role.id).key
        return [assignment for assignment in existing if assignment.key == wanted]

    def _confirmed(self, action: str) -> bool:
        return self.confirm is None or self.confirm(action)

    def _grant(self, principal: Principal, resource: Resource, role: AppRole,
               existing: List[AppRoleAssignment]) -> Outcome:
        current = self._matching(existing, principal, resource, role)
        if current:
            return Outcome(role.value, Status.ALREADY_GRANTED, assignment=current[0])

        action = f"Grant '{role.value}' on '{resource.display_name}' to '{principal.display_name}'"
        if not self._confirmed(action):
            return Outcome(role.value, Status.DECLINED)

        requested = AppRoleAssignment(principal.object_id, resource.object_id, role.id)
        try:
            created = AppRoleAssignment.from_graph(self.api_client.create_app_role_assignment(requested))
        except ApiError as e:
            if _is_duplicate_error(e):
                # Another run created it between our list and create
                logger.debug("Duplicate create for %s: %s", role.value, e)
                return Outcome(role.value, Status.ALREADY_GRANTED, "created concurrently")
            return Outcome(role.value, Status.FAILED, str(e))

        existing.append(created)
        return Outcome(role.value, Status.GRANTED, assignment=created)

    def _revoke(self, principal: Principal, resource: Resource, role: AppRole,
                existing: List[AppRoleAssignment]) -> Outcome:
        """Delete every assignment of ``role``; racing creates can leave duplicates."""
        current = self._matching(existing, principal, resource, role)
        if not current:
            return Outcome(role.value, Status.ALREADY_ABSENT)

        action = f"Revoke '{role.value}' on '{resource.display_name}' from '{principal.display_name}'"
        if not self._confirmed(action):
            return Outcome(role.value, Status.DECLINED, assignment=current[0])

        deleted = 0
        errors = []
        for assignment in current:
            try:
                self.api_client.delete_app_role_assignment(principal.object_id, assignment.id)
            except ApiError as e:
                if e.status_code != 404:
                    errors.append(f"{assignment.id}: {e}" if len(current) > 1 else str(e))
                    continue
                logger.debug("Assignment %s was already deleted", assignment.id)
            else:
                deleted += 1
            existing.remove(assignment)

        if errors:
            return Outcome(role.value, Status.FAILED, "; ".join(errors), assignment=current[0])
        if not deleted:
            return Outcome(role.value, Status.ALREADY_ABSENT, "deleted concurrently")
        return Outcome(role.value, Status.REVOKED, assignment=current[0])
