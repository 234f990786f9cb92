"""
Permission profile configuration for entra-grant.

A profile names the resource API and the application permissions a kind of
identity needs. Built-in profiles cover the common cases; more can be loaded
from a JSON file:

    {
      "profiles": {
        "reporting": {"resource": "graph", "permissions": ["AuditLog.Read.All"]}
      }
    }
"""

# Standard library imports
import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Well-known application IDs of first-party APIs (identical in every tenant)
WELL_KNOWN_RESOURCES = {
    'graph': '00000003-0000-0000-c000-000000000000',
    'sharepoint': '00000003-0000-0ff1-ce00-000000000000',
}

GRAPH_APP_ID = WELL_KNOWN_RESOURCES['graph']

BUILTIN_PROFILES = {
    # Data Factory pipelines reading specific SharePoint sites
    'data-factory': {'resource': 'graph', 'permissions': ['Sites.Selected']},
    # Web apps reading directory users and groups
    'managed-identity': {'resource': 'graph', 'permissions': ['User.Read.All', 'Group.Read.All']},
}

DEFAULT_PROFILE = 'data-factory'


class PermissionProfiles:
    """Manages the named permission profiles available to grant and revoke."""

    # Regex pattern to detect GUIDs (8-4-4-4-12 format)
    GUID_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)

    def __init__(self, profile_data: Dict = None):
        """Initialize the profiles.

        Args:
            profile_data: Dictionary with a 'profiles' key mapping profile names to
                          {'resource': alias-or-appId, 'permissions': [...]}. File
                          profiles override built-in profiles of the same name.
        """
        self.profiles: Dict[str, Dict] = {
            name: {'resource': p['resource'], 'permissions': list(p['permissions'])}
            for name, p in BUILTIN_PROFILES.items()
        }

        if profile_data:
            self._load_profile_data(profile_data)

    def _load_profile_data(self, data: Dict):
        profiles = data.get('profiles')
        if not isinstance(profiles, dict):
            raise ValueError("Profile file must contain a 'profiles' object")

        for name, profile in profiles.items():
            if not isinstance(profile, dict):
                raise ValueError(f"Profile '{name}' must be an object")
            permissions = profile.get('permissions', [])
            if isinstance(permissions, str):
                permissions = [permissions]
            self.profiles[name] = {
                'resource': profile.get('resource', 'graph'),
                'permissions': list(permissions),
            }

    @classmethod
    def is_guid(cls, value: str) -> bool:
        """Check if a string is a valid GUID (8-4-4-4-12)."""
        return bool(cls.GUID_PATTERN.match(value or ''))

    @classmethod
    def from_file(cls, file_path: str) -> 'PermissionProfiles':
        """Load profiles from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            json.JSONDecodeError: If the file contains invalid JSON
            ValueError: If the file format is invalid
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Profile file not found: {file_path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError("Profile file must contain a JSON object")

        return cls(data)

    @classmethod
    def resolve_resource(cls, value: Optional[str]) -> str:
        """Turn a resource alias or application ID into an application ID.

        Raises:
            ValueError: If the value is neither a known alias nor a GUID
        """
        if not value:
            return GRAPH_APP_ID
        alias = value.lower()
        if alias in WELL_KNOWN_RESOURCES:
            return WELL_KNOWN_RESOURCES[alias]
        if cls.is_guid(value):
            return value.lower()
        raise ValueError(
            f"Unknown resource '{value}'. Use an application ID or one of: {', '.join(sorted(WELL_KNOWN_RESOURCES))}"
        )

    def validate(self) -> Tuple[bool, List[str]]:
        """Check every profile for an unknown resource or an empty permission list."""
        problems = []
        for name, profile in sorted(self.profiles.items()):
            try:
                self.resolve_resource(profile['resource'])
            except ValueError as e:
                problems.append(f"{name}: {e}")
            if not profile['permissions']:
                problems.append(f"{name}: no permissions listed")
        return len(problems) == 0, problems

    def get(self, name: str) -> Dict:
        """Get a profile by name.

        Raises:
            ValueError: If no profile has this name
        """
        if name not in self.profiles:
            raise ValueError(f"Unknown profile '{name}'. Available: {', '.join(self.names())}")
        return self.profiles[name]

    def names(self) -> List[str]:
        return sorted(self.profiles)

    def to_dict(self) -> Dict:
        return {'profiles': {name: self.profiles[name] for name in self.names()}}

    def save(self, file_path: str):
        """Save the profiles to a JSON file."""
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    def __repr__(self) -> str:
        return f"PermissionProfiles({', '.join(self.names())})"
