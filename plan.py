"""
Diff engine for GitHub collaborators against Static Web App users.

The plan is computed from two live snapshots and has no side effects. Logins
are compared trimmed and lower-cased. Roles are compared as sorted sets and only
roles starting with the role prefix take part, so default roles such as
``anonymous`` or ``authenticated`` never cause an update.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

# Highest first
PERMISSION_LEVELS = ('admin', 'maintain', 'write', 'triage', 'read')
DEFAULT_ROLE_PREFIX = 'github-'


def default_role_mapping(prefix: str = DEFAULT_ROLE_PREFIX) -> Dict[str, str]:
    return {level: f'{prefix}{level}' for level in PERMISSION_LEVELS}


def permission_rank(level: str) -> int:
    """
    Position of a permission level on the ladder, larger means more access.

    :param level: One of PERMISSION_LEVELS.
    :return: 0 for read up to 4 for admin.
    """
    return len(PERMISSION_LEVELS) - 1 - PERMISSION_LEVELS.index(level)


@dataclass(frozen=True)
class DesiredUser:
    login: str
    role: str  # permission level


@dataclass(frozen=True)
class SwaUser:
    """A user registered on the Static Web App, as reported by the Azure CLI."""
    user_id: Optional[str] = None
    user_details: Optional[str] = None
    display_name: Optional[str] = None
    roles: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def from_cli(cls, data: dict) -> 'SwaUser':
        return cls(
            user_id=data.get('userId'),
            user_details=data.get('userDetails'),
            display_name=data.get('displayName'),
            roles=data.get('roles'),
            provider=data.get('provider'),
        )


@dataclass(frozen=True)
class PlanAdd:
    login: str
    role: str


@dataclass(frozen=True)
class PlanUpdate:
    login: str
    role: str
    current_roles: str


@dataclass(frozen=True)
class PlanRemove:
    login: str
    current_roles: str


@dataclass
class SyncPlan:
    to_add: List[PlanAdd] = field(default_factory=list)
    to_update: List[PlanUpdate] = field(default_factory=list)
    to_remove: List[PlanRemove] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_add or self.to_update or self.to_remove)


@dataclass(frozen=True)
class InvitationResult:
    login: str
    role: str
    invite_url: str


@dataclass(frozen=True)
class UpdateResult:
    login: str
    role: str


@dataclass(frozen=True)
class RemovalResult:
    login: str


def normalize_login(login: str) -> str:
    return login.strip().lower()


def resolve_identity(user: SwaUser) -> Optional[str]:
    """
    Resolve the GitHub login of a Static Web App user.

    userDetails is preferred, displayName is the fallback. A user with neither
    cannot be matched and is left out of the plan entirely.

    :param user: Static Web App user.
    :return: Normalized login, or None when unidentifiable.
    """
    if user.user_details and user.user_details.strip():
        return normalize_login(user.user_details)
    if user.display_name and user.display_name.strip():
        return normalize_login(user.display_name)
    return None


def split_roles(roles: Optional[str], prefix: str) -> Tuple[str, ...]:
    """
    Parse a comma-joined role string into a sorted tuple of managed roles.

    :param roles: Role string as stored on the Static Web App.
    :param prefix: Only roles starting with this prefix are kept.
    :return: Sorted, lower-cased roles.
    """
    if not roles:
        return ()
    prefix = prefix.strip().lower()
    parsed = (role.strip().lower() for role in roles.split(','))
    return tuple(sorted(role for role in parsed if role and role.startswith(prefix)))


def normalize_role_set(roles: Optional[str], prefix: str) -> str:
    return ','.join(split_roles(roles, prefix))


def map_role(permission_level: str, role_mapping: Dict[str, str]) -> str:
    return role_mapping[permission_level]


def compute_sync_plan(desired_users: Iterable[DesiredUser], swa_users: Iterable[SwaUser],
                      role_mapping: Dict[str, str],
                      role_prefix: str = DEFAULT_ROLE_PREFIX) -> SyncPlan:
    """
    Compute which users to invite, update and remove.

    Output order follows the order of the inputs. When a login appears twice
    the last entry wins.

    :param desired_users: Collaborators with their permission level.
    :param swa_users: Users currently registered on the Static Web App.
    :param role_mapping: Permission level to Static Web App role.
    :param role_prefix: Prefix of the roles managed by the sync.
    :return: The sync plan.
    """
    desired: Dict[str, str] = {}
    for user in desired_users:
        desired[normalize_login(user.login)] = map_role(user.role, role_mapping)

    existing: Dict[str, SwaUser] = {}
    for user in swa_users:
        login = resolve_identity(user)
        if login:
            existing[login] = user

    plan = SyncPlan()
    for login, role in desired.items():
        current = existing.get(login)
        if current is None:
            plan.to_add.append(PlanAdd(login=login, role=role))
            continue
        if normalize_role_set(current.roles, role_prefix) != normalize_role_set(role, role_prefix):
            plan.to_update.append(PlanUpdate(login=login, role=role, current_roles=current.roles or ''))

    for login, user in existing.items():
        if login not in desired:
            plan.to_remove.append(PlanRemove(login=login, current_roles=user.roles or ''))

    return plan
