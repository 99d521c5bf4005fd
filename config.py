"""
Action inputs.

GitHub Actions passes inputs as INPUT_<NAME> environment variables. A local
.env file is loaded first so the scripts can be run outside of a workflow.
"""
import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from errors import ConfigurationError
from plan import DEFAULT_ROLE_PREFIX, PERMISSION_LEVELS, default_role_mapping

MAX_INVITATION_EXPIRATION_HOURS = 168
DEFAULT_EXPIRATION_HOURS = 168
DEFAULT_MINIMUM_PERMISSION = 'write'
DISCUSSION_MODES = ('summary', 'per-invite')
CLEANUP_MODES = ('expiration', 'immediate')

DEFAULT_TITLE_TEMPLATE = 'SWA access invites for {swaName} ({repo}) - {date}'
DEFAULT_BODY_TEMPLATE = (
    'This discussion contains SWA access invite links for **{swaName}** from **{repo}**.\n'
    '\n'
    '{summaryMarkdown}'
)
DEFAULT_INVITE_TITLE_TEMPLATE = 'SWA access invite for @{login} ({swaName}) - {date}'
DEFAULT_INVITE_BODY_TEMPLATE = (
    '@{login} has been invited to **{swaName}** with role `{role}`.\n'
    '\n'
    '[Accept the invitation]({inviteUrl}) within {invitationExpirationHours} hours.'
)


def get_input(name: str, required: bool = False, default: str = '') -> str:
    """
    Read an action input.

    :param name: Input name as declared in action.yml, e.g. 'swa-name'.
    :param required: Raise ConfigurationError when the input is blank.
    :param default: Value used when the input is blank.
    :return: Trimmed input value.
    """
    upper = name.upper().replace(' ', '_')
    value = os.getenv(f'INPUT_{upper.replace("-", "_")}') or os.getenv(f'INPUT_{upper}') or ''
    value = value.strip()
    if not value:
        if required:
            raise ConfigurationError(f'Input required and not supplied: {name}')
        return default
    return value


def parse_target_repo(value: Optional[str], default_repo: Optional[str] = None) -> Tuple[str, str]:
    """
    Split an owner/repo reference, falling back to the workflow repository.

    :param value: Input value, may be blank.
    :param default_repo: Fallback in owner/repo form, GITHUB_REPOSITORY when None.
    :return: Tuple of (owner, repo).
    """
    if not value:
        value = default_repo if default_repo is not None else os.getenv('GITHUB_REPOSITORY', '')
        if not value:
            raise ConfigurationError('target-repo is not set and GITHUB_REPOSITORY is not available')
    parts = [part.strip() for part in value.split('/')]
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError(f'Invalid target-repo format: {value}')
    return parts[0], parts[1]


def parse_hours(value: str, name: str, default: int, maximum: Optional[int] = None) -> int:
    if not value:
        return default
    try:
        hours = int(value)
    except ValueError:
        hours = None
    if hours is None or hours < 1 or (maximum is not None and hours > maximum):
        if maximum is not None:
            raise ConfigurationError(f'{name} must be between 1 and {maximum} hours')
        raise ConfigurationError(f'{name} must be a positive number of hours')
    return hours


def parse_choice(value: str, name: str, choices: Tuple[str, ...]) -> str:
    value = value.lower()
    if value not in choices:
        raise ConfigurationError(f'{name} must be one of: {", ".join(choices)} (got "{value}")')
    return value


@dataclass
class GitHubAuthInputs:
    token: str = ''
    app_id: str = ''
    installation_id: str = ''
    private_key: str = ''

    @property
    def has_app_credentials(self) -> bool:
        return bool(self.app_id and self.installation_id and self.private_key)


def load_github_auth() -> GitHubAuthInputs:
    auth = GitHubAuthInputs(
        token=get_input('github-token'),
        app_id=get_input('github-app-id'),
        installation_id=get_input('github-app-installation-id'),
        private_key=get_input('github-app-private-key'),
    )
    if auth.has_app_credentials or auth.token:
        return auth
    raise ConfigurationError(
        'Input required and not supplied: github-token '
        '(or github-app-id, github-app-installation-id and github-app-private-key)'
    )


@dataclass
class SyncInputs:
    auth: GitHubAuthInputs
    owner: str
    repo: str
    swa_name: str
    swa_resource_group: str
    swa_domain: str
    minimum_permission: str
    role_mapping: Dict[str, str]
    role_prefix: str
    invitation_expiration_hours: int
    discussion_category_name: str
    discussion_mode: str = 'summary'
    discussion_title_template: str = DEFAULT_TITLE_TEMPLATE
    discussion_body_template: str = DEFAULT_BODY_TEMPLATE
    invite_title_template: str = DEFAULT_INVITE_TITLE_TEMPLATE
    invite_body_template: str = DEFAULT_INVITE_BODY_TEMPLATE

    @property
    def repo_full_name(self) -> str:
        return f'{self.owner}/{self.repo}'


def load_sync_inputs() -> SyncInputs:
    """Collect and validate the inputs of the sync action."""
    load_dotenv()

    auth = load_github_auth()
    owner, repo = parse_target_repo(get_input('target-repo'))
    role_prefix = get_input('role-prefix', default=DEFAULT_ROLE_PREFIX)

    role_mapping = default_role_mapping()
    for level in PERMISSION_LEVELS:
        role_mapping[level] = get_input(f'role-for-{level}', default=role_mapping[level])

    minimum_permission = parse_choice(
        get_input('minimum-permission', default=DEFAULT_MINIMUM_PERMISSION),
        'minimum-permission', PERMISSION_LEVELS,
    )
    for level, role in role_mapping.items():
        if not role.strip().lower().startswith(role_prefix.strip().lower()):
            logging.warning(f'role-for-{level} "{role}" does not start with role-prefix "{role_prefix}"; '
                            'its assignments will not be compared')

    return SyncInputs(
        auth=auth,
        owner=owner,
        repo=repo,
        swa_name=get_input('swa-name', required=True),
        swa_resource_group=get_input('swa-resource-group', required=True),
        swa_domain=get_input('swa-domain'),
        minimum_permission=minimum_permission,
        role_mapping=role_mapping,
        role_prefix=role_prefix,
        invitation_expiration_hours=parse_hours(
            get_input('invitation-expiration-hours'), 'invitation-expiration-hours',
            DEFAULT_EXPIRATION_HOURS, MAX_INVITATION_EXPIRATION_HOURS,
        ),
        discussion_category_name=get_input('discussion-category-name', required=True),
        discussion_mode=parse_choice(get_input('discussion-mode', default='summary'),
                                     'discussion-mode', DISCUSSION_MODES),
        discussion_title_template=get_input('discussion-title-template', default=DEFAULT_TITLE_TEMPLATE),
        discussion_body_template=get_input('discussion-body-template', default=DEFAULT_BODY_TEMPLATE),
        invite_title_template=get_input('invite-discussion-title-template',
                                        default=DEFAULT_INVITE_TITLE_TEMPLATE),
        invite_body_template=get_input('invite-discussion-body-template',
                                       default=DEFAULT_INVITE_BODY_TEMPLATE),
    )


@dataclass
class CleanupInputs:
    auth: GitHubAuthInputs
    owner: str
    repo: str
    discussion_category_name: str
    discussion_title_template: str = DEFAULT_TITLE_TEMPLATE
    invite_title_template: str = DEFAULT_INVITE_TITLE_TEMPLATE
    cleanup_mode: str = 'expiration'
    expiration_hours: int = DEFAULT_EXPIRATION_HOURS


def load_cleanup_inputs() -> CleanupInputs:
    """Collect and validate the inputs of the cleanup action."""
    load_dotenv()

    auth = load_github_auth()
    owner, repo = parse_target_repo(get_input('target-repo'))
    return CleanupInputs(
        auth=auth,
        owner=owner,
        repo=repo,
        discussion_category_name=get_input('discussion-category-name', required=True),
        discussion_title_template=get_input('discussion-title-template', default=DEFAULT_TITLE_TEMPLATE),
        invite_title_template=get_input('invite-discussion-title-template',
                                        default=DEFAULT_INVITE_TITLE_TEMPLATE),
        cleanup_mode=parse_choice(get_input('cleanup-mode', default='expiration'),
                                  'cleanup-mode', CLEANUP_MODES),
        expiration_hours=parse_hours(get_input('expiration-hours'), 'expiration-hours',
                                     DEFAULT_EXPIRATION_HOURS),
    )
