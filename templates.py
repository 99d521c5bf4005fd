"""Placeholder substitution and the Markdown summary of a sync run."""
import re
from typing import Callable, Dict, Optional, Sequence

from plan import InvitationResult, RemovalResult, UpdateResult

PLACEHOLDER_PATTERN = re.compile(r'\{(\w+)\}')


def fill_template(template: str, values: Dict[str, str],
                  on_missing_key: Optional[Callable[[str], None]] = None) -> str:
    """
    Replace {key} placeholders with values.

    Unknown placeholders are replaced with an empty string. on_missing_key is
    called once per distinct unknown key.

    :param template: Template text.
    :param values: Placeholder values.
    :param on_missing_key: Optional callback receiving each unknown key.
    :return: Rendered text.
    """
    reported = set()

    def substitute(match):
        key = match.group(1)
        value = values.get(key)
        if value is None:
            if on_missing_key and key not in reported:
                reported.add(key)
                on_missing_key(key)
            return ''
        return str(value)

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def build_summary_markdown(repo: str, swa_name: str,
                           added: Sequence[InvitationResult],
                           updated: Sequence[UpdateResult],
                           removed: Sequence[RemovalResult],
                           discussion_urls: Sequence[str] = (),
                           status: str = 'success',
                           failure_message: Optional[str] = None) -> str:
    """
    Render the run summary used for the job summary and the Discussion body.

    :param repo: Repository in owner/repo form.
    :param swa_name: Static Web App name.
    :param added: Invitations sent.
    :param updated: Role updates applied.
    :param removed: Users whose roles were cleared.
    :param discussion_urls: Discussions created for this run.
    :param status: 'success' or 'failure'.
    :param failure_message: Error shown when status is 'failure'.
    :return: Markdown text.
    """
    lines = [
        f'- Status: {status}',
        f'- Repository: {repo}',
        f'- Static Web App: {swa_name}',
        f'- Added: {len(added)}',
        f'- Updated: {len(updated)}',
        f'- Removed: {len(removed)}',
    ]
    for url in discussion_urls:
        lines.append(f'- Discussion: {url}')
    if status == 'failure' and failure_message:
        lines.append(f'- Error: {failure_message}')

    sections = []
    if added:
        sections.append('\n'.join(
            ['### Invited users'] +
            [f'- @{invite.login} ({invite.role}) - [Invite link]({invite.invite_url})' for invite in added]
        ))
    if updated:
        sections.append('\n'.join(
            ['### Updated roles'] + [f'- @{update.login} → {update.role}' for update in updated]
        ))
    if removed:
        sections.append('\n'.join(['### Removed users'] + [f'- @{user.login}' for user in removed]))

    return '\n\n'.join(part for part in ['\n'.join(lines), '\n\n'.join(sections)] if part)
