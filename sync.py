"""
Sync Azure Static Web App roles with the collaborators of a GitHub repository.

Collaborators are the source of truth. Missing users are invited, users with a
different role are updated and users that are no longer collaborators have
their roles cleared. Invite links are published as a GitHub Discussion and the
run is summarized in the job summary, also when the run fails.
"""
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from actions import ActionReporter, configure_logging
from config import SyncInputs, load_sync_inputs
from errors import CapacityError, SyncError, to_error_message
from github_api import DiscussionCategory, GitHubRepoManager, create_token_provider
from plan import (
    DesiredUser,
    InvitationResult,
    RemovalResult,
    SyncPlan,
    UpdateResult,
    compute_sync_plan,
    normalize_login,
)
from swa import StaticWebAppClient
from templates import build_summary_markdown, fill_template

# Azure Static Web Apps allows custom roles for at most 25 users
SWA_CUSTOM_ROLE_ASSIGNMENT_LIMIT = 25
SUMMARY_HEADING = 'SWA role sync'


@dataclass
class SyncContext:
    inputs: SyncInputs
    github: GitHubRepoManager
    swa: StaticWebAppClient
    category: DiscussionCategory
    swa_domain: str


@dataclass
class SyncResults:
    repo_full_name: str = ''
    swa_name: str = 'unknown'
    summary_markdown: str = ''
    discussion_urls: List[str] = field(default_factory=list)
    added: List[InvitationResult] = field(default_factory=list)
    updated: List[UpdateResult] = field(default_factory=list)
    removed: List[RemovalResult] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.updated or self.removed)


def assert_within_role_limit(users: Sequence[DesiredUser]):
    """
    Fail before touching the Static Web App when the plan cannot succeed.

    :param users: Collaborators that need a custom role.
    """
    logins = {normalize_login(user.login) for user in users}
    logins.discard('')
    if len(logins) > SWA_CUSTOM_ROLE_ASSIGNMENT_LIMIT:
        raise CapacityError(
            f'SWA custom role assignment limit ({SWA_CUSTOM_ROLE_ASSIGNMENT_LIMIT}) exceeded: '
            f'{len(logins)} users require custom roles'
        )


def today() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m-%d')


def build_summary(state: SyncResults, status: str = 'success', failure_message: Optional[str] = None) -> str:
    return build_summary_markdown(
        repo=state.repo_full_name or 'unknown',
        swa_name=state.swa_name or 'unknown',
        added=state.added,
        updated=state.updated,
        removed=state.removed,
        discussion_urls=state.discussion_urls,
        status=status,
        failure_message=failure_message,
    )


def build_failure_summary(state: SyncResults, failure_message: str) -> str:
    """A summary that was already built is kept, otherwise partial results are rendered."""
    return state.summary_markdown or build_summary(state, 'failure', failure_message)


async def prepare(inputs: SyncInputs) -> SyncContext:
    """
    Create the API clients and resolve the Discussion category and SWA domain.

    :param inputs: Validated action inputs.
    :return: Context for the rest of the run.
    """
    github = GitHubRepoManager(create_token_provider(inputs.auth), inputs.owner, inputs.repo)
    swa = StaticWebAppClient(inputs.swa_name, inputs.swa_resource_group)

    category = await asyncio.to_thread(github.get_discussion_category, inputs.discussion_category_name)
    swa_domain = inputs.swa_domain or await swa.get_default_hostname()
    logging.info(f'Using SWA domain: {swa_domain}')

    return SyncContext(inputs=inputs, github=github, swa=swa, category=category, swa_domain=swa_domain)


async def build_plan(context: SyncContext) -> SyncPlan:
    inputs = context.inputs
    github_users = await asyncio.to_thread(context.github.list_eligible_collaborators,
                                           inputs.minimum_permission)
    logging.info(f'Found {len(github_users)} GitHub users with {inputs.minimum_permission} '
                 f'or higher permission on {inputs.repo_full_name}')

    assert_within_role_limit(github_users)

    swa_users = await context.swa.list_users()
    plan = compute_sync_plan(github_users, swa_users, inputs.role_mapping, inputs.role_prefix)
    logging.info('Plan -> add:%d update:%d remove:%d',
                 len(plan.to_add), len(plan.to_update), len(plan.to_remove))
    return plan


async def apply_plan(context: SyncContext, plan: SyncPlan, state: SyncResults):
    """
    Apply the plan one user at a time: invites, then updates, then removals.

    Results are recorded on state as they happen so they survive a failure.
    """
    swa = context.swa
    for add in plan.to_add:
        invite_url = await swa.invite_user(add.login, add.role, context.swa_domain,
                                           context.inputs.invitation_expiration_hours)
        state.added.append(InvitationResult(login=add.login, role=add.role, invite_url=invite_url))
        logging.info(f'Invited {add.login} with role {add.role}')

    for update in plan.to_update:
        await swa.update_user_roles(update.login, update.role)
        state.updated.append(UpdateResult(login=update.login, role=update.role))
        logging.info(f'Updated {update.login} from "{update.current_roles}" to role {update.role}')

    for removal in plan.to_remove:
        await swa.clear_user_roles(removal.login)
        state.removed.append(RemovalResult(login=removal.login))
        logging.info(f'Removed roles from {removal.login}')


def render(title_template: str, body_template: str, values: Dict[str, str]):
    missing = []

    def on_missing_key(key):
        if key not in missing:
            missing.append(key)

    title = fill_template(title_template, values, on_missing_key)
    body = fill_template(body_template, values, on_missing_key)
    if missing:
        logging.warning(f'Unknown template placeholders with no value: {", ".join(missing)}')
    return title, body


async def create_discussion(context: SyncContext, title: str, body: str) -> str:
    try:
        url = await asyncio.to_thread(context.github.create_discussion, context.category, title, body)
    except Exception as e:
        raise SyncError(f'Failed to create Discussion: {to_error_message(e)}') from e
    logging.info(f'Created Discussion: {url}')
    return url


async def publish_discussions(context: SyncContext, state: SyncResults) -> str:
    """
    Create the Discussion(s) for this run.

    In 'summary' mode one Discussion holds the whole summary and is skipped when
    nothing changed. In 'per-invite' mode every invited user gets a Discussion,
    so runs without invites create none.

    :return: Summary Markdown including the Discussion links.
    """
    inputs = context.inputs
    sync_summary = build_summary(state)
    base_values = {
        'swaName': inputs.swa_name,
        'repo': inputs.repo_full_name,
        'date': today(),
    }

    if inputs.discussion_mode == 'per-invite':
        if not state.added:
            logging.info('No SWA invitations sent; skipping discussion creation.')
            return sync_summary
        for invite in state.added:
            values = dict(base_values, login=invite.login, role=invite.role, inviteUrl=invite.invite_url,
                          invitationExpirationHours=str(inputs.invitation_expiration_hours))
            title, body = render(inputs.invite_title_template, inputs.invite_body_template, values)
            state.discussion_urls.append(await create_discussion(context, title, body))
        return build_summary(state)

    if not state.has_changes:
        logging.info('No SWA role changes detected; skipping discussion creation.')
        return sync_summary

    if '{summaryMarkdown}' not in inputs.discussion_body_template:
        logging.warning('discussion-body-template does not include {summaryMarkdown}; '
                        'sync summary will not be added to the discussion body.')
    values = dict(base_values, summaryMarkdown=sync_summary)
    title, body = render(inputs.discussion_title_template, inputs.discussion_body_template, values)
    state.discussion_urls.append(await create_discussion(context, title, body))
    return build_summary(state)


def report_results(state: SyncResults, reporter: ActionReporter):
    reporter.set_output('added-count', len(state.added))
    reporter.set_output('updated-count', len(state.updated))
    reporter.set_output('removed-count', len(state.removed))
    reporter.set_output('discussion-url', state.discussion_urls[0] if state.discussion_urls else '')
    reporter.set_output('discussion-urls', json.dumps(state.discussion_urls))


async def run(reporter: ActionReporter) -> bool:
    """
    Run the sync. Never raises: failures are reported through reporter and the
    job summary is written with whatever was done before the failure.

    :param reporter: Workflow reporting interface.
    :return: True when the run succeeded.
    """
    state = SyncResults()
    try:
        inputs = load_sync_inputs()
        state.repo_full_name = inputs.repo_full_name
        state.swa_name = inputs.swa_name

        context = await prepare(inputs)
        plan = await build_plan(context)
        await apply_plan(context, plan, state)
        state.summary_markdown = await publish_discussions(context, state)
        report_results(state, reporter)
    except Exception as e:
        message = to_error_message(e)
        state.summary_markdown = build_failure_summary(state, message)
        reporter.set_failed(message)
    finally:
        if state.summary_markdown:
            try:
                reporter.write_summary(SUMMARY_HEADING, state.summary_markdown)
            except Exception as e:
                reporter.set_failed(f'Failed to write job summary: {to_error_message(e)}')

    if not reporter.failed:
        logging.info('Sync completed successfully.')
    return not reporter.failed


async def main() -> int:
    configure_logging()
    reporter = ActionReporter()
    await run(reporter)
    return reporter.exit_code


if __name__ == '__main__':
    sys.exit(asyncio.run(main()))
