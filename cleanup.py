"""
Delete old invite Discussions created by the sync action.

A Discussion is deleted when its title matches the summary or the per-invite
title template (every placeholder matches any text) and it is older than
expiration-hours, or regardless of age in 'immediate' mode.
"""
import logging
import re
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from actions import ActionReporter, configure_logging
from config import load_cleanup_inputs
from errors import to_error_message
from github_api import GitHubRepoManager, create_token_provider
from templates import PLACEHOLDER_PATTERN


def create_title_regex(template: str) -> re.Pattern:
    literals = PLACEHOLDER_PATTERN.split(template)[::2]
    return re.compile('.*?'.join(re.escape(literal) for literal in literals), re.DOTALL)


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def sweep(github: GitHubRepoManager, category_name: str, title_templates: Sequence[str],
          cleanup_mode: str, expiration_hours: int, now: Optional[datetime] = None) -> int:
    """
    Delete matching Discussions one by one.

    :param github: Repository client.
    :param category_name: Discussion category to clean.
    :param title_templates: Title templates used when the Discussions were created.
    :param cleanup_mode: 'expiration' or 'immediate'.
    :param expiration_hours: Age after which a Discussion expires.
    :param now: Current time, for tests.
    :return: Number of deleted Discussions.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=expiration_hours)
    logging.info(f'Expiration cutoff: {cutoff.isoformat()}')

    title_regexes = [create_title_regex(template) for template in title_templates]
    logging.info(f'Searching for discussions in {github.full_name} category "{category_name}"')
    category = github.get_discussion_category(category_name)
    logging.info(f'Found category ID: {category.category_id}')

    discussions = github.list_discussions(category)
    logging.info(f'Found {len(discussions)} discussions in category.')

    deleted = 0
    for discussion in discussions:
        is_expired = cleanup_mode == 'immediate' or parse_timestamp(discussion.created_at) < cutoff
        is_match = any(regex.fullmatch(discussion.title) for regex in title_regexes)
        if is_expired and is_match:
            logging.info(f'Deleting expired discussion: "{discussion.title}" ({discussion.url}) '
                         f'created at {discussion.created_at}')
            github.delete_discussion(discussion.id)
            deleted += 1
        else:
            logging.debug(f'Skipping: "{discussion.title}" (Expired: {is_expired}, Match: {is_match})')

    logging.info(f'Deleted {deleted} discussions.')
    return deleted


def run(reporter: ActionReporter) -> bool:
    try:
        inputs = load_cleanup_inputs()
        github = GitHubRepoManager(create_token_provider(inputs.auth), inputs.owner, inputs.repo)
        title_templates = [inputs.discussion_title_template, inputs.invite_title_template]
        deleted = sweep(github, inputs.discussion_category_name, title_templates,
                        inputs.cleanup_mode, inputs.expiration_hours)
        reporter.set_output('deleted-count', deleted)
    except Exception as e:
        reporter.set_failed(to_error_message(e))
    return not reporter.failed


def main() -> int:
    configure_logging()
    reporter = ActionReporter()
    run(reporter)
    return reporter.exit_code


if __name__ == '__main__':
    sys.exit(main())
