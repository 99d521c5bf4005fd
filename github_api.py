import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import jwt
import requests

from config import GitHubAuthInputs
from errors import CategoryNotFoundError, GitHubAPIError
from plan import PERMISSION_LEVELS, DesiredUser, permission_rank
from retry import retry_transient

DEFAULT_API_URL = 'https://api.github.com'

# REST permission flag -> permission level, highest first
PERMISSION_FLAGS = (
    ('admin', 'admin'),
    ('maintain', 'maintain'),
    ('push', 'write'),
    ('triage', 'triage'),
    ('pull', 'read'),
)

CATEGORY_QUERY = '''
query ($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) {
    id
    discussionCategories(first: 100) {
      nodes {
        id
        name
      }
    }
  }
}
'''

CREATE_DISCUSSION_MUTATION = '''
mutation ($repositoryId: ID!, $categoryId: ID!, $title: String!, $body: String!) {
  createDiscussion(input: {repositoryId: $repositoryId, categoryId: $categoryId, title: $title, body: $body}) {
    discussion {
      url
    }
  }
}
'''

LIST_DISCUSSIONS_QUERY = '''
query ($owner: String!, $repo: String!, $categoryId: ID!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    discussions(first: 100, after: $cursor, categoryId: $categoryId,
                orderBy: {field: CREATED_AT, direction: ASC}) {
      nodes {
        id
        title
        createdAt
        url
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
'''

DELETE_DISCUSSION_MUTATION = '''
mutation ($id: ID!) {
  deleteDiscussion(input: {id: $id}) {
    clientMutationId
  }
}
'''


def api_base_url() -> str:
    return os.getenv('GITHUB_API_URL', DEFAULT_API_URL).rstrip('/')


class StaticTokenProvider:
    """Token given directly to the action, e.g. GITHUB_TOKEN."""

    def __init__(self, token: str):
        self.token = token
        self.token_expires_at = 0

    def get_token(self) -> str:
        return self.token


class GitHubAppTokenManager:
    """
    Manages GitHub App installation tokens with automatic refresh.
    Tokens are valid for 1 hour, but we refresh 5 minutes before expiry.
    """
    TOKEN_REFRESH_MARGIN = 300  # Refresh 5 minutes before expiry

    def __init__(self, app_id: str, installation_id: str, private_key: str, base_url: str = None):
        self.app_id = app_id
        self.installation_id = installation_id
        self.private_key = private_key
        self.base_url = base_url or api_base_url()
        self.token = None
        self.token_expires_at = 0

    def _fetch_token(self) -> tuple[str, int]:
        """
        Fetch a new installation access token from GitHub.

        :return: Tuple of (token, expires_at_timestamp)
        """
        now = int(time.time())
        payload = {
            'iat': now - 60,  # Issued at (60s in past for clock skew)
            'exp': now + 540,  # Expires in 9 minutes (max 10 min)
            'iss': self.app_id
        }
        app_jwt = jwt.encode(payload, self.private_key, algorithm='RS256')

        headers = {
            'Authorization': f'Bearer {app_jwt}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': '2022-11-28'
        }
        response = requests.post(
            f'{self.base_url}/app/installations/{self.installation_id}/access_tokens',
            headers=headers
        )
        if response.status_code != 201:
            raise GitHubAPIError(f'Error getting GitHub App token: {response.status_code}',
                                 response.status_code, response.text)

        token_data = response.json()
        expires_at_str = token_data.get('expires_at', '')
        if expires_at_str:
            expires_at = int(datetime.fromisoformat(expires_at_str.replace('Z', '+00:00')).timestamp())
        else:
            expires_at = now + 3600
        logging.debug(f'GitHub App token obtained, expires at: {expires_at_str}')
        return token_data['token'], expires_at

    def get_token(self) -> str:
        """
        Get a valid token, refreshing if necessary.

        :return: Valid installation access token
        """
        now = int(time.time())
        if self.token is None or now >= (self.token_expires_at - self.TOKEN_REFRESH_MARGIN):
            logging.info('Refreshing GitHub App token...')
            self.token, self.token_expires_at = self._fetch_token()
        return self.token


def create_token_provider(auth: GitHubAuthInputs):
    """App credentials take precedence over github-token, which defaults to the workflow token."""
    if auth.has_app_credentials:
        return GitHubAppTokenManager(auth.app_id, auth.installation_id, auth.private_key)
    return StaticTokenProvider(auth.token)


def collaborator_permission(collaborator: dict) -> Optional[str]:
    """
    Highest permission level granted to a collaborator.

    :param collaborator: Collaborator object from the REST API.
    :return: Permission level, or None when no permission flag is set.
    """
    permissions = collaborator.get('permissions') or {}
    for flag, level in PERMISSION_FLAGS:
        if permissions.get(flag):
            return level
    return None


@dataclass(frozen=True)
class DiscussionCategory:
    repository_id: str
    category_id: str
    name: str


@dataclass(frozen=True)
class Discussion:
    id: str
    title: str
    created_at: str
    url: str


class GitHubRepoManager:
    # Rate limiting configuration
    MAX_RETRIES = 5
    BASE_SLEEP = 2  # seconds
    PAUSE_MUTATION = 1.0  # pause between write operations
    SAFETY_MARGIN = 5  # if remaining <= margin, wait for reset

    def __init__(self, token_manager, owner: str, repo: str, base_url: str = None):
        """
        Initialize the GitHubRepoManager for a single repository.

        :param token_manager: StaticTokenProvider or GitHubAppTokenManager.
        :param owner: Repository owner.
        :param repo: Repository name.
        :param base_url: REST API root, GITHUB_API_URL or api.github.com by default.
        """
        self.token_manager = token_manager
        self.owner = owner
        self.repo = repo
        self.api_url = base_url or api_base_url()
        self.base_url = f'{self.api_url}/repos/{owner}/{repo}'
        self.graphql_url = os.getenv('GITHUB_GRAPHQL_URL', f'{self.api_url}/graphql')

    @property
    def full_name(self) -> str:
        return f'{self.owner}/{self.repo}'

    def _get_headers(self):
        """Get headers with fresh token."""
        return {
            'Authorization': f'Bearer {self.token_manager.get_token()}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': '2022-11-28'
        }

    def _handle_rate_limit(self, response):
        """
        Check rate limit headers and wait if necessary.
        """
        remaining = response.headers.get('X-RateLimit-Remaining')
        reset_time = response.headers.get('X-RateLimit-Reset')

        if remaining is not None and int(remaining) <= self.SAFETY_MARGIN:
            if reset_time:
                wait_time = int(reset_time) - int(time.time()) + 1
                if wait_time > 0:
                    logging.warning(f'Rate limit low (remaining={remaining}), waiting {wait_time}s until reset')
                    time.sleep(wait_time)

    def _request_with_retry(self, method, url, retry_server_errors=True, **kwargs):
        """
        Make HTTP request with retry logic for rate limits and server errors.

        :param method: HTTP method (get, post, put, delete)
        :param url: Request URL
        :param retry_server_errors: Retry 5xx responses. Off for non-idempotent calls.
        :param kwargs: Additional arguments for requests
        :return: Response object
        """
        for attempt in range(1, self.MAX_RETRIES + 1):
            response = getattr(requests, method)(url, headers=self._get_headers(), **kwargs)

            self._handle_rate_limit(response)

            if response.status_code in [200, 201, 202, 204]:
                return response

            # Rate limit hit (GitHub uses both 403 and 429)
            if response.status_code in [403, 429]:
                retry_after = response.headers.get('Retry-After')
                remaining = response.headers.get('X-RateLimit-Remaining')
                reset_time = response.headers.get('X-RateLimit-Reset')

                if retry_after:
                    wait_time = int(retry_after)
                    logging.warning(f'Rate limit (HTTP {response.status_code}), Retry-After={wait_time}s, attempt {attempt}/{self.MAX_RETRIES}')
                    time.sleep(wait_time)
                    continue

                if remaining is not None and int(remaining) == 0 and reset_time:
                    wait_time = int(reset_time) - int(time.time()) + 1
                    if wait_time > 0:
                        logging.warning(f'Rate limit exhausted (HTTP {response.status_code}), waiting {wait_time}s until reset, attempt {attempt}/{self.MAX_RETRIES}')
                        time.sleep(wait_time)
                        continue

                # A plain 403 without rate limit headers is a permission problem
                if response.status_code == 403 and remaining is None:
                    break

                backoff = self.BASE_SLEEP * (2 ** (attempt - 1))
                logging.warning(f'Probable secondary rate limit (HTTP {response.status_code}), backoff {backoff}s, attempt {attempt}/{self.MAX_RETRIES}')
                time.sleep(backoff)
                continue

            if 500 <= response.status_code < 600 and retry_server_errors:
                backoff = self.BASE_SLEEP * (2 ** (attempt - 1))
                logging.warning(f'Server error (HTTP {response.status_code}), backoff {backoff}s, attempt {attempt}/{self.MAX_RETRIES}')
                time.sleep(backoff)
                continue

            # 401 Unauthorized - token might have expired, force refresh and retry
            if response.status_code == 401 and isinstance(self.token_manager, GitHubAppTokenManager):
                logging.warning(f'Unauthorized (HTTP 401), forcing token refresh, attempt {attempt}/{self.MAX_RETRIES}')
                self.token_manager.token_expires_at = 0
                time.sleep(self.BASE_SLEEP)
                continue

            break

        return response

    def _graphql(self, query: str, variables: dict, mutation: bool = False) -> dict:
        """
        Run a GraphQL query or mutation.

        :param query: GraphQL document.
        :param variables: Query variables.
        :param mutation: Do not retry server errors.
        :return: The 'data' member of the response.
        """
        response = self._request_with_retry(
            'post', self.graphql_url, retry_server_errors=not mutation,
            json={'query': query, 'variables': variables},
        )
        if response.status_code != 200:
            raise GitHubAPIError(f'GraphQL request failed: {response.status_code}',
                                 response.status_code, response.text)
        payload = response.json()
        if payload.get('errors'):
            messages = '; '.join(error.get('message', str(error)) for error in payload['errors'])
            raise GitHubAPIError(f'GraphQL request failed: {messages}', response.status_code)
        return payload.get('data') or {}

    @retry_transient
    def list_collaborators(self):
        """
        List all collaborators of the repository, handling pagination.

        :return: List of collaborator objects.
        """
        url = f'{self.base_url}/collaborators'
        collaborators = []
        page = 1
        per_page = 100  # Maximum allowed per page

        while True:
            params = {'per_page': per_page, 'page': page, 'affiliation': 'all'}
            response = self._request_with_retry('get', url, params=params)
            if response.status_code == 200:
                page_collaborators = response.json()
                if not page_collaborators:
                    break
                collaborators.extend(page_collaborators)
                if len(page_collaborators) < per_page:
                    break
                page += 1
            else:
                raise GitHubAPIError(f'Error listing collaborators: {response.status_code}',
                                     response.status_code, response.text)

        return collaborators

    def list_eligible_collaborators(self, minimum_permission: str = 'write') -> List[DesiredUser]:
        """
        Collaborators whose permission is at least minimum_permission.

        :param minimum_permission: Lowest permission level to include.
        :return: Users with their permission level.
        """
        if minimum_permission not in PERMISSION_LEVELS:
            raise ValueError(f'Unknown permission level: {minimum_permission}')
        threshold = permission_rank(minimum_permission)

        desired = []
        for collaborator in self.list_collaborators():
            level = collaborator_permission(collaborator)
            if level is not None and permission_rank(level) >= threshold:
                desired.append(DesiredUser(login=collaborator['login'], role=level))

        logging.debug(f'Eligible collaborators: {len(desired)}')
        return desired

    @retry_transient
    def get_discussion_category(self, category_name: str) -> DiscussionCategory:
        """
        Look up a Discussion category by name.

        :param category_name: Exact category name.
        :return: Repository and category node IDs.
        """
        data = self._graphql(CATEGORY_QUERY, {'owner': self.owner, 'repo': self.repo})
        repository = data.get('repository')
        if not repository:
            raise GitHubAPIError(f'Repository {self.full_name} not found')
        for node in repository['discussionCategories']['nodes']:
            if node['name'] == category_name:
                return DiscussionCategory(repository['id'], node['id'], node['name'])
        raise CategoryNotFoundError(f'Discussion category "{category_name}" not found in {self.full_name}')

    def create_discussion(self, category: DiscussionCategory, title: str, body: str) -> str:
        """
        Create a Discussion.

        :param category: Target category.
        :param title: Discussion title.
        :param body: Discussion body (Markdown).
        :return: URL of the new Discussion.
        """
        data = self._graphql(CREATE_DISCUSSION_MUTATION, {
            'repositoryId': category.repository_id,
            'categoryId': category.category_id,
            'title': title,
            'body': body,
        }, mutation=True)
        url = ((data.get('createDiscussion') or {}).get('discussion') or {}).get('url')
        if not url:
            raise GitHubAPIError('createDiscussion returned no URL')
        logging.debug(f'Discussion created: {url}')
        time.sleep(self.PAUSE_MUTATION)  # Pause between mutations
        return url

    @retry_transient
    def list_discussions(self, category: DiscussionCategory) -> List[Discussion]:
        """
        List all Discussions of a category, oldest first.

        :param category: Category to list.
        :return: Discussions.
        """
        discussions = []
        cursor = None
        while True:
            data = self._graphql(LIST_DISCUSSIONS_QUERY, {
                'owner': self.owner,
                'repo': self.repo,
                'categoryId': category.category_id,
                'cursor': cursor,
            })
            connection = data['repository']['discussions']
            discussions.extend(
                Discussion(node['id'], node['title'], node['createdAt'], node['url'])
                for node in connection['nodes']
            )
            page_info = connection.get('pageInfo') or {}
            if not page_info.get('hasNextPage'):
                break
            cursor = page_info['endCursor']
        return discussions

    def delete_discussion(self, discussion_id: str):
        """
        Delete a Discussion.

        :param discussion_id: Node ID of the Discussion.
        """
        self._graphql(DELETE_DISCUSSION_MUTATION, {'id': discussion_id}, mutation=True)
        logging.debug(f'Discussion {discussion_id} deleted.')
        time.sleep(self.PAUSE_MUTATION)  # Pause between mutations
