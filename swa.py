import asyncio
import json
import logging
from typing import List, Sequence

from errors import AzureCliError
from plan import SwaUser

GITHUB_PROVIDER = 'GitHub'


class StaticWebAppClient:
    def __init__(self, name: str, resource_group: str, az_path: str = 'az'):
        """
        Manage users of an Azure Static Web App through the Azure CLI.

        The CLI must already be logged in (e.g. by azure/login).

        :param name: Static Web App name.
        :param resource_group: Resource group of the Static Web App.
        :param az_path: Azure CLI executable.
        """
        self.name = name
        self.resource_group = resource_group
        self.az_path = az_path

    def _target_args(self) -> List[str]:
        return ['--name', self.name, '--resource-group', self.resource_group]

    async def _run(self, args: Sequence[str]) -> str:
        """
        Run an az command and return its stdout.

        :param args: Arguments after the executable.
        :return: Decoded stdout.
        """
        command = ' '.join(['az', *args[:3]])
        try:
            process = await asyncio.create_subprocess_exec(
                self.az_path, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise AzureCliError(f'Azure CLI not found ({self.az_path}): {e}') from e

        stdout, stderr = await process.communicate()
        stderr_text = stderr.decode(errors='replace') if stderr else ''
        if process.returncode != 0:
            raise AzureCliError(f'Command failed: {command} (exit code {process.returncode})',
                                stderr_text, process.returncode)
        if stderr_text.strip():
            logging.debug(f'{command} stderr: {stderr_text.strip()}')
        return stdout.decode(errors='replace') if stdout else ''

    async def _run_json(self, args: Sequence[str]):
        output = await self._run(args)
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise AzureCliError(f'Unexpected output from az {" ".join(args[:3])}: {e}') from e

    async def list_users(self, provider: str = GITHUB_PROVIDER) -> List[SwaUser]:
        """
        List users registered with the given authentication provider.

        :param provider: Provider name, compared trimmed and case-insensitively.
        :return: Static Web App users.
        """
        users = await self._run_json(
            ['staticwebapp', 'users', 'list', *self._target_args(), '--output', 'json']
        )
        wanted = provider.strip().lower()
        matching = [
            SwaUser.from_cli(user)
            for user in users or []
            if (user.get('provider') or '').strip().lower() == wanted
        ]
        logging.debug(f'Fetched {len(matching)} SWA {provider} users')
        return matching

    async def get_default_hostname(self) -> str:
        output = await self._run(
            ['staticwebapp', 'show', *self._target_args(),
             '--query', 'defaultHostname', '--output', 'tsv']
        )
        domain = output.strip()
        if not domain:
            raise AzureCliError('Failed to resolve default hostname for Static Web App')
        return domain

    async def invite_user(self, login: str, roles: str, domain: str, expiration_hours: int,
                          provider: str = GITHUB_PROVIDER) -> str:
        """
        Create an invitation link for a user.

        :param login: GitHub login.
        :param roles: Comma-joined roles to grant.
        :param domain: Domain the invitation is valid for.
        :param expiration_hours: Hours until the link expires.
        :param provider: Authentication provider.
        :return: Invitation URL.
        """
        result = await self._run_json(
            ['staticwebapp', 'users', 'invite', *self._target_args(),
             '--authentication-provider', provider,
             '--user-details', login,
             '--roles', roles,
             '--domain', domain,
             '--invitation-expiration-in-hours', str(expiration_hours),
             '--output', 'json']
        ) or {}
        url = result.get('invitationUrl') or result.get('inviteUrl') or result.get('url') or ''
        if not url:
            raise AzureCliError(f'Failed to retrieve invite URL for {login}')
        return url

    async def update_user_roles(self, login: str, roles: str, provider: str = GITHUB_PROVIDER):
        await self._run(
            ['staticwebapp', 'users', 'update', *self._target_args(),
             '--authentication-provider', provider,
             '--user-details', login,
             '--roles', roles]
        )

    async def clear_user_roles(self, login: str, provider: str = GITHUB_PROVIDER):
        await self.update_user_roles(login, '', provider)
