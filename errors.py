"""Error types raised by the sync and cleanup actions."""

UNKNOWN_ERROR = 'Unknown error'


class SyncError(Exception):
    """Base class for failures the entry points report to the workflow."""


class ConfigurationError(SyncError):
    """Missing or malformed action input. Raised before any external call."""


class CapacityError(SyncError):
    """More users need custom roles than the Static Web App allows."""


class CategoryNotFoundError(SyncError):
    """The configured Discussion category does not exist in the repository."""


def append_diagnostic(message: str, diagnostic: str) -> str:
    """
    Append diagnostic output to an error message unless it is already part of it.

    :param message: Primary error message.
    :param diagnostic: Extra detail such as stderr of a failed command.
    :return: Combined message.
    """
    diagnostic = (diagnostic or '').strip()
    if not diagnostic or diagnostic in message:
        return message
    return f'{message}\n{diagnostic}'


class ExternalCallError(SyncError):
    """An API call or command against an external system failed."""


class GitHubAPIError(ExternalCallError):
    def __init__(self, message: str, status_code: int = None, body: str = ''):
        super().__init__(append_diagnostic(message, body))
        self.status_code = status_code
        self.body = body


class AzureCliError(ExternalCallError):
    def __init__(self, message: str, stderr: str = '', returncode: int = None):
        super().__init__(append_diagnostic(message, stderr))
        self.stderr = stderr
        self.returncode = returncode


def to_error_message(error) -> str:
    """
    Turn whatever was caught into a non-empty message.

    :param error: Exception instance or any other object.
    :return: The coerced text, or ``Unknown error`` when it is blank.
    """
    if error is None:
        return UNKNOWN_ERROR
    text = str(error).strip()
    return text or UNKNOWN_ERROR
