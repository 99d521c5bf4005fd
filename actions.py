"""
GitHub Actions runner interface: logging, step outputs, job summary and failure status.
"""
import logging
import os
import uuid
from typing import Dict, List, Optional


class WorkflowCommandFormatter(logging.Formatter):
    """Render records as workflow commands so warnings and errors become annotations."""
    COMMANDS = {
        logging.DEBUG: 'debug',
        logging.WARNING: 'warning',
        logging.ERROR: 'error',
        logging.CRITICAL: 'error',
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        command = self.COMMANDS.get(record.levelno)
        if command is None:
            return message
        # Workflow commands are single line
        message = message.replace('%', '%25').replace('\r', '%0D').replace('\n', '%0A')
        return f'::{command}::{message}'


def configure_logging():
    """
    Configure root logging from LOGLEVEL. Inside GitHub Actions the output uses
    workflow commands, locally a timestamped format.
    """
    loglevel = os.environ.get('LOGLEVEL', 'INFO').upper()
    handler = logging.StreamHandler()
    if os.getenv('GITHUB_ACTIONS') == 'true':
        handler.setFormatter(WorkflowCommandFormatter('%(message)s'))
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    logging.basicConfig(level=loglevel, handlers=[handler], force=True)

    # Suppress HTTP request/response logs
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


class ActionReporter:
    def __init__(self, output_path: Optional[str] = None, summary_path: Optional[str] = None):
        """
        Reports results of a run back to the workflow.

        :param output_path: Step output file, GITHUB_OUTPUT by default.
        :param summary_path: Job summary file, GITHUB_STEP_SUMMARY by default.
        """
        self.output_path = output_path if output_path is not None else os.getenv('GITHUB_OUTPUT')
        self.summary_path = summary_path if summary_path is not None else os.getenv('GITHUB_STEP_SUMMARY')
        self.outputs: Dict[str, str] = {}
        self.summaries: List[str] = []
        self.failed = False
        self.failure_message = ''

    def set_output(self, name: str, value):
        value = str(value)
        self.outputs[name] = value
        if not self.output_path:
            logging.info(f'Output {name}={value}')
            return
        delimiter = f'ghadelimiter_{uuid.uuid4()}'
        with open(self.output_path, 'a', encoding='utf-8') as f:
            f.write(f'{name}<<{delimiter}\n{value}\n{delimiter}\n')

    def write_summary(self, heading: str, markdown: str):
        text = f'## {heading}\n\n{markdown}\n'
        self.summaries.append(text)
        if not self.summary_path:
            logging.info(f'Summary:\n{text}')
            return
        with open(self.summary_path, 'a', encoding='utf-8') as f:
            f.write(text)

    def set_failed(self, message: str):
        self.failed = True
        self.failure_message = message
        logging.error(message)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0
