import os

import pytest


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Start every test without action inputs or workflow variables from the outer environment."""
    for name in list(os.environ):
        if name.startswith('INPUT_') or name in ('GITHUB_OUTPUT', 'GITHUB_STEP_SUMMARY', 'GITHUB_REPOSITORY'):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr('config.load_dotenv', lambda *args, **kwargs: False)


@pytest.fixture
def set_inputs(monkeypatch):
    """Set action inputs by keyword, e.g. set_inputs(swa_name='app')."""
    def setter(**inputs):
        for name, value in inputs.items():
            monkeypatch.setenv(f'INPUT_{name.upper()}', value)
    return setter
