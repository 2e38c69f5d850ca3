"""Shared pytest fixtures for cmshell tests."""
from unittest.mock import MagicMock

import pytest

from cmshell.connection import CmdletRunner, ConnectionContext, WmiQueryEngine
from cmshell.core import SiteObjects


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Keep a developer's own configuration and admin console out of the tests."""
    monkeypatch.delenv('CMSHELL_CONFIG', raising=False)
    monkeypatch.delenv('APPDATA', raising=False)
    monkeypatch.delenv('SMS_ADMIN_UI_PATH', raising=False)


@pytest.fixture
def engine():
    return MagicMock(spec=WmiQueryEngine)


@pytest.fixture
def runner():
    mock = MagicMock(spec=CmdletRunner)
    mock.site_drive = 'PS1:'
    return mock


@pytest.fixture
def context(engine, runner):
    """A context for site PS1 with every capability available."""
    return ConnectionContext(
        server='cm01.corp.local',
        site_code='PS1',
        module_path='C:\\AdminConsole\\bin\\ConfigurationManager.psd1',
        provider_available=True,
        module_loaded=True,
        drive_available=True,
        query_engine=engine,
        runner=runner,
    )


@pytest.fixture
def site_objects():
    return MagicMock(spec=SiteObjects)
