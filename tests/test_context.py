"""
Tests for the connection context and capability detection.
"""
import os
import sys
from unittest.mock import patch

import pytest

from cmshell.connection import CmdletRunner, ConnectionContext, WmiQueryEngine
from cmshell.connection.context import (
    default_module_path,
    discover_site_code,
    site_namespace,
    validate_site_code
)
from cmshell.errors import CMConnectionError, CMQueryError, CMValidationError


class TestSiteCode:

    def test_upper_cases(self):
        assert validate_site_code(' ps1 ') == 'PS1'

    @pytest.mark.parametrize("code", ['', 'PS', 'PS12', 'P$1', None])
    def test_rejects_invalid(self, code):
        with pytest.raises(CMValidationError):
            validate_site_code(code)

    def test_namespace(self):
        assert site_namespace('ps1') == 'root\\SMS\\site_PS1'


def test_default_module_path_from_admin_ui_path(monkeypatch, tmp_path):
    monkeypatch.setenv('SMS_ADMIN_UI_PATH', str(tmp_path / 'bin' / 'i386'))
    assert default_module_path() == os.path.join(str(tmp_path / 'bin'), 'ConfigurationManager.psd1')


def test_default_module_path_without_console():
    assert default_module_path() is None


def test_context_computes_namespace():
    context = ConnectionContext(server=' cm01 ', site_code='ps1')
    assert context.server == 'cm01'
    assert context.site_code == 'PS1'
    assert context.namespace == 'root\\SMS\\site_PS1'
    assert not context.provider_available


def test_context_requires_server():
    with pytest.raises(CMValidationError):
        ConnectionContext(server='', site_code='PS1')


class TestDetect:

    @patch.object(CmdletRunner, 'test_site_drive', return_value=True)
    @patch.object(CmdletRunner, 'test_module_import', return_value=True)
    @patch.object(WmiQueryEngine, 'test_connection', return_value=True)
    def test_all_available(self, mock_conn, mock_import, mock_drive):
        context = ConnectionContext.detect('cm01', site_code='ps1', module_path='C:\\cm.psd1')

        assert context.to_dict() == {
            'server': 'cm01',
            'site_code': 'PS1',
            'namespace': 'root\\SMS\\site_PS1',
            'module_path': 'C:\\cm.psd1',
            'provider_available': True,
            'module_loaded': True,
            'drive_available': True,
        }
        assert context.query_engine.namespace == 'root\\SMS\\site_PS1'
        assert context.runner.site_drive == 'PS1:'
        assert context.require_provider() is context.query_engine
        assert context.require_admin_shell() is context.runner

    @patch.object(CmdletRunner, 'test_site_drive')
    @patch.object(CmdletRunner, 'test_module_import', return_value=False)
    @patch.object(WmiQueryEngine, 'test_connection', return_value=True)
    def test_module_missing_skips_drive_probe(self, mock_conn, mock_import, mock_drive):
        context = ConnectionContext.detect('cm01', site_code='PS1')

        assert context.module_loaded is False
        assert context.drive_available is False
        mock_drive.assert_not_called()
        with pytest.raises(CMConnectionError, match="module is not loaded"):
            context.require_admin_shell()

    @patch.object(CmdletRunner, 'test_site_drive', return_value=False)
    @patch.object(CmdletRunner, 'test_module_import', return_value=True)
    @patch.object(WmiQueryEngine, 'test_connection', return_value=False)
    def test_provider_and_drive_unavailable(self, mock_conn, mock_import, mock_drive):
        context = ConnectionContext.detect('cm01', site_code='PS1')

        with pytest.raises(CMConnectionError, match="not reachable"):
            context.require_provider()
        with pytest.raises(CMConnectionError, match="Site drive PS1:"):
            context.require_admin_shell()

    @patch.dict(sys.modules, {'pythoncom': None})
    @patch.object(CmdletRunner, 'test_site_drive')
    @patch.object(CmdletRunner, 'test_module_import', return_value=False)
    def test_provider_without_pywin32(self, mock_import, mock_drive):
        context = ConnectionContext.detect('cm01', site_code='PS1')

        assert context.provider_available is False
        with pytest.raises(CMConnectionError, match="not reachable"):
            context.require_provider()

    @patch.object(CmdletRunner, 'test_site_drive', return_value=False)
    @patch.object(CmdletRunner, 'test_module_import', return_value=False)
    @patch.object(WmiQueryEngine, 'test_connection', return_value=True)
    @patch('cmshell.connection.context.discover_site_code', return_value='CAS')
    def test_discovers_site_code(self, mock_discover, *probes):
        context = ConnectionContext.detect('cm01')

        assert context.site_code == 'CAS'
        mock_discover.assert_called_once_with('cm01', None, None)


class TestDiscoverSiteCode:

    @patch.object(WmiQueryEngine, 'query_one', return_value={'SiteCode': 'ps1'})
    def test_reads_provider_location(self, mock_query):
        assert discover_site_code('cm01') == 'PS1'
        assert 'SMS_ProviderLocation' in mock_query.call_args[0][0]

    @patch.object(WmiQueryEngine, 'query_one', return_value=None)
    def test_no_local_site(self, mock_query):
        with pytest.raises(CMConnectionError, match="did not report"):
            discover_site_code('cm01')

    @patch.object(WmiQueryEngine, 'query_one', side_effect=CMQueryError("access denied"))
    def test_provider_error(self, mock_query):
        with pytest.raises(CMConnectionError, match="access denied"):
            discover_site_code('cm01')
