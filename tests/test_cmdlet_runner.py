"""
Tests for building and running Configuration Manager cmdlets.
"""
import base64
import subprocess
from unittest.mock import patch

import pytest

from cmshell.connection.cmdlet_runner import (
    CmdletRunner,
    RawArgument,
    build_command,
    format_argument,
    ps_quote
)
from cmshell.errors import CMCommandError


def _completed(stdout='', stderr='', returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def _decoded_script(mock_run) -> str:
    args = mock_run.call_args[0][0]
    encoded = args[args.index('-EncodedCommand') + 1]
    return base64.b64decode(encoded).decode('utf-16-le')


class TestCommandBuilding:
    """Tests for argument rendering"""

    def test_ps_quote_doubles_single_quotes(self):
        assert ps_quote("O'Brien") == "'O''Brien'"

    def test_format_argument(self):
        assert format_argument(42) == '42'
        assert format_argument(True) == '$true'
        assert format_argument(['A', 'B']) == "@('A', 'B')"
        assert format_argument(RawArgument('(New-CMSchedule -RecurCount 1)')) == '(New-CMSchedule -RecurCount 1)'

    def test_build_command_switches_and_omissions(self):
        command = build_command('New-CMPackage', {
            'Name': 'Office 365',
            'Description': None,
            'Force': True,
            'Whatif': False,
        })
        assert command == "New-CMPackage -Name 'Office 365' -Force"

    def test_build_command_without_parameters(self):
        assert build_command('Get-CMSite') == 'Get-CMSite'


class TestCmdletRunner:
    """Tests for the PowerShell child process"""

    @pytest.fixture
    def runner(self):
        return CmdletRunner('C:\\AdminConsole\\bin\\ConfigurationManager.psd1', 'PS1', timeout_sec=30)

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_invoke_parses_json(self, mock_run, runner):
        mock_run.return_value = _completed(stdout='{"PackageID": "PS100012", "Name": "App"}')

        result = runner.invoke('New-CMPackage', {'Name': 'App'})

        assert result == {'PackageID': 'PS100012', 'Name': 'App'}
        script = _decoded_script(mock_run)
        assert "Import-Module 'C:\\AdminConsole\\bin\\ConfigurationManager.psd1'" in script
        assert "Set-Location 'PS1:'" in script
        assert "$result = New-CMPackage -Name 'App'" in script
        assert 'ConvertTo-Json' in script
        assert mock_run.call_args.kwargs['timeout'] == 30

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_invoke_with_pipeline(self, mock_run, runner):
        mock_run.return_value = _completed()

        result = runner.invoke('Add-CMObjectSecurityScope', {'Name': 'Servers'},
                               pipe_from="Get-CMPackage -Id 'PS100012' -Fast")

        assert result is None
        assert ("$result = Get-CMPackage -Id 'PS100012' -Fast | Add-CMObjectSecurityScope -Name 'Servers'"
                in _decoded_script(mock_run))

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_nonzero_exit_raises_with_stderr(self, mock_run, runner):
        mock_run.return_value = _completed(stderr='New-CMPackage : Access denied\nAt line:4', returncode=1)

        with pytest.raises(CMCommandError) as exc_info:
            runner.invoke('New-CMPackage', {'Name': 'App'})

        assert exc_info.value.cmdlet == 'New-CMPackage'
        assert exc_info.value.exit_code == 1
        assert 'Access denied' in str(exc_info.value)

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_timeout(self, mock_run, runner):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd='powershell.exe', timeout=30)

        with pytest.raises(CMCommandError, match="timed out"):
            runner.invoke('Get-CMPackage')

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_missing_powershell(self, mock_run, runner):
        mock_run.side_effect = FileNotFoundError()

        with pytest.raises(CMCommandError, match="not found"):
            runner.invoke('Get-CMPackage')

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_unparseable_output(self, mock_run, runner):
        mock_run.return_value = _completed(stdout='WARNING: something')

        with pytest.raises(CMCommandError, match="unparseable"):
            runner.invoke('Get-CMPackage')

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_module_import_probe_skips_missing_module(self, mock_run, runner):
        assert runner.test_module_import() is False
        mock_run.assert_not_called()

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_module_import_probe(self, mock_run, tmp_path):
        module = tmp_path / 'ConfigurationManager.psd1'
        module.write_text('@{}')
        mock_run.return_value = _completed(stdout='ok')

        assert CmdletRunner(str(module), 'PS1').test_module_import() is True
        assert 'Set-Location' not in _decoded_script(mock_run)

    @patch('cmshell.connection.cmdlet_runner.subprocess.run')
    def test_site_drive_probe(self, mock_run, runner):
        mock_run.return_value = _completed(returncode=1, stderr='Cannot find drive')
        assert runner.test_site_drive() is False

        mock_run.return_value = _completed()
        assert runner.test_site_drive() is True
        assert "Get-PSDrive -Name 'PS1' -PSProvider CMSite" in _decoded_script(mock_run)
