"""
Cmdlet runner for executing Configuration Manager cmdlets in a PowerShell
child process.
"""
import base64
import json
import os
import platform
import subprocess
from typing import Any, Dict, Optional

from cmshell.errors import CMCommandError
from cmshell.utils import get_logger

logger = get_logger(__name__)

JSON_DEPTH = 3


class RawArgument(str):
    """A cmdlet argument passed to PowerShell as-is, e.g. ``(New-CMSchedule -RecurCount 1)``."""


def ps_quote(value: str) -> str:
    """Quote a string as a PowerShell single-quoted literal."""
    return "'" + str(value).replace("'", "''") + "'"


def format_argument(value: Any) -> str:
    """
    Render a Python value as a cmdlet argument.

    :param value: str, int, float, list/tuple or :class:`RawArgument`
    :type value: Any
    :return: Argument text
    :rtype: str
    """
    if isinstance(value, RawArgument):
        return str(value)
    if isinstance(value, bool):
        return '$true' if value else '$false'
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return '@(' + ', '.join(format_argument(v) for v in value) + ')'
    return ps_quote(value)


def build_command(cmdlet: str, parameters: Optional[Dict[str, Any]] = None) -> str:
    """
    Build a cmdlet invocation from a parameter dict.

    ``True`` renders as a bare switch, ``False`` and ``None`` are omitted.

    >>> build_command('Get-CMPackage', {'Name': "O'Brien", 'Fast': True})
    "Get-CMPackage -Name 'O''Brien' -Fast"
    """
    parts = [cmdlet]
    for name, value in (parameters or {}).items():
        if value is None or value is False:
            continue
        if value is True:
            parts.append(f"-{name}")
        else:
            parts.append(f"-{name} {format_argument(value)}")
    return ' '.join(parts)


class CmdletRunner:
    """
    Runs Configuration Manager cmdlets through ``powershell.exe``.

    Every script imports the admin module, switches to the ``<SITE>:`` drive,
    runs the command with ``$ErrorActionPreference = 'Stop'`` and writes the
    result as JSON on stdout.
    """

    def __init__(self, module_path: Optional[str], site_code: str,
                 executable: str = 'powershell.exe', timeout_sec: int = 300):
        """
        :param module_path: Path to ``ConfigurationManager.psd1``
        :type module_path: Optional[str]
        :param site_code: Site code; the admin drive is ``<site_code>:``
        :type site_code: str
        :param executable: PowerShell executable name or path
        :type executable: str
        :param timeout_sec: Upper bound for a single script run
        :type timeout_sec: int
        """
        self.module_path = module_path
        self.site_code = site_code
        self.executable = executable
        self.timeout_sec = timeout_sec
        logger.debug(f"CmdletRunner initialized: module={module_path}, site={site_code}, timeout={timeout_sec}s")

    @property
    def site_drive(self) -> str:
        return f"{self.site_code}:"

    def _build_script(self, body: str, use_site_drive: bool = True) -> str:
        lines = [
            "$ErrorActionPreference = 'Stop'",
            "$ProgressPreference = 'SilentlyContinue'",
            "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8",
        ]
        if self.module_path:
            lines.append(f"Import-Module {ps_quote(self.module_path)}")
        if use_site_drive:
            lines.append(f"Set-Location {ps_quote(self.site_drive)}")
        lines.append(body)
        return '\n'.join(lines)

    def run_script(self, body: str, use_site_drive: bool = True, description: str = "script") -> str:
        """
        Run a PowerShell script body and return its stdout.

        :param body: Script text to run after the module import
        :type body: str
        :param use_site_drive: Switch to the site drive before running ``body``
        :type use_site_drive: bool
        :param description: Name used in log and error messages (usually the cmdlet)
        :type description: str
        :return: Stripped stdout
        :rtype: str
        :raises CMCommandError: on non-zero exit, timeout or if PowerShell cannot be started
        """
        script = self._build_script(body, use_site_drive)
        encoded = base64.b64encode(script.encode('utf-16-le')).decode('ascii')
        args = [self.executable, '-NoLogo', '-NoProfile', '-NonInteractive',
                '-ExecutionPolicy', 'Bypass', '-EncodedCommand', encoded]

        creationflags = 0
        if platform.system() == 'Windows':
            creationflags = subprocess.CREATE_NO_WINDOW

        logger.debug(f"Running {description}:\n{body}")
        try:
            process = subprocess.run(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=self.timeout_sec,
                check=False,
                creationflags=creationflags
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"{description} timed out after {self.timeout_sec} seconds.")
            raise CMCommandError(f"{description} timed out after {self.timeout_sec} seconds.",
                                 cmdlet=description) from e
        except FileNotFoundError as e:
            logger.error(f"PowerShell executable not found: '{self.executable}'")
            raise CMCommandError(f"PowerShell executable not found: '{self.executable}'.",
                                 cmdlet=description) from e
        except OSError as e:
            logger.error(f"OS error starting PowerShell for {description}: {e}", exc_info=True)
            raise CMCommandError(f"Could not start PowerShell for {description}: {e}",
                                 cmdlet=description) from e

        stdout = process.stdout.strip() if process.stdout else ""
        stderr = process.stderr.strip() if process.stderr else ""

        if process.returncode != 0:
            logger.error(f"{description} failed. ExitCode={process.returncode}\n{stderr}")
            detail = stderr.splitlines()[0] if stderr else "no error output"
            raise CMCommandError(f"{description} failed with exit code {process.returncode}: {detail}",
                                 cmdlet=description, exit_code=process.returncode, stderr=stderr)

        logger.debug(f"{description} completed. ExitCode=0")
        return stdout

    def invoke(self, cmdlet: str, parameters: Optional[Dict[str, Any]] = None,
               pipe_from: Optional[str] = None) -> Any:
        """
        Invoke a cmdlet on the site drive and return its output as parsed JSON.

        :param cmdlet: Cmdlet name, e.g. ``New-CMPackage``
        :type cmdlet: str
        :param parameters: Cmdlet parameters, see :func:`build_command`
        :type parameters: Optional[Dict[str, Any]]
        :param pipe_from: Pipeline expression whose output is piped into the cmdlet
        :type pipe_from: Optional[str]
        :return: A dict for a single object, a list for several, None for no output
        :rtype: Any
        :raises CMCommandError: if the cmdlet fails or its output is not JSON
        """
        command = build_command(cmdlet, parameters)
        if pipe_from:
            command = f"{pipe_from} | {command}"

        body = (
            f"$result = {command}\n"
            f"if ($null -ne $result) {{ $result | ConvertTo-Json -Depth {JSON_DEPTH} -Compress }}"
        )
        output = self.run_script(body, description=cmdlet)
        if not output:
            return None

        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            logger.error(f"{cmdlet} returned output that is not JSON: {output[:200]}")
            raise CMCommandError(f"{cmdlet} returned unparseable output: {e}", cmdlet=cmdlet) from e

    def test_module_import(self) -> bool:
        """Return True if the admin module exists and imports."""
        if not self.module_path or not os.path.exists(self.module_path):
            logger.debug(f"Admin module not found at: {self.module_path}")
            return False
        try:
            self.run_script("'ok'", use_site_drive=False, description="Import-Module")
            return True
        except CMCommandError as e:
            logger.warning(f"Admin module did not load: {e}")
            return False

    def test_site_drive(self) -> bool:
        """Return True if the ``<SITE>:`` drive is mounted after the module import."""
        body = f"Get-PSDrive -Name {ps_quote(self.site_code)} -PSProvider CMSite | Out-Null"
        try:
            self.run_script(body, use_site_drive=False, description="Get-PSDrive")
            return True
        except CMCommandError as e:
            logger.warning(f"Site drive {self.site_drive} is not available: {e}")
            return False
