"""
Connection context shared by every cmshell command.
"""
import os
import re
from dataclasses import dataclass, field
from typing import Optional

from cmshell.errors import CMConnectionError, CMQueryError, CMValidationError
from cmshell.utils import get_logger
from .cmdlet_runner import CmdletRunner
from .query_engine import WmiQueryEngine

logger = get_logger(__name__)

PROVIDER_ROOT_NAMESPACE = "root\\SMS"
ADMIN_UI_ENV_VAR = "SMS_ADMIN_UI_PATH"
MODULE_FILENAME = "ConfigurationManager.psd1"

_SITE_CODE = re.compile(r'^[A-Z0-9]{3}$')


def validate_site_code(site_code: str) -> str:
    """Upper-case and check a site code. Raises CMValidationError if invalid."""
    code = str(site_code or '').strip().upper()
    if not _SITE_CODE.match(code):
        raise CMValidationError(f"Invalid site code '{site_code}': expected three letters or digits.")
    return code


def site_namespace(site_code: str) -> str:
    """Return the provider namespace for a site, e.g. ``root\\SMS\\site_PS1``."""
    return f"{PROVIDER_ROOT_NAMESPACE}\\site_{validate_site_code(site_code)}"


def default_module_path() -> Optional[str]:
    """
    Locate ``ConfigurationManager.psd1`` from ``SMS_ADMIN_UI_PATH``.

    The console installer points that variable at ``...\\AdminConsole\\bin\\i386``;
    the module sits one level up in ``bin``.
    """
    admin_ui_path = os.environ.get(ADMIN_UI_ENV_VAR)
    if not admin_ui_path:
        return None
    bin_dir = os.path.dirname(admin_ui_path.rstrip('\\/'))
    return os.path.join(bin_dir, MODULE_FILENAME)


def discover_site_code(server: str, username: Optional[str] = None,
                       password: Optional[str] = None) -> str:
    """
    Ask the SMS provider on ``server`` which site it serves.

    :raises CMConnectionError: if the provider cannot be reached or reports no site
    """
    engine = WmiQueryEngine(server, PROVIDER_ROOT_NAMESPACE, username, password)
    try:
        row = engine.query_one(
            "SELECT SiteCode FROM SMS_ProviderLocation WHERE ProviderForLocalSite = TRUE"
        )
    except CMQueryError as e:
        raise CMConnectionError(f"Could not determine the site code on {server}: {e}") from e
    if not row or not row.get('SiteCode'):
        raise CMConnectionError(f"SMS provider on {server} did not report a local site.")
    logger.info(f"Discovered site code {row['SiteCode']} on {server}")
    return validate_site_code(row['SiteCode'])


@dataclass
class ConnectionContext:
    """
    Where a command talks to and what is available there.

    Built fresh per command with :meth:`detect`, or passed in by the caller.
    The three booleans report whether the SMS provider answered, whether the
    admin module imported and whether its ``<SITE>:`` drive is mounted.
    """
    server: str
    site_code: str
    namespace: str = ''
    module_path: Optional[str] = None
    provider_available: bool = False
    module_loaded: bool = False
    drive_available: bool = False
    query_engine: Optional[WmiQueryEngine] = field(default=None, repr=False, compare=False)
    runner: Optional[CmdletRunner] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if not self.server or not str(self.server).strip():
            raise CMValidationError("Server name is required.")
        self.server = str(self.server).strip()
        self.site_code = validate_site_code(self.site_code)
        if not self.namespace:
            self.namespace = site_namespace(self.site_code)

    @classmethod
    def detect(cls, server: str, site_code: Optional[str] = None,
               module_path: Optional[str] = None, username: Optional[str] = None,
               password: Optional[str] = None, powershell: str = 'powershell.exe',
               timeout_sec: int = 300) -> 'ConnectionContext':
        """
        Build a context and probe the provider, the admin module and the site drive.

        Probe failures are logged and reported through the booleans; only an
        unresolvable site code raises.

        :param server: SMS provider server
        :type server: str
        :param site_code: Site code; discovered from the provider when omitted
        :type site_code: Optional[str]
        :param module_path: Path to the admin module; taken from ``SMS_ADMIN_UI_PATH`` when omitted
        :type module_path: Optional[str]
        :return: The populated context
        :rtype: ConnectionContext
        """
        if not server or not str(server).strip():
            raise CMValidationError("Server name is required.")
        server = str(server).strip()

        code = validate_site_code(site_code) if site_code else discover_site_code(server, username, password)
        module_path = module_path or default_module_path()

        engine = WmiQueryEngine(server, site_namespace(code), username, password)
        runner = CmdletRunner(module_path, code, executable=powershell, timeout_sec=timeout_sec)

        provider_available = engine.test_connection()
        module_loaded = runner.test_module_import()
        drive_available = module_loaded and runner.test_site_drive()

        context = cls(
            server=server,
            site_code=code,
            module_path=module_path,
            provider_available=provider_available,
            module_loaded=module_loaded,
            drive_available=drive_available,
            query_engine=engine,
            runner=runner,
        )
        logger.info(f"Connection context: {context}")
        return context

    def require_provider(self) -> WmiQueryEngine:
        """Return the query engine, or raise CMConnectionError if the provider is unreachable."""
        if not self.provider_available or self.query_engine is None:
            raise CMConnectionError(
                f"SMS provider on {self.server} is not reachable (namespace {self.namespace})."
            )
        return self.query_engine

    def require_admin_shell(self) -> CmdletRunner:
        """Return the cmdlet runner, or raise CMConnectionError if the module or drive is missing."""
        if not self.module_loaded or self.runner is None:
            raise CMConnectionError(
                f"Configuration Manager module is not loaded (path: {self.module_path or 'not set'})."
            )
        if not self.drive_available:
            raise CMConnectionError(f"Site drive {self.site_code}: is not available.")
        return self.runner

    def to_dict(self) -> dict:
        return {
            'server': self.server,
            'site_code': self.site_code,
            'namespace': self.namespace,
            'module_path': self.module_path,
            'provider_available': self.provider_available,
            'module_loaded': self.module_loaded,
            'drive_available': self.drive_available,
        }
