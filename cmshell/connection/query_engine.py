"""
WMI query engine for the SMS provider, using the WbemScripting COM API
through pywin32.
"""
from typing import Any, Dict, List, Optional

from cmshell.errors import CMQueryError
from cmshell.utils import get_logger

logger = get_logger(__name__)

WBEM_FLAG_RETURN_IMMEDIATELY = 0x10
WBEM_FLAG_FORWARD_ONLY = 0x20


def _com_error_message(error: Exception) -> str:
    """Extract the provider's description from a ``pywintypes.com_error``."""
    args = getattr(error, 'args', ())
    if len(args) >= 3 and isinstance(args[2], tuple) and len(args[2]) >= 3 and args[2][2]:
        return str(args[2][2]).strip()
    if len(args) >= 2 and args[1]:
        return str(args[1])
    return str(error)


def _to_python(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_to_python(v) for v in value]
    return value


def _instance_to_dict(instance: Any) -> Dict[str, Any]:
    return {prop.Name: _to_python(prop.Value) for prop in instance.Properties_}


class WmiQueryEngine:
    """
    Runs WQL against ``\\\\<server>\\<namespace>``.

    The connection is opened on first use and reused for the lifetime of the
    engine. ``username``/``password`` are only needed for remote servers when
    the caller's own identity should not be used.
    """

    def __init__(self, server: str, namespace: str,
                 username: Optional[str] = None, password: Optional[str] = None):
        self.server = server
        self.namespace = namespace
        self.username = username
        self.password = password
        self._services = None

    def __repr__(self) -> str:
        return f"WmiQueryEngine(server={self.server!r}, namespace={self.namespace!r})"

    def _connect(self):
        if self._services is not None:
            return self._services

        try:
            import pythoncom
            import pywintypes
            import win32com.client
        except ImportError as e:
            logger.error(f"pywin32 is not available: {e}")
            raise CMQueryError(f"Could not connect to SMS provider {self.server}: "
                               f"pywin32 is not available ({e}).") from e

        logger.debug(f"Connecting to \\\\{self.server}\\{self.namespace}")
        try:
            pythoncom.CoInitialize()
            locator = win32com.client.Dispatch("WbemScripting.SWbemLocator")
            self._services = locator.ConnectServer(self.server, self.namespace,
                                                   self.username, self.password)
        except pywintypes.com_error as e:
            message = _com_error_message(e)
            logger.error(f"Could not connect to \\\\{self.server}\\{self.namespace}: {message}")
            raise CMQueryError(f"Could not connect to SMS provider {self.server} "
                               f"namespace {self.namespace}: {message}") from e
        return self._services

    def test_connection(self) -> bool:
        """Return True if the provider namespace accepts a connection."""
        try:
            self._connect()
            return True
        except CMQueryError as e:
            logger.warning(f"SMS provider connection check failed: {e}")
            return False

    def query(self, wql: str) -> List[Dict[str, Any]]:
        """
        Run a WQL query.

        :param wql: The query text
        :type wql: str
        :return: One property dict per returned instance
        :rtype: List[Dict[str, Any]]
        :raises CMQueryError: if the connection or the query fails
        """
        services = self._connect()
        import pywintypes

        logger.debug(f"WQL on {self.server}: {wql}")
        try:
            results = services.ExecQuery(wql, "WQL",
                                         WBEM_FLAG_RETURN_IMMEDIATELY | WBEM_FLAG_FORWARD_ONLY)
            rows = [_instance_to_dict(instance) for instance in results]
        except pywintypes.com_error as e:
            message = _com_error_message(e)
            logger.error(f"WQL query failed on {self.server}: {message}. Query: {wql}")
            raise CMQueryError(f"Query failed on {self.server}\\{self.namespace}: {message}",
                               query=wql) from e

        logger.debug(f"WQL returned {len(rows)} row(s)")
        return rows

    def query_one(self, wql: str) -> Optional[Dict[str, Any]]:
        """Run a WQL query and return the first instance, or None."""
        rows = self.query(wql)
        return rows[0] if rows else None

    def delete_instance(self, class_name: str, key_property: str, key_value: Any) -> None:
        """
        Delete one instance by its key, e.g. ``SMS_Package.PackageID="ABC00012"``.

        :raises CMQueryError: if the provider refuses the delete
        """
        if isinstance(key_value, str):
            escaped = key_value.replace('\\', '\\\\').replace('"', '\\"')
            path = f'{class_name}.{key_property}="{escaped}"'
        else:
            path = f'{class_name}.{key_property}={key_value}'

        services = self._connect()
        import pywintypes

        logger.info(f"Deleting {path} on {self.server}")
        try:
            services.Delete(path)
        except pywintypes.com_error as e:
            message = _com_error_message(e)
            logger.error(f"Delete of {path} failed: {message}")
            raise CMQueryError(f"Could not delete {path}: {message}") from e
