"""
Connections to the site: the WMI query engine, the cmdlet runner and the
connection context that holds both.
"""
from .cmdlet_runner import CmdletRunner, RawArgument, build_command, ps_quote
from .query_engine import WmiQueryEngine
from .context import ConnectionContext, site_namespace, validate_site_code, default_module_path

__all__ = [
    'CmdletRunner',
    'RawArgument',
    'build_command',
    'ps_quote',
    'WmiQueryEngine',
    'ConnectionContext',
    'site_namespace',
    'validate_site_code',
    'default_module_path'
]
