"""
cmshell - helpers and workflows for the Configuration Manager admin shell.

Main components:
- ConnectionContext: target site, namespace and detected capabilities
- WmiQueryEngine: WQL against the SMS provider
- CmdletRunner: Configuration Manager cmdlets in a PowerShell child process
- SiteObjects: lookups, folder moves and security scopes
- NewPackageWorkflow, NewCollectionWorkflow, CopyTaskSequenceWorkflow
- WQL, DMTF datetime and MAC address helpers
"""
from .version import __version__, __app_name__

from .errors import (
    CMError,
    CMValidationError,
    CMConnectionError,
    CMQueryError,
    CMCommandError,
    CMObjectExistsError,
    CMObjectNotFoundError,
    CMWorkflowError
)

from .helpers import (
    translate_operator,
    build_where_clause,
    build_query,
    dmtf_to_datetime,
    datetime_to_dmtf,
    normalize_mac
)

from .config import ConfigManager, CredentialStore

from .connection import ConnectionContext, WmiQueryEngine, CmdletRunner

from .core import SiteObjects

from .workflows import NewPackageWorkflow, NewCollectionWorkflow, CopyTaskSequenceWorkflow

__all__ = [
    '__version__',
    '__app_name__',

    'CMError',
    'CMValidationError',
    'CMConnectionError',
    'CMQueryError',
    'CMCommandError',
    'CMObjectExistsError',
    'CMObjectNotFoundError',
    'CMWorkflowError',

    'translate_operator',
    'build_where_clause',
    'build_query',
    'dmtf_to_datetime',
    'datetime_to_dmtf',
    'normalize_mac',

    'ConfigManager',
    'CredentialStore',

    'ConnectionContext',
    'WmiQueryEngine',
    'CmdletRunner',

    'SiteObjects',

    'NewPackageWorkflow',
    'NewCollectionWorkflow',
    'CopyTaskSequenceWorkflow'
]
