"""
Command-line entry point for cmshell.

Offline helpers (``normalize-mac``, ``convert-date``, ``build-filter``) run
anywhere; everything else connects to the site named by ``--server`` or by
``site.server`` in the configuration file.
"""
import argparse
import datetime
import getpass
import sys
from typing import Any, List, Optional

from cmshell.config import ConfigManager, CredentialStore, default_config_path
from cmshell.connection import ConnectionContext
from cmshell.core import SiteObjects
from cmshell.errors import CMError, CMValidationError, CMWorkflowError
from cmshell.helpers import (
    build_query,
    build_where_clause,
    datetime_to_dmtf,
    dmtf_to_datetime,
    is_dmtf,
    normalize_mac
)
from cmshell.utils import get_logger, save_json, setup_logger, to_json
from cmshell.utils.logger import ROOT_LOGGER_NAME
from cmshell.version import __app_name__, __version__
from cmshell.workflows import CopyTaskSequenceWorkflow, NewCollectionWorkflow, NewPackageWorkflow

logger = get_logger(__name__)


def _coerce_value(text: str) -> Any:
    """Turn CLI filter values into WQL-friendly Python values."""
    lowered = text.lower()
    if lowered in ('true', 'false'):
        return lowered == 'true'
    try:
        return int(text)
    except ValueError:
        return text


def _parse_filters(filters: Optional[List[List[str]]]) -> list:
    conditions = []
    for item in filters or []:
        if len(item) == 2:
            conditions.append((item[0], item[1]))
        elif len(item) == 3:
            conditions.append((item[0], item[1], _coerce_value(item[2])))
        else:
            raise CMValidationError(f"Invalid filter {' '.join(item)!r}: expected PROPERTY OPERATOR [VALUE].")
    return conditions


def _print(data: Any) -> None:
    print(to_json(data))


def _load_config(args: argparse.Namespace) -> ConfigManager:
    return ConfigManager(args.config or default_config_path())


def _configure_logging(args: argparse.Namespace, config: ConfigManager) -> None:
    console_level = 'DEBUG' if args.verbose else config.get('logging.console_level', 'WARNING')
    setup_logger(
        ROOT_LOGGER_NAME,
        console_level_name=console_level,
        file_level_name=config.get('logging.file_level', 'DEBUG'),
        log_file_path=config.get('logging.file_path')
    )


def _build_context(args: argparse.Namespace, config: ConfigManager) -> ConnectionContext:
    server = args.server or config.get('site.server')
    if not server:
        raise CMValidationError("No server given. Use --server or set 'site.server' in the configuration file.")

    username = args.username or config.get('credentials.username')
    password = CredentialStore().load_password(server, username) if username else None
    if username and password is None:
        logger.warning(f"No stored password for {username} on {server}; connecting as the current user.")
        username = None

    return ConnectionContext.detect(
        server,
        site_code=args.site_code or config.get('site.site_code'),
        module_path=args.module_path or config.get('site.module_path'),
        username=username,
        password=password,
        powershell=config.get('powershell.executable', 'powershell.exe'),
        timeout_sec=config.get('powershell.timeout_sec', 300)
    )


def _run_normalize_mac(args, config) -> int:
    print(normalize_mac(args.mac, separator=args.separator))
    return 0


def _run_convert_date(args, config) -> int:
    value = args.value.strip()
    if is_dmtf(value):
        print(dmtf_to_datetime(value).isoformat())
        return 0
    try:
        parsed = datetime.datetime.fromisoformat(value)
    except ValueError:
        raise CMValidationError(f"'{value}' is neither a DMTF datetime nor an ISO 8601 timestamp.") from None
    print(datetime_to_dmtf(parsed))
    return 0


def _run_build_filter(args, config) -> int:
    conditions = _parse_filters(args.filter)
    if args.wmi_class:
        print(build_query(args.wmi_class, args.property, conditions, args.join))
    else:
        print(build_where_clause(conditions, args.join))
    return 0


def _run_status(args, config) -> int:
    context = _build_context(args, config)
    _print(context.to_dict())
    return 0 if context.provider_available else 1


def _run_query(args, config) -> int:
    if args.wql:
        wql = args.wql
    elif args.wmi_class:
        wql = build_query(args.wmi_class, args.property, _parse_filters(args.filter), args.join)
    else:
        raise CMValidationError("Give either --wql or --class.")

    context = _build_context(args, config)
    rows = context.require_provider().query(wql)
    if args.output:
        if not save_json(rows, args.output):
            print(f"ERROR: Could not write results to {args.output}", file=sys.stderr)
            return 1
        print(f"{len(rows)} row(s) written to {args.output}")
    else:
        _print(rows)
    return 0


def _run_find_device(args, config) -> int:
    context = _build_context(args, config)
    devices = SiteObjects(context).find_device(name=args.name, mac=args.mac)
    _print(devices)
    return 0 if devices else 1


def _run_new_package(args, config) -> int:
    context = _build_context(args, config)
    package = NewPackageWorkflow(context).run(
        name=args.name,
        source_path=args.source_path,
        description=args.description,
        manufacturer=args.manufacturer,
        version=args.pkg_version,
        language=args.language,
        folder_path=args.folder,
        security_scopes=args.scope,
        rollback_on_failure=args.rollback
    )
    _print(package)
    return 0


def _run_new_collection(args, config) -> int:
    context = _build_context(args, config)
    collection = NewCollectionWorkflow(context).run(
        name=args.name,
        collection_type=args.type,
        limiting_collection=args.limiting,
        comment=args.comment,
        refresh_type=args.refresh_type,
        refresh_days=args.refresh_days,
        query_rules=[tuple(rule) for rule in args.query_rule or []],
        include_collections=args.include,
        exclude_collections=args.exclude,
        direct_resource_ids=args.resource_id,
        folder_path=args.folder,
        security_scopes=args.scope,
        rollback_on_failure=args.rollback
    )
    _print(collection)
    return 0


def _run_copy_task_sequence(args, config) -> int:
    context = _build_context(args, config)
    task_sequence = CopyTaskSequenceWorkflow(context).run(
        source=args.source,
        new_name=args.new_name,
        description=args.description,
        folder_path=args.folder,
        security_scopes=args.scope,
        rollback_on_failure=args.rollback
    )
    _print(task_sequence)
    return 0


def _run_set_credential(args, config) -> int:
    server = args.server or config.get('site.server')
    username = args.username or config.get('credentials.username')
    if not server or not username:
        raise CMValidationError("Both a server and a username are required to store a credential.")

    password = getpass.getpass(f"Password for {username} on {server}: ")
    if not password:
        print("No password entered. Nothing was stored.", file=sys.stderr)
        return 1
    if not CredentialStore().save_password(server, username, password):
        print("ERROR: Could not save the password to the keyring.", file=sys.stderr)
        return 1
    print(f"Password stored for {username} on {server}.")
    return 0


def _add_configure_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--folder', help='Console folder below the object type root, e.g. "Apps\\Office".')
    parser.add_argument('--scope', action='append', help='Security scope to attach (repeatable).')
    parser.add_argument('--rollback', action='store_true',
                        help='Delete the new object again if a later step fails.')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=__app_name__,
                                     description="Helpers and workflows for the Configuration Manager admin shell.")
    parser.add_argument('--version', action='version', version=f"{__app_name__} {__version__}")
    parser.add_argument('--config', help='Path to cmshell_config.json.')
    parser.add_argument('--server', help='SMS provider server.')
    parser.add_argument('--site-code', help='Site code (discovered from the provider when omitted).')
    parser.add_argument('--module-path', help='Path to ConfigurationManager.psd1.')
    parser.add_argument('--username', help='Account for the provider connection (password from the keyring).')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug output to the console.')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    mac_parser = subparsers.add_parser('normalize-mac', help='Normalize a MAC address.')
    mac_parser.add_argument('mac')
    mac_parser.add_argument('--separator', default=':', choices=[':', '-', ''])
    mac_parser.set_defaults(func=_run_normalize_mac)

    date_parser = subparsers.add_parser('convert-date', help='Convert between DMTF and ISO 8601 timestamps.')
    date_parser.add_argument('value')
    date_parser.set_defaults(func=_run_convert_date)

    filter_parser = subparsers.add_parser('build-filter', help='Print a WQL WHERE clause or query.')
    filter_parser.add_argument('--class', dest='wmi_class', help='Build a full SELECT for this class.')
    filter_parser.add_argument('--property', action='append', help='Property to select (repeatable).')
    filter_parser.add_argument('--filter', action='append', nargs='+', metavar='TERM',
                               help='PROPERTY OPERATOR [VALUE] (repeatable).')
    filter_parser.add_argument('--join', default='AND', choices=['AND', 'OR'])
    filter_parser.set_defaults(func=_run_build_filter)

    status_parser = subparsers.add_parser('status', help='Show the detected connection context.')
    status_parser.set_defaults(func=_run_status)

    query_parser = subparsers.add_parser('query', help='Run a WQL query against the SMS provider.')
    query_parser.add_argument('--wql', help='Raw WQL statement.')
    query_parser.add_argument('--class', dest='wmi_class', help='WMI class to query.')
    query_parser.add_argument('--property', action='append', help='Property to select (repeatable).')
    query_parser.add_argument('--filter', action='append', nargs='+', metavar='TERM',
                              help='PROPERTY OPERATOR [VALUE] (repeatable).')
    query_parser.add_argument('--join', default='AND', choices=['AND', 'OR'])
    query_parser.add_argument('--output', help='Write the results to this JSON file.')
    query_parser.set_defaults(func=_run_query)

    device_parser = subparsers.add_parser('find-device', help='Find devices by name or MAC address.')
    device_group = device_parser.add_mutually_exclusive_group(required=True)
    device_group.add_argument('--name')
    device_group.add_argument('--mac')
    device_parser.set_defaults(func=_run_find_device)

    package_parser = subparsers.add_parser('new-package', help='Create and configure a package.')
    package_parser.add_argument('--name', required=True)
    package_parser.add_argument('--source-path', help='Content source directory (UNC).')
    package_parser.add_argument('--description')
    package_parser.add_argument('--manufacturer')
    package_parser.add_argument('--pkg-version', help='Package version string.')
    package_parser.add_argument('--language')
    _add_configure_options(package_parser)
    package_parser.set_defaults(func=_run_new_package)

    collection_parser = subparsers.add_parser('new-collection', help='Create and configure a collection.')
    collection_parser.add_argument('--name', required=True)
    collection_parser.add_argument('--type', required=True, choices=['Device', 'User'])
    collection_parser.add_argument('--limiting', required=True, help='Limiting collection name or ID.')
    collection_parser.add_argument('--comment')
    collection_parser.add_argument('--refresh-type', default='Periodic',
                                   choices=['Manual', 'Periodic', 'Continuous', 'Both'])
    collection_parser.add_argument('--refresh-days', type=int, default=7)
    collection_parser.add_argument('--query-rule', action='append', nargs=2, metavar=('NAME', 'WQL'))
    collection_parser.add_argument('--include', action='append', help='Collection to include (repeatable).')
    collection_parser.add_argument('--exclude', action='append', help='Collection to exclude (repeatable).')
    collection_parser.add_argument('--resource-id', action='append', type=int,
                                   help='Resource ID to add directly (repeatable).')
    _add_configure_options(collection_parser)
    collection_parser.set_defaults(func=_run_new_collection)

    ts_parser = subparsers.add_parser('copy-task-sequence', help='Copy a task sequence under a new name.')
    ts_parser.add_argument('--source', required=True, help='Source task sequence name or package ID.')
    ts_parser.add_argument('--new-name', required=True)
    ts_parser.add_argument('--description')
    _add_configure_options(ts_parser)
    ts_parser.set_defaults(func=_run_copy_task_sequence)

    credential_parser = subparsers.add_parser('set-credential',
                                              help='Store the provider password for --username in the keyring.')
    credential_parser.set_defaults(func=_run_set_credential)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function to parse arguments and dispatch commands.

    :return: Process exit code
    :rtype: int
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, 'func'):
        parser.print_help()
        return 1

    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    _configure_logging(args, config)

    try:
        return args.func(args, config)
    except CMWorkflowError as e:
        logger.error(f"Workflow failed: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        if e.created_id and not e.rolled_back:
            print(f"Object {e.created_id} was created and has not been removed.", file=sys.stderr)
        return 1
    except CMError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
