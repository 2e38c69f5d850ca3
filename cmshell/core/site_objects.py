"""
Lookups and common configuration steps for site objects (packages,
collections, task sequences, folders and security scopes).
"""
import re
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from cmshell.connection import ConnectionContext, ps_quote
from cmshell.errors import CMObjectNotFoundError, CMValidationError
from cmshell.helpers import build_query, normalize_mac
from cmshell.utils import get_logger

logger = get_logger(__name__)


class ObjectType(NamedTuple):
    wmi_class: str
    key_property: str
    container_type: int
    folder_root: str
    getter: str


OBJECT_TYPES: Dict[str, ObjectType] = {
    'Package': ObjectType('SMS_Package', 'PackageID', 2, 'Package',
                          'Get-CMPackage -Id {id} -Fast'),
    'DeviceCollection': ObjectType('SMS_Collection', 'CollectionID', 5000, 'DeviceCollection',
                                   'Get-CMCollection -Id {id}'),
    'UserCollection': ObjectType('SMS_Collection', 'CollectionID', 5001, 'UserCollection',
                                 'Get-CMCollection -Id {id}'),
    'TaskSequence': ObjectType('SMS_TaskSequencePackage', 'PackageID', 20, 'TaskSequence',
                               'Get-CMTaskSequence -TaskSequencePackageId {id} -Fast'),
}

# SMS_Collection.CollectionType
COLLECTION_TYPE_USER = 1
COLLECTION_TYPE_DEVICE = 2

_OBJECT_ID = re.compile(r'^[A-Z0-9]{3}[0-9A-F]{5}$')


def get_object_type(name: str) -> ObjectType:
    try:
        return OBJECT_TYPES[name]
    except KeyError:
        raise CMValidationError(f"Unknown object type '{name}'. Valid types: {', '.join(OBJECT_TYPES)}.") from None


def looks_like_object_id(value: str) -> bool:
    """True for IDs such as ``PS100012`` (site code followed by five hex digits)."""
    return bool(_OBJECT_ID.match(str(value).strip().upper()))


def split_folder_path(folder_path: str) -> List[str]:
    """Split ``Apps\\Office`` (or ``Apps/Office``) into folder names."""
    return [part for part in re.split(r'[\\/]+', str(folder_path).strip()) if part]


def _one_of(**kwargs) -> str:
    given = [name for name, value in kwargs.items() if value]
    if len(given) != 1:
        raise CMValidationError(f"Specify exactly one of: {', '.join(kwargs)}.")
    return given[0]


class SiteObjects:
    """
    Query and configuration helpers bound to one connection context.

    Lookups go through the WMI query engine; folder moves and security scope
    assignment go through the admin cmdlets.
    """

    def __init__(self, context: ConnectionContext):
        self.context = context

    def _query(self, class_name: str, conditions, properties=None) -> List[Dict[str, Any]]:
        engine = self.context.require_provider()
        return engine.query(build_query(class_name, properties, conditions))

    def _first(self, class_name: str, conditions) -> Optional[Dict[str, Any]]:
        rows = self._query(class_name, conditions)
        if len(rows) > 1:
            logger.warning(f"{len(rows)} {class_name} objects matched {conditions}; using the first.")
        return rows[0] if rows else None

    def find_package(self, name: Optional[str] = None, package_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Find a package by name or by package ID."""
        key = _one_of(name=name, package_id=package_id)
        if key == 'name':
            return self._first('SMS_Package', [('Name', 'Equals', name)])
        return self._first('SMS_Package', [('PackageID', 'Equals', package_id.upper())])

    def find_collection(self, name: Optional[str] = None, collection_id: Optional[str] = None,
                        collection_type: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """
        Find a collection by name or ID, optionally restricted to device or
        user collections (:data:`COLLECTION_TYPE_DEVICE`, :data:`COLLECTION_TYPE_USER`).
        """
        key = _one_of(name=name, collection_id=collection_id)
        if key == 'name':
            conditions = [('Name', 'Equals', name)]
        else:
            conditions = [('CollectionID', 'Equals', collection_id.upper())]
        if collection_type is not None:
            conditions.append(('CollectionType', 'Equals', collection_type))
        return self._first('SMS_Collection', conditions)

    def resolve_collection(self, identifier: str, collection_type: Optional[int] = None) -> Dict[str, Any]:
        """
        Resolve a collection given either its ID or its name.

        An ID-shaped identifier is tried as an ID first and then as a name.

        :raises CMObjectNotFoundError: if nothing matches
        """
        if not identifier or not str(identifier).strip():
            raise CMValidationError("Collection name or ID is required.")
        identifier = str(identifier).strip()

        collection = None
        if looks_like_object_id(identifier):
            collection = self.find_collection(collection_id=identifier, collection_type=collection_type)
        if collection is None:
            collection = self.find_collection(name=identifier, collection_type=collection_type)
        if collection is None:
            raise CMObjectNotFoundError(f"Collection '{identifier}' was not found on site {self.context.site_code}.")
        return collection

    def find_task_sequence(self, name: Optional[str] = None, package_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Find a task sequence by name or by package ID."""
        key = _one_of(name=name, package_id=package_id)
        if key == 'name':
            return self._first('SMS_TaskSequencePackage', [('Name', 'Equals', name)])
        return self._first('SMS_TaskSequencePackage', [('PackageID', 'Equals', package_id.upper())])

    def resolve_task_sequence(self, identifier: str) -> Dict[str, Any]:
        """Resolve a task sequence given either its package ID or its name."""
        if not identifier or not str(identifier).strip():
            raise CMValidationError("Task sequence name or ID is required.")
        identifier = str(identifier).strip()

        task_sequence = None
        if looks_like_object_id(identifier):
            task_sequence = self.find_task_sequence(package_id=identifier)
        if task_sequence is None:
            task_sequence = self.find_task_sequence(name=identifier)
        if task_sequence is None:
            raise CMObjectNotFoundError(f"Task sequence '{identifier}' was not found on site {self.context.site_code}.")
        return task_sequence

    def find_security_scope(self, name: str) -> Optional[Dict[str, Any]]:
        return self._first('SMS_SecuredCategory', [('CategoryName', 'Equals', name)])

    def find_device(self, name: Optional[str] = None, mac: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Find devices by NetBIOS name or by MAC address.

        A MAC address in any notation is normalized before the lookup. Several
        devices can share a MAC (re-imaged machines, docking stations), so a
        list is returned.
        """
        key = _one_of(name=name, mac=mac)
        properties = ['ResourceId', 'Name', 'MACAddresses', 'Client', 'Obsolete']
        if key == 'name':
            return self._query('SMS_R_System', [('Name', 'Equals', name)], properties)
        return self._query('SMS_R_System', [('MACAddresses', 'Equals', normalize_mac(mac))], properties)

    def get_collection_members(self, collection_id: str) -> List[Dict[str, Any]]:
        """List the members of a collection."""
        if not collection_id:
            raise CMValidationError("Collection ID is required.")
        return self._query('SMS_FullCollectionMembership',
                           [('CollectionID', 'Equals', collection_id.upper())],
                           ['ResourceID', 'Name', 'Domain', 'IsClient'])

    def find_folder(self, object_type: str, folder_path: str) -> Optional[Dict[str, Any]]:
        """
        Walk ``folder_path`` below the console root node of ``object_type``.

        :return: The innermost ``SMS_ObjectContainerNode``, or None if any level is missing
        """
        otype = get_object_type(object_type)
        parts = split_folder_path(folder_path)
        if not parts:
            raise CMValidationError("Folder path is empty.")

        parent_id = 0
        node = None
        for part in parts:
            node = self._first('SMS_ObjectContainerNode', [
                ('Name', 'Equals', part),
                ('ObjectType', 'Equals', otype.container_type),
                ('ParentContainerNodeID', 'Equals', parent_id),
            ])
            if node is None:
                logger.debug(f"Folder '{part}' not found under node {parent_id} for {object_type}")
                return None
            parent_id = node['ContainerNodeID']
        return node

    def require_folder(self, object_type: str, folder_path: str) -> Dict[str, Any]:
        folder = self.find_folder(object_type, folder_path)
        if folder is None:
            raise CMObjectNotFoundError(f"Folder '{folder_path}' does not exist under {object_type}.")
        return folder

    def require_security_scopes(self, scope_names: Iterable[str]) -> List[Dict[str, Any]]:
        scopes = []
        for scope_name in scope_names:
            scope = self.find_security_scope(scope_name)
            if scope is None:
                raise CMObjectNotFoundError(f"Security scope '{scope_name}' was not found.")
            scopes.append(scope)
        return scopes

    def move_to_folder(self, object_type: str, object_id: str, folder_path: str) -> None:
        """Move an object into a console folder with ``Move-CMObject``."""
        otype = get_object_type(object_type)
        runner = self.context.require_admin_shell()
        parts = split_folder_path(folder_path)
        if not parts:
            raise CMValidationError("Folder path is empty.")

        target = f"{runner.site_drive}\\{otype.folder_root}\\" + '\\'.join(parts)
        logger.info(f"Moving {object_type} {object_id} to {target}")
        runner.invoke('Move-CMObject', {'FolderPath': target, 'ObjectId': object_id})

    def add_security_scopes(self, object_type: str, object_id: str, scope_names: Iterable[str]) -> None:
        """Attach security scopes to an object with ``Add-CMObjectSecurityScope``."""
        otype = get_object_type(object_type)
        runner = self.context.require_admin_shell()
        getter = otype.getter.format(id=ps_quote(object_id))
        for scope_name in scope_names:
            logger.info(f"Adding security scope '{scope_name}' to {object_type} {object_id}")
            runner.invoke('Add-CMObjectSecurityScope', {'Name': scope_name}, pipe_from=getter)

    def delete_object(self, object_type: str, object_id: str) -> None:
        """Delete an object through the provider."""
        otype = get_object_type(object_type)
        engine = self.context.require_provider()
        engine.delete_instance(otype.wmi_class, otype.key_property, object_id)
