"""
Workflow for creating a device or user collection with its membership rules.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from cmshell.connection import RawArgument
from cmshell.core import COLLECTION_TYPE_DEVICE, COLLECTION_TYPE_USER
from cmshell.errors import CMObjectExistsError, CMValidationError, CMWorkflowError
from cmshell.utils import get_logger
from .base_workflow import BaseWorkflow

logger = get_logger(__name__)

COLLECTION_KINDS = {
    'device': ('Device', COLLECTION_TYPE_DEVICE),
    'user': ('User', COLLECTION_TYPE_USER),
}
REFRESH_TYPES = ('Manual', 'Periodic', 'Continuous', 'Both')

QueryRule = Union[Dict[str, str], Tuple[str, str]]


def _normalize_query_rules(query_rules: Optional[Iterable[QueryRule]]) -> List[Tuple[str, str]]:
    rules = []
    for rule in query_rules or []:
        if isinstance(rule, dict):
            rule_name, expression = rule.get('name'), rule.get('query')
        elif isinstance(rule, (list, tuple)) and len(rule) == 2:
            rule_name, expression = rule
        else:
            raise CMValidationError(f"Invalid query rule {rule!r}: expected (name, query).")
        if not rule_name or not str(rule_name).strip():
            raise CMValidationError("Query rule name is required.")
        if not expression or not str(expression).strip().lower().startswith('select'):
            raise CMValidationError(f"Query rule '{rule_name}' must be a WQL SELECT statement.")
        rules.append((str(rule_name).strip(), str(expression).strip()))
    return rules


class NewCollectionWorkflow(BaseWorkflow):
    """
    Creates a device or user collection limited to an existing collection,
    adds query/include/exclude/direct membership rules, then moves it into a
    console folder and attaches security scopes.
    """

    object_type = 'DeviceCollection'

    def run(self, name: str, collection_type: str, limiting_collection: str,
            comment: Optional[str] = None, refresh_type: str = 'Periodic', refresh_days: int = 7,
            query_rules: Optional[Iterable[QueryRule]] = None,
            include_collections: Optional[Sequence[str]] = None,
            exclude_collections: Optional[Sequence[str]] = None,
            direct_resource_ids: Optional[Sequence[int]] = None,
            folder_path: Optional[str] = None,
            security_scopes: Optional[Iterable[str]] = None,
            rollback_on_failure: bool = False) -> Dict[str, Any]:
        """
        Create and configure a collection.

        :param name: Collection name; must not exist yet
        :type name: str
        :param collection_type: ``Device`` or ``User``
        :type collection_type: str
        :param limiting_collection: Name or ID of the limiting collection (same type)
        :type limiting_collection: str
        :param refresh_type: ``Manual``, ``Periodic``, ``Continuous`` or ``Both``
        :type refresh_type: str
        :param refresh_days: Full evaluation interval in days for ``Periodic``/``Both``
        :type refresh_days: int
        :param query_rules: ``(rule name, WQL)`` pairs or ``{'name', 'query'}`` dicts
        :param include_collections: Names or IDs of collections to include
        :param exclude_collections: Names or IDs of collections to exclude
        :param direct_resource_ids: Resource IDs to add as direct members
        :param rollback_on_failure: Delete the collection again if a later step fails
        :type rollback_on_failure: bool
        :return: The ``SMS_Collection`` instance
        :rtype: Dict[str, Any]
        """
        name = self._require_name(name, "Collection name")
        kind = COLLECTION_KINDS.get(str(collection_type or '').strip().lower())
        if kind is None:
            raise CMValidationError(f"Invalid collection type '{collection_type}'. Use Device or User.")
        noun, wmi_type = kind
        self.object_type = f"{noun}Collection"

        refresh = next((r for r in REFRESH_TYPES if r.lower() == str(refresh_type).strip().lower()), None)
        if refresh is None:
            raise CMValidationError(f"Invalid refresh type '{refresh_type}'. Valid types: {', '.join(REFRESH_TYPES)}.")
        if refresh in ('Periodic', 'Both') and (not isinstance(refresh_days, int) or not 1 <= refresh_days <= 31):
            raise CMValidationError("Refresh interval must be between 1 and 31 days.")

        rules = _normalize_query_rules(query_rules)
        resource_ids = []
        for resource_id in direct_resource_ids or []:
            try:
                resource_ids.append(int(resource_id))
            except (TypeError, ValueError):
                raise CMValidationError(f"Invalid resource ID '{resource_id}'.") from None
        scopes = list(security_scopes or [])

        runner = self.context.require_admin_shell()
        self.context.require_provider()

        if self.site_objects.find_collection(name=name):
            raise CMObjectExistsError(f"A collection named '{name}' already exists.")
        limiting = self.site_objects.resolve_collection(limiting_collection, wmi_type)
        includes = [self.site_objects.resolve_collection(c, wmi_type)['CollectionID'] for c in include_collections or []]
        excludes = [self.site_objects.resolve_collection(c, wmi_type)['CollectionID'] for c in exclude_collections or []]
        if folder_path:
            self.site_objects.require_folder(self.object_type, folder_path)
        self.site_objects.require_security_scopes(scopes)

        parameters: Dict[str, Any] = {
            'Name': name,
            'LimitingCollectionId': limiting['CollectionID'],
            'Comment': comment,
            'RefreshType': refresh,
        }
        if refresh in ('Periodic', 'Both'):
            parameters['RefreshSchedule'] = RawArgument(
                f"(New-CMSchedule -RecurInterval Days -RecurCount {refresh_days})"
            )

        created = self._step(f"Create {noun.lower()} collection '{name}'",
                             runner.invoke, f"New-CM{noun}Collection", parameters)

        collection_id = created.get('CollectionID') if isinstance(created, dict) else None
        try:
            if not collection_id:
                collection = self._step(f"Look up collection '{name}'",
                                        self.site_objects.find_collection, name=name)
                if not collection:
                    raise CMWorkflowError(f"Collection '{name}' was not found after creation.",
                                          step="Look up collection")
                collection_id = collection['CollectionID']
            logger.info(f"Created {noun.lower()} collection '{name}' with ID {collection_id}")

            for rule_name, expression in rules:
                self._step(f"Add query rule '{rule_name}'", runner.invoke,
                           f"Add-CM{noun}CollectionQueryMembershipRule",
                           {'CollectionId': collection_id, 'RuleName': rule_name, 'QueryExpression': expression})
            for include_id in includes:
                self._step(f"Add include rule for {include_id}", runner.invoke,
                           f"Add-CM{noun}CollectionIncludeMembershipRule",
                           {'CollectionId': collection_id, 'IncludeCollectionId': include_id})
            for exclude_id in excludes:
                self._step(f"Add exclude rule for {exclude_id}", runner.invoke,
                           f"Add-CM{noun}CollectionExcludeMembershipRule",
                           {'CollectionId': collection_id, 'ExcludeCollectionId': exclude_id})
            for resource_id in resource_ids:
                self._step(f"Add direct rule for resource {resource_id}", runner.invoke,
                           f"Add-CM{noun}CollectionDirectMembershipRule",
                           {'CollectionId': collection_id, 'ResourceId': resource_id})

            if folder_path:
                self._step(f"Move collection {collection_id} to '{folder_path}'",
                           self.site_objects.move_to_folder, self.object_type, collection_id, folder_path)
            if scopes:
                self._step(f"Add security scopes to collection {collection_id}",
                           self.site_objects.add_security_scopes, self.object_type, collection_id, scopes)

            collection = self._step(f"Read collection {collection_id}",
                                    self.site_objects.find_collection, collection_id=collection_id)
        except CMWorkflowError as e:
            raise self._fail(e, collection_id, rollback_on_failure)

        return collection or {'CollectionID': collection_id, 'Name': name}
