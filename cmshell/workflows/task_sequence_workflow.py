"""
Workflow for copying a task sequence under a new name.
"""
from typing import Any, Dict, Iterable, Optional, Set

from cmshell.errors import CMObjectExistsError, CMWorkflowError
from cmshell.helpers.wql import escape_like, escape_string
from cmshell.utils import get_logger
from .base_workflow import BaseWorkflow

logger = get_logger(__name__)


class CopyTaskSequenceWorkflow(BaseWorkflow):
    """
    Copies a task sequence with ``Copy-CMTaskSequence``, renames the copy,
    then moves it into a console folder and attaches security scopes.

    ``Copy-CMTaskSequence`` names the copy after the source, so the new
    package ID is found by comparing the IDs that match the source name
    before and after the copy.
    """

    object_type = 'TaskSequence'

    def _ids_named_like(self, source_name: str) -> Set[str]:
        engine = self.context.require_provider()
        pattern = escape_string(escape_like(source_name))
        rows = engine.query(
            f"SELECT PackageID FROM SMS_TaskSequencePackage WHERE Name LIKE '{pattern}%'"
        )
        return {row['PackageID'] for row in rows}

    def run(self, source: str, new_name: str, description: Optional[str] = None,
            folder_path: Optional[str] = None, security_scopes: Optional[Iterable[str]] = None,
            rollback_on_failure: bool = False) -> Dict[str, Any]:
        """
        Copy and configure a task sequence.

        :param source: Name or package ID of the task sequence to copy
        :type source: str
        :param new_name: Name for the copy; must not exist yet
        :type new_name: str
        :param description: Description for the copy (source description kept when omitted)
        :type description: Optional[str]
        :param folder_path: Folder below the Task Sequences node
        :type folder_path: Optional[str]
        :param rollback_on_failure: Delete the copy again if a later step fails
        :type rollback_on_failure: bool
        :return: The ``SMS_TaskSequencePackage`` instance of the copy
        :rtype: Dict[str, Any]
        """
        new_name = self._require_name(new_name, "New task sequence name")
        scopes = list(security_scopes or [])
        runner = self.context.require_admin_shell()
        self.context.require_provider()

        source_ts = self.site_objects.resolve_task_sequence(source)
        source_id = source_ts['PackageID']
        if self.site_objects.find_task_sequence(name=new_name):
            raise CMObjectExistsError(f"A task sequence named '{new_name}' already exists.")
        if folder_path:
            self.site_objects.require_folder(self.object_type, folder_path)
        self.site_objects.require_security_scopes(scopes)

        existing_ids = self._step(f"List copies of '{source_ts['Name']}'",
                                  self._ids_named_like, source_ts['Name'])
        copied = self._step(f"Copy task sequence {source_id}", runner.invoke,
                            'Copy-CMTaskSequence', {'TaskSequencePackageId': source_id})

        new_id = copied.get('PackageID') if isinstance(copied, dict) else None
        if new_id == source_id:
            new_id = None
        try:
            if not new_id:
                new_ids = self._step(f"Find copy of {source_id}",
                                     self._ids_named_like, source_ts['Name']) - existing_ids
                if len(new_ids) != 1:
                    raise CMWorkflowError(
                        f"Could not identify the copy of {source_id}: {len(new_ids)} new task sequences found.",
                        step="Find copy")
                new_id = new_ids.pop()
            logger.info(f"Copied task sequence {source_id} to {new_id}")

            self._step(f"Rename task sequence {new_id} to '{new_name}'", runner.invoke,
                       'Set-CMTaskSequence',
                       {'TaskSequencePackageId': new_id, 'NewName': new_name, 'Description': description})

            if folder_path:
                self._step(f"Move task sequence {new_id} to '{folder_path}'",
                           self.site_objects.move_to_folder, self.object_type, new_id, folder_path)
            if scopes:
                self._step(f"Add security scopes to task sequence {new_id}",
                           self.site_objects.add_security_scopes, self.object_type, new_id, scopes)

            task_sequence = self._step(f"Read task sequence {new_id}",
                                       self.site_objects.find_task_sequence, package_id=new_id)
        except CMWorkflowError as e:
            raise self._fail(e, new_id, rollback_on_failure)

        return task_sequence or {'PackageID': new_id, 'Name': new_name}
