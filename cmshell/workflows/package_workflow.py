"""
Workflow for creating a legacy software package.
"""
import os
from typing import Any, Dict, Iterable, Optional

from cmshell.errors import CMObjectExistsError, CMValidationError, CMWorkflowError
from cmshell.utils import get_logger
from .base_workflow import BaseWorkflow

logger = get_logger(__name__)


class NewPackageWorkflow(BaseWorkflow):
    """
    Creates a package with ``New-CMPackage``, then moves it into a console
    folder and attaches security scopes.
    """

    object_type = 'Package'

    def run(self, name: str, source_path: Optional[str] = None, description: Optional[str] = None,
            manufacturer: Optional[str] = None, version: Optional[str] = None,
            language: Optional[str] = None, folder_path: Optional[str] = None,
            security_scopes: Optional[Iterable[str]] = None,
            rollback_on_failure: bool = False) -> Dict[str, Any]:
        """
        Create and configure a package.

        :param name: Package name; must not exist yet
        :type name: str
        :param source_path: Content source directory (UNC); must exist when given
        :type source_path: Optional[str]
        :param folder_path: Folder below the Packages node, e.g. ``Apps\\Office``
        :type folder_path: Optional[str]
        :param security_scopes: Security scope names to attach
        :type security_scopes: Optional[Iterable[str]]
        :param rollback_on_failure: Delete the package again if a later step fails
        :type rollback_on_failure: bool
        :return: The ``SMS_Package`` instance
        :rtype: Dict[str, Any]
        """
        name = self._require_name(name, "Package name")
        scopes = list(security_scopes or [])
        runner = self.context.require_admin_shell()
        self.context.require_provider()

        if source_path and not os.path.isdir(source_path):
            raise CMValidationError(f"Source path '{source_path}' does not exist or is not a directory.")
        if self.site_objects.find_package(name=name):
            raise CMObjectExistsError(f"A package named '{name}' already exists.")
        if folder_path:
            self.site_objects.require_folder(self.object_type, folder_path)
        self.site_objects.require_security_scopes(scopes)

        parameters = {
            'Name': name,
            'Description': description,
            'Manufacturer': manufacturer,
            'Version': version,
            'Language': language,
            'Path': source_path,
        }
        created = self._step(f"Create package '{name}'", runner.invoke, 'New-CMPackage', parameters)

        package_id = created.get('PackageID') if isinstance(created, dict) else None
        try:
            if not package_id:
                package = self._step(f"Look up package '{name}'", self.site_objects.find_package, name=name)
                if not package:
                    raise CMWorkflowError(f"Package '{name}' was not found after creation.",
                                          step="Look up package")
                package_id = package['PackageID']
            logger.info(f"Created package '{name}' with ID {package_id}")

            if folder_path:
                self._step(f"Move package {package_id} to '{folder_path}'",
                           self.site_objects.move_to_folder, self.object_type, package_id, folder_path)
            if scopes:
                self._step(f"Add security scopes to package {package_id}",
                           self.site_objects.add_security_scopes, self.object_type, package_id, scopes)

            package = self._step(f"Read package {package_id}",
                                 self.site_objects.find_package, package_id=package_id)
        except CMWorkflowError as e:
            raise self._fail(e, package_id, rollback_on_failure)

        return package or {'PackageID': package_id, 'Name': name}
