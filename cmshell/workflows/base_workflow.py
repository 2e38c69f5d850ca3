"""
Base class for create-and-configure workflows.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from cmshell.connection import ConnectionContext
from cmshell.core import SiteObjects
from cmshell.errors import CMError, CMValidationError, CMWorkflowError
from cmshell.utils import get_logger

logger = get_logger(__name__)


class BaseWorkflow(ABC):
    """
    Abstract base class for workflows that create one site object and then
    configure it with further dependent calls.

    Subclasses validate every precondition before the first call that changes
    the site, run each external call through :meth:`_step`, and on a failure
    after the object exists call :meth:`_fail` so the caller's rollback choice
    is honoured.
    """

    object_type: str = ''

    def __init__(self, context: ConnectionContext, site_objects: Optional[SiteObjects] = None):
        """
        :param context: Connection context for the target site
        :type context: ConnectionContext
        :param site_objects: Lookup helper; built from ``context`` when omitted
        :type site_objects: Optional[SiteObjects]
        :raises ValueError: If the context is None
        """
        if not context:
            raise ValueError("ConnectionContext instance is required for a workflow.")
        self.context = context
        self.site_objects = site_objects or SiteObjects(context)
        logger.debug(f"{self.__class__.__name__} initialized for site {context.site_code}.")

    @abstractmethod
    def run(self, **kwargs) -> Dict[str, Any]:
        """
        Run the workflow and return the created object as the provider reports it.

        :raises CMValidationError: bad arguments
        :raises CMConnectionError: the provider or the admin shell is unavailable
        :raises CMObjectExistsError: the new name is taken
        :raises CMObjectNotFoundError: a referenced object does not resolve
        :raises CMWorkflowError: a step failed after validation passed
        """

    @staticmethod
    def _require_name(name: str, what: str = "Name") -> str:
        if not isinstance(name, str) or not name.strip():
            raise CMValidationError(f"{what} is required.")
        return name.strip()

    def _step(self, description: str, func: Callable, *args, **kwargs) -> Any:
        """Run one external call, re-raising any failure as CMWorkflowError naming the step."""
        logger.info(f"{self.__class__.__name__}: {description}")
        try:
            return func(*args, **kwargs)
        except CMError as e:
            logger.error(f"{description} failed: {e}")
            raise CMWorkflowError(f"{description} failed: {e}", step=description) from e
        except Exception as e:
            logger.error(f"{description} failed unexpectedly: {e}", exc_info=True)
            raise CMWorkflowError(f"{description} failed: {e}", step=description) from e

    def _rollback(self, object_id: str) -> bool:
        """
        Best-effort delete of a partially configured object.

        :return: True if the object was deleted
        :rtype: bool
        """
        logger.warning(f"Rolling back: deleting {self.object_type} {object_id}")
        try:
            self.site_objects.delete_object(self.object_type, object_id)
        except CMError as e:
            logger.error(f"Rollback of {self.object_type} {object_id} failed: {e}. Remove it manually.")
            return False
        except Exception as e:
            logger.error(f"Rollback of {self.object_type} {object_id} failed unexpectedly: {e}. "
                         f"Remove it manually.", exc_info=True)
            return False
        logger.info(f"Rollback of {self.object_type} {object_id} completed.")
        return True

    def _fail(self, error: CMWorkflowError, object_id: Optional[str], rollback_on_failure: bool) -> CMWorkflowError:
        """Record the created object on ``error`` and roll it back if the caller opted in."""
        error.created_id = object_id
        if object_id and rollback_on_failure:
            error.rolled_back = self._rollback(object_id)
        elif object_id:
            logger.warning(f"{self.object_type} {object_id} was left in place after the failure.")
        return error
