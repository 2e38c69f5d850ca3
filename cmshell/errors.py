"""
Exception hierarchy for cmshell.

- CMValidationError: bad input, raised before anything is sent to the site
- CMConnectionError: a capability needed by the operation is missing
- CMQueryError / CMCommandError: the query provider or a cmdlet failed
- CMObjectExistsError / CMObjectNotFoundError: precondition on site objects
- CMWorkflowError: a create-and-configure workflow stopped part way
"""
from typing import Optional


class CMError(Exception):
    """Base class for every error raised by cmshell."""


class CMValidationError(CMError, ValueError):
    """Input rejected before any external call was made."""


class CMConnectionError(CMError):
    """The SMS provider, the admin module or the site drive is unavailable."""


class CMQueryError(CMError):
    """A WQL query or provider object operation failed."""

    def __init__(self, message: str, query: Optional[str] = None):
        super().__init__(message)
        self.query = query


class CMCommandError(CMError):
    """A Configuration Manager cmdlet exited with an error."""

    def __init__(self, message: str, cmdlet: Optional[str] = None,
                 exit_code: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.cmdlet = cmdlet
        self.exit_code = exit_code
        self.stderr = stderr


class CMObjectExistsError(CMError):
    """An object with the requested name already exists."""


class CMObjectNotFoundError(CMError):
    """A referenced object could not be resolved."""


class CMWorkflowError(CMError):
    """
    A workflow step failed after validation passed.

    ``created_id`` is the ID of the object the workflow created before the
    failure (if any) and ``rolled_back`` tells whether it was deleted again.
    """

    def __init__(self, message: str, step: Optional[str] = None,
                 created_id: Optional[str] = None, rolled_back: bool = False):
        super().__init__(message)
        self.step = step
        self.created_id = created_id
        self.rolled_back = rolled_back
