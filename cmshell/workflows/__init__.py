"""
Create-and-configure workflows.

    - BaseWorkflow: step wrapping and rollback shared by all workflows
    - NewPackageWorkflow: new package, folder, security scopes
    - NewCollectionWorkflow: new device/user collection with membership rules
    - CopyTaskSequenceWorkflow: copy and rename a task sequence
"""
from .base_workflow import BaseWorkflow
from .package_workflow import NewPackageWorkflow
from .collection_workflow import NewCollectionWorkflow
from .task_sequence_workflow import CopyTaskSequenceWorkflow

__all__ = [
    'BaseWorkflow',
    'NewPackageWorkflow',
    'NewCollectionWorkflow',
    'CopyTaskSequenceWorkflow'
]
