"""
Site object lookups shared by the workflows and the CLI.
"""
from .site_objects import (
    SiteObjects,
    OBJECT_TYPES,
    COLLECTION_TYPE_DEVICE,
    COLLECTION_TYPE_USER,
    looks_like_object_id,
    split_folder_path
)

__all__ = [
    'SiteObjects',
    'OBJECT_TYPES',
    'COLLECTION_TYPE_DEVICE',
    'COLLECTION_TYPE_USER',
    'looks_like_object_id',
    'split_folder_path'
]
