"""
Utility functions for cmshell.
"""
from cmshell.utils.logger import get_logger, setup_logger
from cmshell.utils.utils import save_json, to_json

__all__ = [
    'get_logger',
    'setup_logger',
    'save_json',
    'to_json'
]
