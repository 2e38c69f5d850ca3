"""
Utility functions for cmshell.
"""
import datetime
import json
import os
from typing import Any

from cmshell.utils.logger import get_logger

logger = get_logger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return str(value)


def to_json(data: Any, indent: int = 2) -> str:
    """
    Serialize provider results to JSON text.

    Datetimes are written as ISO 8601; anything else the encoder does not know
    (COM variants, bytes) falls back to ``str``.

    :param data: Data to serialize
    :type data: Any
    :param indent: Indentation passed to ``json.dumps``
    :type indent: int
    :return: JSON text
    :rtype: str
    """
    return json.dumps(data, indent=indent, default=_json_default)


def save_json(data: Any, file_path: str) -> bool:
    """
    Save data to a JSON file.

    :param data: Data to save
    :type data: Any
    :param file_path: Path to save the JSON file
    :type file_path: str
    :return: True if save succeeded, False otherwise
    :rtype: bool
    """
    if not file_path:
        logger.error("Cannot save JSON: File path is empty")
        return False

    try:
        directory = os.path.dirname(file_path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(to_json(data))
        logger.debug(f"Successfully saved JSON data to: {file_path}")
        return True
    except (IOError, OSError) as e:
        logger.error(f"Failed to write file {file_path}: {e}")
        return False
