"""
Configuration Manager module for cmshell.
"""
import json
import os
import datetime
import shutil
from typing import Any, Optional, Dict

from ..utils import get_logger

logger = get_logger(__name__)

CONFIG_ENV_VAR = "CMSHELL_CONFIG"
CONFIG_FILENAME = "cmshell_config.json"

DEFAULTS: Dict[str, Any] = {
    'site': {
        'server': None,
        'site_code': None,
        'module_path': None,
    },
    'credentials': {
        'username': None,
    },
    'powershell': {
        'executable': 'powershell.exe',
        'timeout_sec': 300,
    },
    'logging': {
        'console_level': 'WARNING',
        'file_level': 'DEBUG',
        'file_path': None,
    },
}


def default_config_path() -> Optional[str]:
    """
    Returns the configuration path from ``CMSHELL_CONFIG`` or, failing that,
    ``%APPDATA%\\cmshell\\cmshell_config.json`` when that file exists.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return env_path

    appdata = os.environ.get('APPDATA')
    if appdata:
        candidate = os.path.join(appdata, 'cmshell', CONFIG_FILENAME)
        if os.path.exists(candidate):
            return candidate
    return None


class ConfigManager:
    """
    Loads and manages cmshell configuration from a JSON file.

    Keys are read with dot-separated paths (``site.server``). Values missing
    from the file fall back to :data:`DEFAULTS`.
    """
    CURRENT_CONFIG_VERSION = 2

    def __init__(self, config_path: Optional[str]):
        """
        Initializes the ConfigManager by loading the configuration file.

        :param config_path: The path to the configuration JSON file, or None for defaults only
        :type config_path: Optional[str]
        :raises: FileNotFoundError if the configuration file path is provided but does not exist
        :raises: ValueError if the configuration file is invalid JSON or essential keys are invalid
        """
        self._config_path = config_path
        self._config_data: Dict[str, Any] = {}
        self._migration_performed = False

        if self._config_path is None:
            logger.debug("ConfigManager initialized without a config path (defaults only).")
        else:
            self._load_config()
            self._check_and_migrate_config()
            self._validate_config()
            logger.info(f"Configuration loaded successfully from: {self._config_path}")
            if self._migration_performed:
                logger.info("Configuration migration was performed.")

    def _load_config(self):
        """
        Loads the configuration data from the JSON file.

        :raises: FileNotFoundError if the file doesn't exist
        :raises: ValueError if there are JSON parsing errors
        """
        if not os.path.exists(self._config_path):
            logger.error(f"Configuration file not found: {self._config_path}")
            raise FileNotFoundError(f"Configuration file not found: {self._config_path}")

        try:
            with open(self._config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Error decoding JSON from config file {self._config_path}: {e}")
            raise ValueError(f"Invalid JSON in configuration file: {e}") from e
        except OSError as e:
            logger.error(f"Error reading config file {self._config_path}: {e}")
            raise ValueError(f"Could not read configuration file: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("Configuration file content is not a valid JSON object.")
        self._config_data = data

    def _validate_config(self):
        """
        Performs basic validation of the keys cmshell relies on.

        :raises: ValueError if a present key has the wrong type
        """
        server = self.get('site.server')
        if server is not None and (not isinstance(server, str) or not server.strip()):
            msg = "Invalid 'site.server' configuration: Must be a non-empty string."
            logger.error(msg)
            raise ValueError(msg)

        site_code = self.get('site.site_code')
        if site_code is not None and (not isinstance(site_code, str) or len(site_code.strip()) != 3):
            msg = "Invalid 'site.site_code' configuration: Must be a three-character site code."
            logger.error(msg)
            raise ValueError(msg)

        timeout = self.get('powershell.timeout_sec')
        if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout <= 0:
            msg = "Invalid 'powershell.timeout_sec' configuration: Must be a positive integer."
            logger.error(msg)
            raise ValueError(msg)

        logger.debug("Basic configuration validation passed.")

    def _backup_config(self) -> Optional[str]:
        """
        Creates a timestamped backup of the current config file.

        :return: Path to the backup file or None if backup failed
        :rtype: Optional[str]
        """
        if not self._config_path or not os.path.exists(self._config_path):
            logger.error("Cannot backup config: Config path is invalid or file does not exist.")
            return None

        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = f"{self._config_path}.backup_{timestamp}"

        try:
            shutil.copy2(self._config_path, backup_path)
            logger.info(f"Configuration backed up successfully to: {backup_path}")
            return backup_path
        except OSError as e:
            logger.error(f"Failed to create configuration backup at {backup_path}: {e}", exc_info=True)
            return None

    def _save_config(self, config_data: Dict[str, Any]) -> bool:
        """
        Saves the provided configuration data back to the config file.

        :param config_data: Configuration data to save
        :type config_data: Dict[str, Any]
        :return: True if saved successfully, False otherwise
        :rtype: bool
        """
        if not self._config_path:
            logger.error("Cannot save config: Config path is not set.")
            return False

        temp_path = self._config_path + ".tmp"
        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, indent=4)
            os.replace(temp_path, self._config_path)
            logger.info(f"Configuration saved successfully to: {self._config_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save configuration to {self._config_path}: {e}", exc_info=True)
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    logger.warning(f"Could not remove temporary config file {temp_path}")
            return False

    @staticmethod
    def _migrate_v1(data: Dict[str, Any]) -> Dict[str, Any]:
        """Version 1 kept the site keys at the top level; version 2 nests them under ``site``."""
        migrated = dict(data)
        site = dict(migrated.get('site') or {})
        for key in ('server', 'site_code', 'module_path'):
            if key in migrated:
                site.setdefault(key, migrated.pop(key))
        migrated['site'] = site
        return migrated

    def _check_and_migrate_config(self):
        """
        Checks the config version and applies migrations if necessary.

        :raises: ValueError if migration fails
        """
        loaded_version = self._config_data.get('config_version', 1)

        if not isinstance(loaded_version, int) or loaded_version < 1:
            logger.warning(f"Invalid 'config_version' ({loaded_version}) found. Assuming version 1.")
            loaded_version = 1

        if loaded_version > self.CURRENT_CONFIG_VERSION:
            logger.warning(f"Configuration file version (v{loaded_version}) is newer than the supported version (v{self.CURRENT_CONFIG_VERSION}).")
            return
        if loaded_version == self.CURRENT_CONFIG_VERSION:
            logger.debug(f"Configuration version v{loaded_version} is current. No migration needed.")
            return

        logger.info(f"Configuration version mismatch: Found v{loaded_version}, expected v{self.CURRENT_CONFIG_VERSION}. Starting migration...")
        backup_path = self._backup_config()
        if not backup_path:
            raise ValueError("Configuration backup failed. Cannot proceed with migration.")

        current_data = self._migrate_v1(self._config_data)
        current_data['config_version'] = self.CURRENT_CONFIG_VERSION

        if not self._save_config(current_data):
            logger.error(f"Failed to save migrated configuration. Original config backed up at: {backup_path}.")
            raise ValueError("Failed to save migrated configuration.")

        self._config_data = current_data
        self._migration_performed = True
        logger.info("Configuration successfully migrated and saved.")

    @staticmethod
    def _lookup(data: Dict[str, Any], keys) -> Any:
        value: Any = data
        for key in keys:
            if not isinstance(value, dict) or key not in value:
                raise KeyError(key)
            value = value[key]
        return value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Retrieves a configuration value using a dot-separated key path.

        The loaded file wins over :data:`DEFAULTS`; ``default`` is returned only
        when neither has the key (or both hold ``None``).

        :param key_path: The dot-separated path to the configuration key
        :type key_path: str
        :param default: The default value to return if the key is not found
        :type default: Any
        :return: The configuration value or the default value
        :rtype: Any
        """
        keys = key_path.split('.')
        for source in (self._config_data, DEFAULTS):
            try:
                value = self._lookup(source, keys)
            except KeyError:
                continue
            if value is not None:
                return value
        logger.debug(f"Configuration key not found: '{key_path}'. Returning default: {default}")
        return default

    @property
    def config_path(self) -> Optional[str]:
        return self._config_path

    @property
    def all_config(self) -> Dict[str, Any]:
        """
        Returns a copy of the entire loaded configuration dictionary.

        :return: Copy of configuration dictionary
        :rtype: Dict[str, Any]
        """
        return dict(self._config_data)
