"""
Configuration management modules for cmshell.
"""
from .config_manager import ConfigManager, default_config_path
from .credential_store import CredentialStore

__all__ = [
    'ConfigManager',
    'default_config_path',
    'CredentialStore'
]
