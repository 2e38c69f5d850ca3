"""
Credential Store module for the optional WMI connection password.

The password for ``credentials.username`` lives in the operating system
keyring, keyed by ``<username>@<server>``. When no username is configured the
provider connection uses the caller's own Windows identity and nothing is
read from the keyring.
"""
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..utils import get_logger

logger = get_logger(__name__)

CREDENTIAL_SERVICE_NAME = "cmshell"


class CredentialStore:
    """
    Saves and loads SMS provider passwords through ``keyring``.
    """

    def __init__(self, service_name: str = CREDENTIAL_SERVICE_NAME):
        self.service_name = service_name

    @staticmethod
    def _account(server: str, username: str) -> str:
        return f"{username}@{server.lower()}"

    def save_password(self, server: str, username: str, password: str) -> bool:
        """
        Saves the password for ``username`` on ``server``.

        :param server: SMS provider server name
        :type server: str
        :param username: Account name (``DOMAIN\\user``)
        :type username: str
        :param password: The password to store
        :type password: str
        :return: True if saved successfully, False otherwise
        :rtype: bool
        """
        if not server or not username or not password:
            logger.error("Cannot save password: server, username and password are required.")
            return False

        try:
            keyring.set_password(self.service_name, self._account(server, username), password)
            logger.info(f"Password saved to keyring for {username} on {server}")
            return True
        except KeyringError as e:
            logger.error(f"Failed to save password to keyring for {username} on {server}: {e}")
            return False

    def load_password(self, server: str, username: str) -> Optional[str]:
        """
        Loads the password for ``username`` on ``server``.

        :return: The password if found, None otherwise
        :rtype: Optional[str]
        """
        if not server or not username:
            return None

        try:
            password = keyring.get_password(self.service_name, self._account(server, username))
        except KeyringError as e:
            logger.error(f"Failed to load password from keyring for {username} on {server}: {e}")
            return None

        if password:
            logger.debug(f"Password loaded from keyring for {username} on {server}")
        else:
            logger.debug(f"No password in keyring for {username} on {server}")
        return password

    def delete_password(self, server: str, username: str) -> bool:
        """Removes a stored password. Returns False if none was stored."""
        try:
            keyring.delete_password(self.service_name, self._account(server, username))
            logger.info(f"Password removed from keyring for {username} on {server}")
            return True
        except PasswordDeleteError:
            logger.debug(f"No password to remove for {username} on {server}")
            return False
