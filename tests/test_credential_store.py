"""
Tests for keyring-backed credential storage.
"""
from unittest.mock import patch

from keyring.errors import KeyringError, PasswordDeleteError

from cmshell.config import CredentialStore


@patch('cmshell.config.credential_store.keyring')
def test_save_and_load(mock_keyring):
    store = CredentialStore()

    assert store.save_password('CM01', 'CORP\\svc_cm', 'secret') is True
    mock_keyring.set_password.assert_called_once_with('cmshell', 'CORP\\svc_cm@cm01', 'secret')

    mock_keyring.get_password.return_value = 'secret'
    assert store.load_password('cm01', 'CORP\\svc_cm') == 'secret'
    mock_keyring.get_password.assert_called_once_with('cmshell', 'CORP\\svc_cm@cm01')


@patch('cmshell.config.credential_store.keyring')
def test_save_requires_all_values(mock_keyring):
    assert CredentialStore().save_password('cm01', 'CORP\\svc_cm', '') is False
    mock_keyring.set_password.assert_not_called()


@patch('cmshell.config.credential_store.keyring')
def test_keyring_errors_are_not_fatal(mock_keyring):
    mock_keyring.set_password.side_effect = KeyringError("locked")
    mock_keyring.get_password.side_effect = KeyringError("locked")
    store = CredentialStore()

    assert store.save_password('cm01', 'user', 'pw') is False
    assert store.load_password('cm01', 'user') is None


@patch('cmshell.config.credential_store.keyring')
def test_delete(mock_keyring):
    store = CredentialStore()
    assert store.delete_password('cm01', 'user') is True

    mock_keyring.delete_password.side_effect = PasswordDeleteError("not found")
    assert store.delete_password('cm01', 'user') is False
