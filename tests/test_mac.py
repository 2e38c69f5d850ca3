"""
Tests for MAC address normalization.
"""
import pytest

from cmshell.errors import CMValidationError
from cmshell.helpers.mac import is_valid_mac, normalize_mac


@pytest.mark.parametrize("raw", [
    '001a2b3c4d5e',
    '00:1a:2b:3c:4d:5e',
    '00-1A-2B-3C-4D-5E',
    '001a.2b3c.4d5e',
    ' 00 1a 2b 3c 4d 5e ',
])
def test_normalizes_common_notations(raw):
    assert normalize_mac(raw) == '00:1A:2B:3C:4D:5E'


def test_custom_separator():
    assert normalize_mac('00:1a:2b:3c:4d:5e', separator='-') == '00-1A-2B-3C-4D-5E'
    assert normalize_mac('00:1a:2b:3c:4d:5e', separator='') == '001A2B3C4D5E'


@pytest.mark.parametrize("raw", [
    '',
    '001a2b3c4d',
    '001a2b3c4d5e6f',
    '00:1a:2b:3c:4d:5g',
    'not a mac',
])
def test_rejects_invalid(raw):
    with pytest.raises(CMValidationError):
        normalize_mac(raw)


def test_rejects_non_string():
    with pytest.raises(CMValidationError):
        normalize_mac(0x001A2B3C4D5E)


def test_rejects_unknown_separator():
    with pytest.raises(CMValidationError, match="separator"):
        normalize_mac('001a2b3c4d5e', separator='/')


def test_is_valid_mac():
    assert is_valid_mac('00-1A-2B-3C-4D-5E')
    assert not is_valid_mac('00-1A-2B')
