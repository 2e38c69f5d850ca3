"""
MAC address normalization.

Configuration Manager stores MAC addresses as six upper-case hex pairs joined
by colons (``00:1A:2B:3C:4D:5E``). Input from inventories, DHCP exports and
PXE logs arrives in every other notation, so everything that touches
``SMS_R_System.MACAddresses`` goes through :func:`normalize_mac` first.
"""
import re

from cmshell.errors import CMValidationError
from cmshell.utils import get_logger

logger = get_logger(__name__)

_SEPARATOR_CHARS = re.compile(r'[\s:.\-]')
_HEX_DIGITS = re.compile(r'^[0-9A-Fa-f]{12}$')
ALLOWED_SEPARATORS = (':', '-', '')


def normalize_mac(value: str, separator: str = ':') -> str:
    """
    Reduce a MAC address in any common notation to the canonical form.

    ``001a2b3c4d5e``, ``00-1A-2B-3C-4D-5E`` and ``001a.2b3c.4d5e`` all become
    ``00:1A:2B:3C:4D:5E``.

    :param value: MAC address in any common notation
    :type value: str
    :param separator: Separator placed between the hex pairs
    :type separator: str
    :return: Upper-case, separator-delimited MAC address
    :rtype: str
    :raises CMValidationError: if the input is not exactly twelve hex digits
    """
    if separator not in ALLOWED_SEPARATORS:
        raise CMValidationError(f"Unsupported MAC separator '{separator}'. Use one of ':', '-' or ''.")
    if not isinstance(value, str) or not value.strip():
        raise CMValidationError("MAC address must be a non-empty string.")

    digits = _SEPARATOR_CHARS.sub('', value)
    if not _HEX_DIGITS.match(digits):
        raise CMValidationError(f"Invalid MAC address '{value}': expected 12 hexadecimal digits.")

    digits = digits.upper()
    normalized = separator.join(digits[i:i + 2] for i in range(0, 12, 2))
    logger.debug(f"Normalized MAC '{value}' to '{normalized}'")
    return normalized


def is_valid_mac(value: str) -> bool:
    """Return True if ``value`` can be normalized."""
    try:
        normalize_mac(value)
    except CMValidationError:
        return False
    return True
