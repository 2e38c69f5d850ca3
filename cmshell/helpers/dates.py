"""
Conversion between DMTF datetime strings and ``datetime`` objects.

WMI returns datetime properties such as ``LastLogonTimestamp`` and
``DateCreated`` as ``yyyymmddHHMMSS.ffffff+UUU`` where ``UUU``
is the UTC offset in minutes.
"""
import datetime
import re

from cmshell.errors import CMValidationError

_DMTF_PATTERN = re.compile(
    r'^(?P<year>\d{4})(?P<month>\d{2})(?P<day>\d{2})'
    r'(?P<hour>\d{2})(?P<minute>\d{2})(?P<second>\d{2})'
    r'\.(?P<micro>\d{6})(?P<sign>[+-])(?P<offset>\d{3})$'
)


def is_dmtf(value) -> bool:
    """Return True if ``value`` is a fully specified DMTF datetime string."""
    return isinstance(value, str) and _DMTF_PATTERN.match(value.strip()) is not None


def dmtf_to_datetime(value: str) -> datetime.datetime:
    """
    Parse a DMTF datetime string.

    :param value: String such as ``20240131235959.000000+060``
    :type value: str
    :return: Timezone-aware datetime carrying the encoded UTC offset
    :rtype: datetime.datetime
    :raises CMValidationError: if the string is malformed or out of range
    """
    if not isinstance(value, str):
        raise CMValidationError(f"DMTF datetime must be a string, got {type(value).__name__}.")

    match = _DMTF_PATTERN.match(value.strip())
    if not match:
        raise CMValidationError(f"Invalid DMTF datetime '{value}': expected yyyymmddHHMMSS.ffffff+UUU.")

    parts = match.groupdict()
    offset_minutes = int(parts['offset'])
    if parts['sign'] == '-':
        offset_minutes = -offset_minutes

    try:
        tz = datetime.timezone(datetime.timedelta(minutes=offset_minutes))
        return datetime.datetime(
            int(parts['year']), int(parts['month']), int(parts['day']),
            int(parts['hour']), int(parts['minute']), int(parts['second']),
            int(parts['micro']), tzinfo=tz
        )
    except ValueError as e:
        raise CMValidationError(f"Invalid DMTF datetime '{value}': {e}") from e


def datetime_to_dmtf(value: datetime.datetime) -> str:
    """
    Format a datetime as a DMTF datetime string.

    Naive datetimes are taken to be UTC.

    :param value: The datetime to encode
    :type value: datetime.datetime
    :return: DMTF datetime string
    :rtype: str
    :raises CMValidationError: if ``value`` is not a datetime or its UTC
        offset does not fit the three-digit minute field
    """
    if not isinstance(value, datetime.datetime):
        raise CMValidationError(f"Expected a datetime, got {type(value).__name__}.")

    offset = value.utcoffset()
    offset_seconds = int(offset.total_seconds()) if offset is not None else 0
    # Whole minutes only, truncated toward zero
    offset_minutes = abs(offset_seconds) // 60
    if offset_minutes > 999:
        raise CMValidationError(f"UTC offset of {offset} cannot be encoded as a DMTF datetime.")
    sign = '-' if offset_seconds < 0 and offset_minutes else '+'
    return (f"{value.year:04d}{value.month:02d}{value.day:02d}"
            f"{value.hour:02d}{value.minute:02d}{value.second:02d}"
            f".{value.microsecond:06d}{sign}{offset_minutes:03d}")
