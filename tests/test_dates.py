"""
Tests for DMTF datetime conversion.
"""
import datetime

import pytest

from cmshell.errors import CMValidationError
from cmshell.helpers.dates import datetime_to_dmtf, dmtf_to_datetime, is_dmtf


def test_parse_utc():
    value = dmtf_to_datetime('20240131235959.123456+000')
    assert value == datetime.datetime(2024, 1, 31, 23, 59, 59, 123456, tzinfo=datetime.timezone.utc)


def test_parse_keeps_offset():
    value = dmtf_to_datetime('20231015143000.000000+060')
    assert value.utcoffset() == datetime.timedelta(minutes=60)
    assert value.astimezone(datetime.timezone.utc).hour == 13


def test_parse_negative_offset():
    value = dmtf_to_datetime('20231015143000.000000-300')
    assert value.utcoffset() == datetime.timedelta(hours=-5)


@pytest.mark.parametrize("text", [
    '',
    '2023-10-15T14:30:00',
    '20231015143000.000000',
    '20231015143000.******+***',
    '20231345143000.000000+000',
])
def test_parse_rejects_malformed(text):
    with pytest.raises(CMValidationError):
        dmtf_to_datetime(text)


def test_parse_rejects_non_string():
    with pytest.raises(CMValidationError):
        dmtf_to_datetime(20231015)


def test_format_naive_is_utc():
    assert datetime_to_dmtf(datetime.datetime(2024, 2, 29, 6, 5, 4)) == '20240229060504.000000+000'


def test_format_aware():
    tz = datetime.timezone(datetime.timedelta(hours=-8))
    value = datetime.datetime(2024, 7, 1, 12, 0, 0, 500, tzinfo=tz)
    assert datetime_to_dmtf(value) == '20240701120000.000500-480'


def test_format_pads_early_years():
    value = datetime.datetime(999, 1, 2, 3, 4, 5)
    assert datetime_to_dmtf(value) == '09990102030405.000000+000'
    assert dmtf_to_datetime(datetime_to_dmtf(value)) == value.replace(tzinfo=datetime.timezone.utc)


def test_format_rejects_offset_too_wide():
    tz = datetime.timezone(datetime.timedelta(hours=23))
    with pytest.raises(CMValidationError, match="UTC offset"):
        datetime_to_dmtf(datetime.datetime(2024, 1, 1, tzinfo=tz))


def test_format_truncates_sub_minute_offset():
    tz = datetime.timezone(datetime.timedelta(seconds=-30))
    assert datetime_to_dmtf(datetime.datetime(2024, 1, 1, tzinfo=tz)) == '20240101000000.000000+000'


def test_format_rejects_date():
    with pytest.raises(CMValidationError):
        datetime_to_dmtf(datetime.date(2024, 1, 1))


def test_is_dmtf():
    assert is_dmtf('20240131235959.000000+000')
    assert not is_dmtf('2024-01-31')
    assert not is_dmtf(None)
