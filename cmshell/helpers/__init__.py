"""
Pure helpers: WQL filter building, DMTF datetime conversion and MAC normalization.
"""
from .wql import (
    OPERATORS,
    translate_operator,
    format_value,
    build_condition,
    build_where_clause,
    build_query
)
from .dates import dmtf_to_datetime, datetime_to_dmtf, is_dmtf
from .mac import normalize_mac, is_valid_mac

__all__ = [
    'OPERATORS',
    'translate_operator',
    'format_value',
    'build_condition',
    'build_where_clause',
    'build_query',

    'dmtf_to_datetime',
    'datetime_to_dmtf',
    'is_dmtf',

    'normalize_mac',
    'is_valid_mac'
]
