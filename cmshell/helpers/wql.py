"""
WQL filter building.

Builds WHERE clauses from ``(property, operator, value)`` conditions so callers
never hand-assemble quoted query text. Operators may be given by friendly name
(``Equals``, ``Like`` ...) or by their WQL symbol.
"""
import datetime
import math
import re
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from cmshell.errors import CMValidationError
from cmshell.helpers.dates import datetime_to_dmtf

OPERATORS = {
    'Equals': '=',
    'NotEquals': '<>',
    'GreaterThan': '>',
    'GreaterOrEqual': '>=',
    'LessThan': '<',
    'LessOrEqual': '<=',
    'Like': 'LIKE',
    'NotLike': 'NOT LIKE',
    'IsNull': 'IS NULL',
    'IsNotNull': 'IS NOT NULL',
}

UNARY_OPERATORS = ('IS NULL', 'IS NOT NULL')
JOIN_KEYWORDS = ('AND', 'OR')

_OPERATORS_BY_LOWER_NAME = {name.lower(): symbol for name, symbol in OPERATORS.items()}
_SYMBOLS = set(OPERATORS.values())
_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$')

Condition = Union[Tuple[str, str], Tuple[str, str, Any]]


def translate_operator(name: str) -> str:
    """
    Translate a friendly operator name into its WQL symbol.

    Lookup is case-insensitive. A WQL symbol is returned unchanged.

    :param name: Friendly name such as ``GreaterOrEqual`` or a symbol such as ``>=``
    :type name: str
    :return: The WQL operator
    :rtype: str
    :raises CMValidationError: if the operator is unknown
    """
    if not isinstance(name, str):
        raise CMValidationError(f"Operator must be a string, got {type(name).__name__}.")

    key = name.strip()
    symbol = _OPERATORS_BY_LOWER_NAME.get(key.lower())
    if symbol:
        return symbol
    if ' '.join(key.upper().split()) in _SYMBOLS:
        return ' '.join(key.upper().split())

    valid = ', '.join(OPERATORS)
    raise CMValidationError(f"Unknown WQL operator '{name}'. Valid operators: {valid}.")


def _check_identifier(name: str, kind: str = "property") -> str:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise CMValidationError(f"Invalid WQL {kind} name '{name}'.")
    return name


def escape_string(value: str) -> str:
    """Escape backslashes and single quotes for a WQL string literal."""
    return value.replace('\\', '\\\\').replace("'", "\\'")


def escape_like(value: str) -> str:
    """Escape the LIKE wildcards ``[``, ``%`` and ``_`` so ``value`` matches literally."""
    return re.sub(r'([\[%_])', r'[\1]', value)


def format_value(value: Any) -> str:
    """
    Render a Python value as a WQL literal.

    :param value: str, bool, int, float or datetime
    :type value: Any
    :return: WQL literal text
    :rtype: str
    :raises CMValidationError: for unsupported types
    """
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, float) and not math.isfinite(value):
        raise CMValidationError(f"Cannot use {value!r} in a WQL condition.")
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, datetime.datetime):
        return f"'{datetime_to_dmtf(value)}'"
    if isinstance(value, str):
        return f"'{escape_string(value)}'"
    raise CMValidationError(f"Cannot use value of type {type(value).__name__} in a WQL condition.")


def build_condition(property_name: str, operator: str = 'Equals', value: Any = None) -> str:
    """
    Build a single WQL condition.

    ``None`` compared with ``Equals``/``NotEquals`` becomes ``IS NULL`` /
    ``IS NOT NULL``. A list or tuple value expands into an OR group, e.g.
    ``(Name = 'A' OR Name = 'B')``.

    :param property_name: The property to test
    :type property_name: str
    :param operator: Friendly operator name or WQL symbol
    :type operator: str
    :param value: Value to compare against (ignored by unary operators)
    :type value: Any
    :return: Condition text
    :rtype: str
    """
    _check_identifier(property_name)
    symbol = translate_operator(operator)

    if value is None and symbol in ('=', '<>'):
        symbol = 'IS NULL' if symbol == '=' else 'IS NOT NULL'

    if symbol in UNARY_OPERATORS:
        return f"{property_name} {symbol}"

    if value is None:
        raise CMValidationError(f"Operator '{operator}' on '{property_name}' requires a value.")

    if isinstance(value, (list, tuple, set)):
        values = list(value)
        if not values:
            raise CMValidationError(f"Empty value list for '{property_name}'.")
        if len(values) == 1:
            return f"{property_name} {symbol} {format_value(values[0])}"
        group_join = ' AND ' if symbol in ('<>', 'NOT LIKE') else ' OR '
        clauses = [f"{property_name} {symbol} {format_value(v)}" for v in values]
        return f"({group_join.join(clauses)})"

    return f"{property_name} {symbol} {format_value(value)}"


def build_where_clause(conditions: Iterable[Condition], join: str = 'AND') -> str:
    """
    Join several conditions into the body of a WHERE clause.

    Each condition is ``(property, operator)`` or ``(property, operator, value)``.

    :param conditions: Conditions to join
    :type conditions: Iterable[Condition]
    :param join: ``AND`` or ``OR``
    :type join: str
    :return: Clause text without the ``WHERE`` keyword, or ``''`` if empty
    :rtype: str
    """
    keyword = str(join).strip().upper()
    if keyword not in JOIN_KEYWORDS:
        raise CMValidationError(f"Invalid join keyword '{join}'. Use AND or OR.")

    clauses: List[str] = []
    for condition in conditions:
        if not isinstance(condition, (list, tuple)) or len(condition) not in (2, 3):
            raise CMValidationError(f"Invalid condition {condition!r}: expected (property, operator[, value]).")
        clauses.append(build_condition(*condition))

    return f" {keyword} ".join(clauses)


def build_query(class_name: str, properties: Optional[Sequence[str]] = None,
                where: Optional[Union[str, Iterable[Condition]]] = None, join: str = 'AND') -> str:
    """
    Build a complete ``SELECT`` statement.

    :param class_name: WMI class, e.g. ``SMS_Collection``
    :type class_name: str
    :param properties: Properties to select; all when omitted
    :type properties: Optional[Sequence[str]]
    :param where: A prepared clause or conditions for :func:`build_where_clause`
    :type where: Optional[Union[str, Iterable[Condition]]]
    :param join: Join keyword used when ``where`` is a list of conditions
    :type join: str
    :return: The WQL statement
    :rtype: str
    """
    _check_identifier(class_name, "class")
    columns = ', '.join(_check_identifier(p) for p in properties) if properties else '*'
    query = f"SELECT {columns} FROM {class_name}"

    if where:
        clause = where if isinstance(where, str) else build_where_clause(where, join)
        if clause:
            query += f" WHERE {clause}"
    return query
