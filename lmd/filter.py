"""Filter and stats objects for livestatus queries and their value matching."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import IntEnum
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


class StatsType(IntEnum):
    """Stats operator: a row counter or one of the aggregations."""

    NO_STATS = 0
    COUNTER = 1
    SUM = 2
    AVERAGE = 3
    MIN = 4
    MAX = 5
    STATS_GROUP = 6

    def __str__(self) -> str:
        try:
            return _STATS_NAMES[self]
        except KeyError:
            raise ValueError(f"no string representation for stats type {self.name}") from None


_STATS_NAMES = {
    StatsType.AVERAGE: "avg",
    StatsType.SUM: "sum",
    StatsType.MIN: "min",
    StatsType.MAX: "Max",
}


class Operator(IntEnum):
    """Operator used to compare filter values with data columns."""

    EQUAL = 1
    UNEQUAL = 2
    EQUAL_NOCASE = 3
    UNEQUAL_NOCASE = 4
    REGEX_MATCH = 5
    REGEX_MATCH_NOT = 6
    REGEX_NOCASE_MATCH = 7
    REGEX_NOCASE_MATCH_NOT = 8
    CONTAINS = 9
    CONTAINS_NOT = 10
    CONTAINS_NOCASE = 11
    CONTAINS_NOCASE_NOT = 12
    LESS = 13
    LESS_THAN = 14
    GREATER = 15
    GREATER_THAN = 16
    GROUP_CONTAINS_NOT = 17

    def __str__(self) -> str:
        return _OPERATOR_SYMBOLS[self]


_OPERATOR_SYMBOLS = {
    Operator.EQUAL: "=",
    Operator.UNEQUAL: "!=",
    Operator.EQUAL_NOCASE: "=~",
    Operator.UNEQUAL_NOCASE: "!=~",
    Operator.REGEX_MATCH: "~",
    Operator.REGEX_MATCH_NOT: "!~",
    Operator.REGEX_NOCASE_MATCH: "~~",
    Operator.REGEX_NOCASE_MATCH_NOT: "!~~",
    Operator.CONTAINS: "~",
    Operator.CONTAINS_NOT: "!~",
    Operator.CONTAINS_NOCASE: "~~",
    Operator.CONTAINS_NOCASE_NOT: "!~~",
    Operator.LESS: "<",
    Operator.LESS_THAN: "<=",
    Operator.GREATER: ">",
    Operator.GREATER_THAN: ">=",
    Operator.GROUP_CONTAINS_NOT: "!>=",
}


class GroupOperator(IntEnum):
    """Operator combining a group of filters."""

    NONE = 0
    AND = 1
    OR = 2

    def __str__(self) -> str:
        if self is GroupOperator.AND:
            return "And"
        if self is GroupOperator.OR:
            return "Or"
        raise ValueError("no string representation for empty group operator")


def _format_float(value: float) -> str:
    """Format a float in the shortest form, positional unless the exponent is extreme."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    text = "".join(str(d) for d in digits)
    point = len(text) + exponent - 1
    prefix = "-" if sign else ""
    if point < -4 or point >= 21:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        return f"{prefix}{mantissa}e{'-' if point < 0 else '+'}{abs(point):02d}"
    if exponent >= 0:
        return prefix + text + "0" * exponent
    if point < 0:
        return prefix + "0." + "0" * (-point - 1) + text
    return prefix + text[: point + 1] + "." + text[point + 1 :]


def _as_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    if value is None:
        return []
    return [value]


def _as_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return json.dumps(value)


def match_empty_filter(operator: Operator) -> bool:
    """Result of a numeric filter whose value is empty."""
    if operator in (Operator.UNEQUAL, Operator.GREATER, Operator.GREATER_THAN):
        return True
    if operator in (Operator.EQUAL, Operator.LESS, Operator.LESS_THAN):
        return False
    logger.warning("not implemented empty op: %s", operator)
    return False


@dataclass(eq=False)
class Filter:
    """A single filter or stats entry, or a group of nested filters."""

    operator: Optional[Operator] = None
    column: Any = None
    str_value: str = ""
    custom_tag: str = ""
    regexp: Optional[re.Pattern] = None
    filters: list["Filter"] = field(default_factory=list)
    int_value: int = 0
    int64_value: int = 0
    float_value: float = 0.0
    stats: float = 0.0
    stats_count: int = 0
    stats_pos: int = 0
    column_index: int = -1
    column_optional: int = 0
    is_empty: bool = False
    negate: bool = False
    group_operator: GroupOperator = GroupOperator.NONE
    stats_type: StatsType = StatsType.NO_STATS

    def equals(self, other: "Filter") -> bool:
        """Return True if both filters are identical, including nested groups."""
        if (
            self.column is not other.column
            or self.operator != other.operator
            or self.str_value != other.str_value
            or self.negate != other.negate
            or self.float_value != other.float_value
            or self.stats_type != other.stats_type
            or self.group_operator != other.group_operator
            or len(self.filters) != len(other.filters)
        ):
            return False
        return all(a.equals(b) for a, b in zip(self.filters, other.filters))

    def apply_value(self, value: float, count: int) -> None:
        """Add a value to this stats filter."""
        kind = self.stats_type
        if kind is StatsType.COUNTER:
            self.stats += float(count)
        elif kind in (StatsType.AVERAGE, StatsType.SUM):
            self.stats += value
        elif kind is StatsType.MIN:
            if self.stats > value or self.stats == -1:
                self.stats = value
        elif kind is StatsType.MAX:
            if self.stats < value:
                self.stats = value
        else:
            raise ValueError(f"stats type {kind.name} cannot aggregate values")
        self.stats_count += count

    def _match_number(self, value: Any, reference: Any, text: str) -> bool:
        op = self.operator
        if op is Operator.EQUAL:
            return value == reference
        if op is Operator.UNEQUAL:
            return value != reference
        if op is Operator.LESS:
            return value < reference
        if op is Operator.LESS_THAN:
            return value <= reference
        if op is Operator.GREATER:
            return value > reference
        if op is Operator.GREATER_THAN:
            return value >= reference
        return self.match_string(text)

    def match_int(self, value: int) -> bool:
        """Match a small integer column value."""
        return self._match_number(value, self.int_value, str(value))

    def match_int64(self, value: int) -> bool:
        """Match an integer column value."""
        return self._match_number(value, self.int64_value, str(value))

    def match_float(self, value: float) -> bool:
        """Match a float column value."""
        return self._match_number(value, self.float_value, _format_float(value))

    def match_string(self, value: str) -> bool:
        """Match a string value against this filter."""
        op = self.operator
        ref = self.str_value
        if op is Operator.EQUAL:
            return value == ref
        if op is Operator.UNEQUAL:
            return value != ref
        if op is Operator.EQUAL_NOCASE:
            return value.casefold() == ref.casefold()
        if op is Operator.UNEQUAL_NOCASE:
            return value.casefold() != ref.casefold()
        if op in (Operator.REGEX_MATCH, Operator.REGEX_NOCASE_MATCH):
            return self.regexp.search(value) is not None
        if op in (Operator.REGEX_MATCH_NOT, Operator.REGEX_NOCASE_MATCH_NOT):
            return self.regexp.search(value) is None
        if op is Operator.LESS:
            return value < ref
        if op is Operator.LESS_THAN:
            return value <= ref
        if op is Operator.GREATER:
            return value > ref
        if op is Operator.GREATER_THAN:
            return value >= ref
        if op is Operator.CONTAINS:
            return ref in value
        if op is Operator.CONTAINS_NOT:
            return ref not in value
        if op is Operator.CONTAINS_NOCASE:
            return ref in value.lower()
        if op is Operator.CONTAINS_NOCASE_NOT:
            return ref not in value.lower()
        logger.warning("not implemented string op: %s", op)
        return False

    def match_string_list(self, values: Iterable[str]) -> bool:
        """Match a list of strings against this filter."""
        values = list(values)
        op = self.operator
        if op is Operator.EQUAL:
            # contacts = "" matches empty lists
            return self.str_value == "" and not values
        if op is Operator.UNEQUAL:
            # contacts != "" matches non-empty lists
            return self.str_value == "" and bool(values)
        if op is Operator.GREATER_THAN:
            return self.str_value in values
        if op in (Operator.GROUP_CONTAINS_NOT, Operator.LESS_THAN):
            return self.str_value not in values
        if op in (
            Operator.REGEX_MATCH,
            Operator.REGEX_NOCASE_MATCH,
            Operator.CONTAINS,
            Operator.CONTAINS_NOCASE,
        ):
            return any(self.match_string(v) for v in values)
        if op in (
            Operator.REGEX_MATCH_NOT,
            Operator.REGEX_NOCASE_MATCH_NOT,
            Operator.CONTAINS_NOT,
            Operator.CONTAINS_NOCASE_NOT,
        ):
            return all(self.match_string(v) for v in values)
        logger.warning("not implemented stringlist op: %s", op)
        return False

    def match_int64_list(self, values: Iterable[int]) -> bool:
        """Match a list of integers against this filter."""
        values = list(values)
        op = self.operator
        if op is Operator.EQUAL:
            return self.is_empty and not values
        if op is Operator.UNEQUAL:
            return self.is_empty and bool(values)
        if op is Operator.GREATER_THAN:
            return self.int_value in values
        if op is Operator.GROUP_CONTAINS_NOT:
            return self.int_value not in values
        logger.warning("not implemented Int64list op: %s", op)
        return False

    def match_custom_var(self, variables: Mapping[str, str]) -> bool:
        """Match the custom variable named by the filter's tag."""
        return self.match_string(variables.get(self.custom_tag, ""))

    def match_interface_list(self, values: Iterable[Any]) -> bool:
        """Match a list of nested value lists against this filter."""
        values = list(values)
        if self.is_empty:
            if not values:
                return self.match_string("")
            return not self.match_string("")

        entries = (_as_string(entry) for row in values for entry in _as_list(row))
        op = self.operator
        if op in (
            Operator.EQUAL,
            Operator.EQUAL_NOCASE,
            Operator.CONTAINS,
            Operator.CONTAINS_NOCASE,
            Operator.REGEX_MATCH,
            Operator.REGEX_NOCASE_MATCH,
        ):
            return any(self.match_string(v) for v in entries)
        if op in (
            Operator.UNEQUAL,
            Operator.UNEQUAL_NOCASE,
            Operator.CONTAINS_NOT,
            Operator.CONTAINS_NOCASE_NOT,
            Operator.REGEX_MATCH_NOT,
            Operator.REGEX_NOCASE_MATCH_NOT,
        ):
            return all(self.match_string(v) for v in entries)
        logger.warning("not implemented Interfacelist op: %s", op)
        return False