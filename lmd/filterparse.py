"""Parsing helpers for filter operators, regular expressions and filter groups."""

from __future__ import annotations

import logging
import re
from typing import MutableSequence, Union

from lmd.filter import Filter, GroupOperator, Operator

logger = logging.getLogger(__name__)

REGEX_DOT_MIN_SIZE = 4

_RE_REGEX_DOT_REPLACE = re.compile(r"[a-zA-Z0-9]\.[a-zA-Z]")
_REGEX_CHARACTERS = frozenset("|([{*+?^\\$")
_RE_INTEGER = re.compile(r"[+-]?[0-9]+")

_FILTER_OPERATORS = {
    "=": (Operator.EQUAL, False),
    "=~": (Operator.EQUAL_NOCASE, False),
    "~": (Operator.REGEX_MATCH, True),
    "!~": (Operator.REGEX_MATCH_NOT, True),
    "~~": (Operator.REGEX_NOCASE_MATCH, True),
    "!~~": (Operator.REGEX_NOCASE_MATCH_NOT, True),
    "!=": (Operator.UNEQUAL, False),
    "!=~": (Operator.UNEQUAL_NOCASE, False),
    "<": (Operator.LESS, False),
    "<=": (Operator.LESS_THAN, False),
    ">": (Operator.GREATER, False),
    ">=": (Operator.GREATER_THAN, False),
    "!>=": (Operator.GROUP_CONTAINS_NOT, False),
    "like": (Operator.CONTAINS, False),
    "unlike": (Operator.CONTAINS_NOT, False),
    "ilike": (Operator.CONTAINS_NOCASE, False),
    "iunlike": (Operator.CONTAINS_NOCASE_NOT, False),
}


def _text(value: Union[str, bytes]) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def parse_filter_op(raw: Union[str, bytes]) -> tuple[Operator, bool]:
    """Return the operator for its text and whether it is a regular expression operator."""
    text = _text(raw)
    try:
        return _FILTER_OPERATORS[text]
    except KeyError:
        raise ValueError(f"unrecognized filter operator: {text}") from None


def has_regexp_characters(value: str) -> bool:
    """Return True if the string is probably a regular expression."""
    if any(ch in _REGEX_CHARACTERS for ch in value):
        return True
    # dots are common in host names, only treat them as regex where unlikely a name
    if "." in value:
        if len(value) < REGEX_DOT_MIN_SIZE:
            return True
        if "." in _RE_REGEX_DOT_REPLACE.sub("", value):
            return True
    return False


def set_regex_filter(flt: Filter, optimize: bool) -> None:
    """Prepare a regex filter, replacing it by a plain comparison where possible."""
    val = flt.str_value.removeprefix(".*").removesuffix(".*")

    # special case: host_name ~ ^name$
    if optimize and val.startswith("^") and val.endswith("$"):
        inner = val.removeprefix("^").removesuffix("$")
        if not has_regexp_characters(inner):
            if flt.operator is Operator.REGEX_MATCH:
                flt.operator = Operator.EQUAL
                flt.str_value = inner
            elif flt.operator is Operator.REGEX_NOCASE_MATCH:
                flt.operator = Operator.EQUAL_NOCASE
                flt.str_value = inner

    if optimize and not has_regexp_characters(val):
        replacements = {
            Operator.REGEX_MATCH: (Operator.CONTAINS, val),
            Operator.REGEX_MATCH_NOT: (Operator.CONTAINS_NOT, val),
            Operator.REGEX_NOCASE_MATCH: (Operator.CONTAINS_NOCASE, val.lower()),
            Operator.REGEX_NOCASE_MATCH_NOT: (Operator.CONTAINS_NOCASE_NOT, val.lower()),
        }
        if flt.operator in replacements:
            flt.operator, flt.str_value = replacements[flt.operator]
        return

    if flt.operator in (Operator.REGEX_NOCASE_MATCH, Operator.REGEX_NOCASE_MATCH_NOT):
        val = "(?i)" + val
    try:
        flt.regexp = re.compile(val)
    except re.error as exc:
        raise ValueError(f"invalid regular expression: {exc}") from exc


def group_filters(
    group_op: GroupOperator, value: Union[str, bytes], stack: MutableSequence[Filter]
) -> None:
    """Combine the last ``value`` filters on the stack into one group, in place."""
    text = _text(value)
    if not _RE_INTEGER.fullmatch(text) or int(text) < 0:
        raise ValueError(f"{group_op} must be a positive number")
    num = int(text)
    if num == 0:
        logger.debug("ignoring %s as value is not positive", text)
        return
    if len(stack) < num:
        raise ValueError("not enough filter on stack")
    grouped = list(stack[len(stack) - num :])
    del stack[len(stack) - num :]
    stack.append(Filter(filters=grouped, group_operator=group_op))


def negate_last(stack: MutableSequence[Filter]) -> None:
    """Mark the last filter or stats entry on the stack as negated."""
    if not stack:
        raise ValueError("no filter/stats on stack to negate")
    stack[-1].negate = True