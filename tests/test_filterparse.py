import pytest

from lmd.filter import Filter, GroupOperator, Operator
from lmd.filterparse import (
    group_filters,
    has_regexp_characters,
    negate_last,
    parse_filter_op,
    set_regex_filter,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("", False),
        ("test", False),
        ("test.local", False),
        ("test..de", True),
        ("test5.de", False),
        ("test.5de", True),
        ("srv..01", True),
        ("srv.{2}01", True),
        ("BAR .", True),
        ("t.t", True),
        ("test.", True),
        ("[a-z]", True),
        (".*", True),
        (r"\d", True),
        ("[0-9]+", True),
        ("test$", True),
    ],
)
def test_regexp_detection(text, expected):
    assert has_regexp_characters(text) is expected


@pytest.mark.parametrize(
    "raw, operator, is_regex",
    [
        ("=", Operator.EQUAL, False),
        ("=~", Operator.EQUAL_NOCASE, False),
        ("~", Operator.REGEX_MATCH, True),
        ("!~", Operator.REGEX_MATCH_NOT, True),
        ("~~", Operator.REGEX_NOCASE_MATCH, True),
        ("!~~", Operator.REGEX_NOCASE_MATCH_NOT, True),
        ("!=", Operator.UNEQUAL, False),
        ("!=~", Operator.UNEQUAL_NOCASE, False),
        ("<", Operator.LESS, False),
        ("<=", Operator.LESS_THAN, False),
        (">", Operator.GREATER, False),
        (">=", Operator.GREATER_THAN, False),
        ("!>=", Operator.GROUP_CONTAINS_NOT, False),
        ("like", Operator.CONTAINS, False),
        ("unlike", Operator.CONTAINS_NOT, False),
        ("ilike", Operator.CONTAINS_NOCASE, False),
        ("iunlike", Operator.CONTAINS_NOCASE_NOT, False),
        (b"!~~", Operator.REGEX_NOCASE_MATCH_NOT, True),
    ],
)
def test_parse_filter_op(raw, operator, is_regex):
    assert parse_filter_op(raw) == (operator, is_regex)


def test_parse_filter_op_unknown():
    with pytest.raises(ValueError, match="unrecognized filter operator: =="):
        parse_filter_op("==")


def test_regexp_string_filter():
    flt = Filter(operator=Operator.REGEX_MATCH, str_value="[12]")
    set_regex_filter(flt, False)
    assert flt.match_string("1")

    flt = Filter(operator=Operator.REGEX_MATCH, str_value="[02]")
    set_regex_filter(flt, False)
    assert not flt.match_string("1")


def test_regex_nocase_without_optimize():
    flt = Filter(operator=Operator.REGEX_NOCASE_MATCH, str_value="ABC")
    set_regex_filter(flt, False)
    assert flt.operator is Operator.REGEX_NOCASE_MATCH
    assert flt.match_string("xabcx")
    assert not flt.match_string("xyz")


def test_optimize_anchored_name_becomes_equal():
    flt = Filter(operator=Operator.REGEX_MATCH, str_value="^name$")
    set_regex_filter(flt, True)
    assert flt.operator is Operator.EQUAL
    assert flt.str_value == "name"
    assert flt.match_string("name")
    assert not flt.match_string("names")


def test_optimize_anchored_nocase_becomes_equal_nocase():
    flt = Filter(operator=Operator.REGEX_NOCASE_MATCH, str_value="^Name$")
    set_regex_filter(flt, True)
    assert flt.operator is Operator.EQUAL_NOCASE
    assert flt.match_string("NAME")


def test_optimize_plain_nocase_becomes_contains():
    flt = Filter(operator=Operator.REGEX_NOCASE_MATCH, str_value="ABC")
    set_regex_filter(flt, True)
    assert flt.operator is Operator.CONTAINS_NOCASE
    assert flt.str_value == "abc"
    assert flt.regexp is None
    assert flt.match_string("xxAbCxx")


def test_optimize_strips_wildcards():
    flt = Filter(operator=Operator.REGEX_MATCH_NOT, str_value=".*foo.*")
    set_regex_filter(flt, True)
    assert flt.operator is Operator.CONTAINS_NOT
    assert flt.str_value == "foo"
    assert not flt.match_string("afoob")


def test_optimize_keeps_real_regex():
    flt = Filter(operator=Operator.REGEX_MATCH, str_value="[0-9]+")
    set_regex_filter(flt, True)
    assert flt.operator is Operator.REGEX_MATCH
    assert flt.match_string("host12")
    assert not flt.match_string("host")


def test_invalid_regex():
    flt = Filter(operator=Operator.REGEX_MATCH, str_value="[")
    with pytest.raises(ValueError, match="^invalid regular expression"):
        set_regex_filter(flt, False)


def _stack(count):
    return [Filter(operator=Operator.EQUAL, str_value=str(i)) for i in range(count)]


def test_group_filters_combines_last_entries():
    stack = _stack(3)
    first, second, third = stack
    group_filters(GroupOperator.AND, "2", stack)
    assert len(stack) == 2
    assert stack[0] is first
    group = stack[1]
    assert group.group_operator is GroupOperator.AND
    assert group.filters[0] is second
    assert group.filters[1] is third


def test_group_filters_bytes_value():
    stack = _stack(2)
    group_filters(GroupOperator.OR, b"2", stack)
    assert len(stack) == 1
    assert stack[0].group_operator is GroupOperator.OR
    assert len(stack[0].filters) == 2


def test_group_filters_zero_is_ignored():
    stack = _stack(2)
    group_filters(GroupOperator.AND, "0", stack)
    assert len(stack) == 2
    assert all(f.group_operator is GroupOperator.NONE for f in stack)


@pytest.mark.parametrize("value", ["-1", "abc", ""])
def test_group_filters_bad_number(value):
    with pytest.raises(ValueError, match="And must be a positive number"):
        group_filters(GroupOperator.AND, value, _stack(1))


def test_group_filters_not_enough():
    stack = _stack(1)
    with pytest.raises(ValueError, match="not enough filter on stack"):
        group_filters(GroupOperator.OR, "2", stack)
    assert len(stack) == 1


def test_negate_last():
    stack = _stack(2)
    negate_last(stack)
    assert stack[1].negate is True
    assert stack[0].negate is False


def test_negate_empty_stack():
    with pytest.raises(ValueError, match="no filter/stats on stack to negate"):
        negate_last([])