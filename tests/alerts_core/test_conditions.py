"""
Tests for alerts_core/conditions.py

Tests cover:
- All six operators on both sides of the threshold
- Exact (tolerance-free) equality
- Unsupported operators raise instead of returning False
"""
import pytest

from alerts_core.conditions import OPERATORS, evaluate_condition
from alerts_core.errors import UnsupportedOperatorError


class TestOperators:
    """Standard comparison semantics"""

    @pytest.mark.parametrize("value,condition,threshold,expected", [
        (10, '>', 5, True),
        (5, '>', 5, False),
        (4, '<', 5, True),
        (5, '<', 5, False),
        (42, '>=', 42, True),
        (41.9, '>=', 42, False),
        (42, '<=', 42, True),
        (42.1, '<=', 42, False),
        (3, '=', 3, True),
        (3, '=', 4, False),
        (3, '!=', 4, True),
        (3, '!=', 3, False),
        (-35, '<', -30, True),
    ])
    def test_operator(self, value, condition, threshold, expected):
        assert evaluate_condition(value, condition, threshold) is expected

    def test_all_six_operators_supported(self):
        assert set(OPERATORS) == {'>', '<', '>=', '<=', '=', '!='}

    def test_int_and_float_compare_equal(self):
        assert evaluate_condition(42, '=', 42.0) is True


class TestExactEquality:
    """No epsilon is applied to = and !="""

    def test_equality_has_no_tolerance(self):
        assert evaluate_condition(42.0000001, '=', 42) is False

    def test_inequality_has_no_tolerance(self):
        assert evaluate_condition(42.0000001, '!=', 42) is True

    def test_float_rounding_is_not_hidden(self):
        assert evaluate_condition(0.1 + 0.2, '=', 0.3) is False


class TestUnsupportedOperator:

    @pytest.mark.parametrize("condition", ['==', '<>', 'between', '', None, 'gt'])
    def test_unsupported_operator_raises(self, condition):
        with pytest.raises(UnsupportedOperatorError, match="Unsupported condition"):
            evaluate_condition(1, condition, 1)
