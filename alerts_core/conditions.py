"""
Condition evaluation for threshold rules.

Comparison is exact: '=' and '!=' use plain float equality with no tolerance.
"""
import operator
from typing import Union

from alerts_core.errors import UnsupportedOperatorError


Number = Union[int, float]

OPERATORS = {
    '>': operator.gt,
    '<': operator.lt,
    '>=': operator.ge,
    '<=': operator.le,
    '=': operator.eq,
    '!=': operator.ne,
}


def evaluate_condition(value: Number, condition: str, threshold: Number) -> bool:
    """
    Compare a polled value against a rule threshold.

    Args:
        value: Current metric value
        condition: One of >, <, >=, <=, =, !=
        threshold: Rule threshold

    Returns:
        True if the condition is met (rule triggers)

    Raises:
        UnsupportedOperatorError: condition is not a known operator
    """
    compare = OPERATORS.get(condition)
    if compare is None:
        raise UnsupportedOperatorError(f"Unsupported condition: {condition}")

    return compare(float(value), float(threshold))
