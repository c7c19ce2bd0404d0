"""
Visibility criteria evaluation.

A criteria list is a small interpreted rule language: each rule names a
profile field, an operator from a closed set and a string value. Rules are
AND-combined.
"""
import enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
from fieldforms.models.agent import CRITERIA_FIELDS


class CriteriaOperator(str, enum.Enum):
    """Supported comparison operators (case-sensitive string semantics)."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"


class InvalidCriteriaError(ValueError):
    """A rule references an unknown field or operator, or is malformed."""

    def __init__(self, message: str, rule: Optional[Mapping[str, Any]] = None):
        self.message = message
        self.rule = dict(rule) if isinstance(rule, Mapping) else rule
        super().__init__(message)


# A missing profile value only satisfies not_equals
_PREDICATES: Dict[CriteriaOperator, Callable[[Optional[str], str], bool]] = {
    CriteriaOperator.EQUALS: lambda actual, expected: actual is not None and actual == expected,
    CriteriaOperator.NOT_EQUALS: lambda actual, expected: actual is None or actual != expected,
    CriteriaOperator.CONTAINS: lambda actual, expected: actual is not None and expected in actual,
    CriteriaOperator.STARTS_WITH: lambda actual, expected: actual is not None and actual.startswith(expected),
    CriteriaOperator.ENDS_WITH: lambda actual, expected: actual is not None and actual.endswith(expected),
}


def _parse_rule(rule: Any) -> tuple:
    if not isinstance(rule, Mapping):
        raise InvalidCriteriaError("Criteria rule must be an object", rule)

    field = rule.get("field")
    if field not in CRITERIA_FIELDS:
        raise InvalidCriteriaError(f"Unknown criteria field: {field}", rule)

    try:
        operator = CriteriaOperator(rule.get("operator"))
    except ValueError:
        raise InvalidCriteriaError(f"Unknown criteria operator: {rule.get('operator')}", rule)

    value = rule.get("value")
    if not isinstance(value, str):
        raise InvalidCriteriaError(f"Criteria value for '{field}' must be a string", rule)

    return field, operator, value


def validate_criteria(rules: Optional[Iterable[Any]]) -> List[dict]:
    """
    Check every rule up front and return them as plain dicts.

    Used when an attachment is saved, so a bad rule is rejected at
    configuration time instead of hiding the form later.

    Raises:
        InvalidCriteriaError: on the first malformed rule
    """
    normalized = []
    for rule in rules or []:
        field, operator, value = _parse_rule(rule)
        normalized.append({"field": field, "operator": operator.value, "value": value})
    return normalized


def evaluate_criteria(rules: Optional[Iterable[Any]], subject: Optional[Mapping[str, Any]]) -> bool:
    """
    Decide whether ``subject`` satisfies every rule.

    Args:
        rules: ordered list of {field, operator, value}; empty or None means no restriction
        subject: flat field lookup (agent profile); None when the profile does not exist

    Returns:
        True when all rules pass, False on the first failing rule

    Raises:
        InvalidCriteriaError: when a rule reached during evaluation is invalid
    """
    rules = list(rules or [])
    if not rules:
        return True

    if subject is None:
        # Still reject configuration errors before reporting "not met"
        validate_criteria(rules)
        return False

    for rule in rules:
        field, operator, expected = _parse_rule(rule)
        actual = subject.get(field)
        if actual is not None and not isinstance(actual, str):
            actual = str(actual)
        if not _PREDICATES[operator](actual, expected):
            return False

    return True
