"""
Field validator implementations.

Validators are referenced by name from the field mapping documents and
built through build_validator().
"""

from typing import Any

from .base_validator import BaseValidator, ValidationError
from .regex_validator import CurrencyValidator, DateValidator, RegexValidator
from .rup_code_validator import RupCodeValidator

VALIDATOR_REGISTRY: dict[str, type[BaseValidator]] = {
    "rup_code": RupCodeValidator,
    "date": DateValidator,
    "currency": CurrencyValidator,
    "regex": RegexValidator,
}


def build_validator(
    rule_type: str, field_name: str, parameters: dict[str, Any] | None = None
) -> BaseValidator:
    """
    Instantiate a validator by rule type.

    Raises:
        ValueError: If the rule type is unknown or its parameters are invalid
    """
    validator_class = VALIDATOR_REGISTRY.get(rule_type)
    if validator_class is None:
        raise ValueError(f"Unknown validator type: {rule_type}")
    return validator_class(field_name, parameters)


__all__ = [
    "BaseValidator",
    "ValidationError",
    "RupCodeValidator",
    "RegexValidator",
    "DateValidator",
    "CurrencyValidator",
    "VALIDATOR_REGISTRY",
    "build_validator",
]
