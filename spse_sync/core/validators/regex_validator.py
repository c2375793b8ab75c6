"""
Pattern based validators: generic regex, dates and currency amounts.
"""

import re
from re import Pattern
from typing import Any

from .base_validator import BaseValidator, ValidationError

INDONESIAN_MONTHS = (
    "januari", "februari", "maret", "april", "mei", "juni",
    "juli", "agustus", "september", "oktober", "november", "desember",
)


class RegexValidator(BaseValidator):
    """
    Validates that a value contains a match for at least one pattern.

    Matching uses re.search, so a pattern only needs to occur somewhere in
    the value; anchor it with ^...$ for a full match.

    Parameters:
    - pattern: Regular expression (string or compiled Pattern)
    - patterns: List of alternatives, used when `pattern` is absent
    - flags: Optional regex flags (e.g., re.IGNORECASE)
    """

    default_patterns: tuple[str, ...] = ()

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

        raw_patterns = self.parameters.get("patterns")
        if raw_patterns is None:
            single = self.parameters.get("pattern")
            raw_patterns = [single] if single else list(self.default_patterns)
        if not raw_patterns:
            raise ValueError(f"{self.__class__.__name__} requires 'pattern' parameter")

        flags = self.parameters.get("flags", 0)

        self.patterns: list[Pattern] = []
        for pattern in raw_patterns:
            try:
                if isinstance(pattern, str):
                    self.patterns.append(re.compile(pattern, flags))
                elif isinstance(pattern, Pattern):
                    self.patterns.append(pattern)
                else:
                    raise ValueError(f"Pattern must be string or compiled Pattern, got {type(pattern)}")
            except re.error as e:
                raise ValueError(f"Invalid regex pattern: {e}")

    def matches(self, value: str) -> bool:
        return any(p.search(value) for p in self.patterns)

    def validate(self, value: str) -> None:
        if not self.matches(value):
            raise ValidationError(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Value '{value}' does not match any accepted pattern"
            )

    @property
    def rule_type(self) -> str:
        return "regex"


class DateValidator(RegexValidator):
    """
    Accepts numeric dates (d/m/yyyy, yyyy-m-d, d-m-yyyy) or any value that
    names an Indonesian month.
    """

    default_patterns = (
        r"\d{1,2}/\d{1,2}/\d{4}",
        r"\d{4}-\d{1,2}-\d{1,2}",
        r"\d{1,2}-\d{1,2}-\d{4}",
    )

    def matches(self, value: str) -> bool:
        if super().matches(value):
            return True
        lowered = value.lower()
        return any(month in lowered for month in INDONESIAN_MONTHS)

    @property
    def rule_type(self) -> str:
        return "date"


class CurrencyValidator(RegexValidator):
    """Accepts rupiah amounts such as 'Rp. 1.500.000', '1500000' or '1,500'."""

    default_patterns = (
        r"Rp\.?\s*\d+",
        r"\d+(\.\d{3})*",
        r"\d+,\d{3}",
    )

    @property
    def rule_type(self) -> str:
        return "currency"
