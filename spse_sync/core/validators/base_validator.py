"""
Base validator interface for field admissibility checks.

A validator decides whether one candidate string is acceptable for one
field of a target table. Subclasses implement validate(); callers that only
need a yes/no answer use is_valid().
"""

from abc import ABC, abstractmethod
from typing import Any


class ValidationError(Exception):
    """Raised when a candidate value is not admissible for a field."""

    def __init__(self, rule_name: str, field_name: str, message: str):
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message
        super().__init__(f"[{rule_name}] {field_name}: {message}")


class BaseValidator(ABC):
    """
    Abstract base class for all field validators.

    Each validator implements one rule type (rup_code, date, currency, regex).
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        """
        Initialize validator.

        Args:
            field_name: Name of the field to validate
            parameters: Rule-specific parameters (e.g., pattern for regex)
        """
        self.field_name = field_name
        self.parameters = parameters or {}

    @abstractmethod
    def validate(self, value: str) -> None:
        """
        Validate a candidate value.

        Args:
            value: Stripped string form of the raw value

        Raises:
            ValidationError: If the value is not admissible
        """
        pass

    @property
    @abstractmethod
    def rule_type(self) -> str:
        """Return the rule type identifier."""
        pass

    def is_valid(self, value: str) -> bool:
        try:
            self.validate(value)
        except ValidationError:
            return False
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(field={self.field_name}, params={self.parameters})"
