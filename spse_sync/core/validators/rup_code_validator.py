"""
RupCodeValidator - accepts procurement codes (kode RUP).
"""

from typing import Any

from .base_validator import BaseValidator, ValidationError

# Codes are stored upstream as signed 64-bit integers
MAX_RUP_CODE = 2**63 - 1


class RupCodeValidator(BaseValidator):
    """
    Validates that a value looks like a procurement code.

    A code is made only of ASCII digits, has at least `min_length` of them
    and fits a signed 64-bit integer.

    Parameters:
    - min_length: Minimum number of digits (default 8)
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.min_length = int(self.parameters.get("min_length", 8))

    def validate(self, value: str) -> None:
        if not value or not value.isascii() or not value.isdigit():
            raise ValidationError(
                rule_name="rup_code",
                field_name=self.field_name,
                message=f"Value '{value}' is not numeric"
            )

        if len(value) < self.min_length:
            raise ValidationError(
                rule_name="rup_code",
                field_name=self.field_name,
                message=f"Value '{value}' is shorter than {self.min_length} digits"
            )

        if int(value) > MAX_RUP_CODE:
            raise ValidationError(
                rule_name="rup_code",
                field_name=self.field_name,
                message=f"Value '{value}' is out of range"
            )

    @property
    def rule_type(self) -> str:
        return "rup_code"
