"""
Base validator interface for structural rules on raw records.

All validators must inherit from BaseValidator and implement the validate() method.
"""

from abc import ABC, abstractmethod
from typing import Any

from geonames_refresh.core.errors import ValidationError
from geonames_refresh.core.models import RawRecord


class BaseValidator(ABC):
    """
    Abstract base class for all validators.

    Each validator checks one structural property of a positional record
    (field count, composite identifier shape, ...).
    """

    def __init__(self, field_index: int = 0, parameters: dict[str, Any] | None = None):
        """
        Initialize validator.

        Args:
            field_index: Position of the field this rule inspects
            parameters: Rule-specific parameters (e.g., separator, minimum)
        """
        self.field_index = field_index
        self.parameters = parameters or {}

    @property
    def field_name(self) -> str:
        return f"field[{self.field_index}]"

    @abstractmethod
    def validate(self, record: RawRecord) -> None:
        """
        Validate a raw record against this rule.

        Args:
            record: The parsed line

        Raises:
            ValidationError: If validation fails
        """

    @property
    @abstractmethod
    def rule_type(self) -> str:
        """Return the rule type identifier."""

    def fail(self, message: str) -> None:
        raise ValidationError(
            rule_name=self.rule_type,
            field_name=self.field_name,
            message=message,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(field={self.field_index}, params={self.parameters})"
