"""
Rule engine for structural validation of raw lookup records.

Builds validator instances from a table definition's rule list and applies
them in order; the first failing rule rejects the record.
"""

from typing import Any

from geonames_refresh.core.errors import ValidationError
from geonames_refresh.core.models import RawRecord
from geonames_refresh.core.validators import (
    BaseValidator,
    CompositeIdentifierValidator,
    FieldCountValidator,
)


class RecordValidator:
    """
    Applies a table's structural rules to raw records.

    Rule configuration entries look like:
        {"type": "composite_identifier", "field": 0, "params": {"separator": "."}}
    """

    VALIDATOR_REGISTRY = {
        "field_count": FieldCountValidator,
        "composite_identifier": CompositeIdentifierValidator,
    }

    def __init__(self, rules: list[dict[str, Any]]):
        """
        Initialize the validator with rule configurations.

        Args:
            rules: List of rule dictionaries with keys type, field (optional),
                   params (optional) and enabled (default True)

        Raises:
            ValueError: If a rule type is unknown or its parameters are invalid
        """
        self.rules = rules
        self.validators: list[BaseValidator] = []
        self._build_validators()

    def _build_validators(self) -> None:
        for rule in self.rules:
            if not rule.get("enabled", True):
                continue

            rule_type = rule.get("type")
            validator_class = self.VALIDATOR_REGISTRY.get(rule_type)
            if not validator_class:
                raise ValueError(f"Unknown rule type: {rule_type}")

            parameters = rule.get("params", rule.get("parameters", {}))
            try:
                self.validators.append(validator_class(int(rule.get("field", 0)), parameters))
            except (TypeError, ValueError) as e:
                raise ValueError(f"Failed to create validator for rule '{rule_type}': {e}") from e

    def validate(self, record: RawRecord) -> None:
        """
        Run every rule against the record.

        Raises:
            ValidationError: From the first rule that fails
        """
        for validator in self.validators:
            validator.validate(record)

    def is_valid(self, record: RawRecord) -> bool:
        try:
            self.validate(record)
        except ValidationError:
            return False
        return True
