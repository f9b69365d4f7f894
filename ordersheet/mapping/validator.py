import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ordersheet.blueprint.fields import CanonicalFields
from ordersheet.mapping.ruleset import MappingRuleSet

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    missing_required: List[str] = field(default_factory=list)
    duplicate_field_bindings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_required and not self.duplicate_field_bindings

    def to_issues(self) -> List[Dict[str, str]]:
        issues = []
        for key in self.duplicate_field_bindings:
            issues.append({
                "issue": f"Duplicate binding: '{key}'",
                "detail": f"'{CanonicalFields.label_for(key)}' is bound more than once; only one source can fill it.",
                "fix": "Keep a single column binding or fixed value for this field, or save with force.",
            })
        for key in self.missing_required:
            issues.append({
                "issue": f"Missing required field: '{key}'",
                "detail": f"'{CanonicalFields.label_for(key)}' has no column binding and no fixed value.",
                "fix": "Bind the field to a column or give it a non-empty fixed value.",
            })
        return issues

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "missingRequired": list(self.missing_required),
            "duplicateFieldBindings": list(self.duplicate_field_bindings),
        }


class RuleSetValidator:
    """
    Semantic checks on a structurally valid MappingRuleSet.

    A field is satisfied when it is bound to a column or has a non-empty
    field-level template. A field is a duplicate when more than one of those
    sources targets it.
    """

    def __init__(self, required_fields: Optional[Iterable[str]] = None):
        self.required_fields = list(required_fields) if required_fields is not None \
            else CanonicalFields.required_keys()

    def validate(self, ruleset: MappingRuleSet) -> ValidationReport:
        counts: "OrderedDict[str, int]" = OrderedDict()

        for field_key, _letter in ruleset.bound_fields():
            counts[field_key] = counts.get(field_key, 0) + 1

        for field_key in ruleset.header_bindings.values():
            counts[field_key] = counts.get(field_key, 0) + 1

        for field_key, template in ruleset.field_fallbacks.items():
            if template.strip():
                counts[field_key] = counts.get(field_key, 0) + 1

        duplicates = [k for k, n in counts.items() if n > 1]
        missing = [k for k in self.required_fields if k not in counts]

        report = ValidationReport(missing_required=missing, duplicate_field_bindings=duplicates)
        if not report.ok:
            logger.info(
                f"Rule set '{ruleset.destination_key}': "
                f"{len(missing)} missing required, {len(duplicates)} duplicate binding(s)"
            )
        return report


def validate_ruleset(ruleset: MappingRuleSet, required_fields: Optional[Iterable[str]] = None) -> ValidationReport:
    return RuleSetValidator(required_fields).validate(ruleset)
