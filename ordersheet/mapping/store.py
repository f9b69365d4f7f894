"""
Rule Set Store - JSON-file persistence for mapping rule sets.

Layout on disk:
    {rulesets_dir}/{destination_kind}/{destination_key}.json

One file per destination; a save replaces the whole file (last write wins).
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ordersheet.errors import StructuralError, ValidationError
from ordersheet.mapping.ruleset import (
    COMMON_DESTINATION_KEY,
    DESTINATION_KINDS,
    MappingRuleSet,
)
from ordersheet.mapping.validator import RuleSetValidator, ValidationReport
from ordersheet.utils.snitch import snitch

logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^0-9A-Za-z가-힣_.-]")


class RuleSetStore:
    """Loads, validates and saves MappingRuleSets."""

    def __init__(self, root_dir: Path, required_fields: Optional[Iterable[str]] = None):
        self.root_dir = Path(root_dir)
        self.validator = RuleSetValidator(required_fields)

    def _path_for(self, kind: str, key: str) -> Path:
        if kind not in DESTINATION_KINDS:
            raise ValidationError(f"Unknown destination kind '{kind}' (expected one of {DESTINATION_KINDS})")
        safe_key = _SAFE_KEY_RE.sub("_", str(key).strip())
        if not safe_key:
            raise ValidationError("Destination key must not be empty")
        return self.root_dir / kind / f"{safe_key}.json"

    @snitch
    def upsert(self, ruleset: MappingRuleSet, force: bool = False) -> ValidationReport:
        """
        Validate and persist a rule set.

        Duplicate bindings block the save unless `force` is set. Missing required
        fields never block; they are returned in the report.

        Raises:
            ValidationError: duplicate bindings without force (carries the report)
        """
        report = self.validator.validate(ruleset)

        if report.duplicate_field_bindings and not force:
            raise ValidationError(
                f"Rule set '{ruleset.destination_key}' binds {report.duplicate_field_bindings} more than once",
                issues=report.to_issues(),
                report=report,
            )
        if report.duplicate_field_bindings:
            logger.warning(
                f"Saving '{ruleset.destination_key}' with duplicate bindings "
                f"{report.duplicate_field_bindings} (forced)"
            )

        path = self._path_for(ruleset.destination_kind, ruleset.destination_key)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write-then-rename so a reader never sees a half-written file
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(ruleset.to_dict(), f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)

        logger.info(f"Saved rule set {ruleset.destination_kind}/{ruleset.destination_key} -> {path}")
        return report

    def get(self, kind: str, key: str) -> Optional[MappingRuleSet]:
        path = self._path_for(kind, key)
        if not path.exists():
            return None
        logger.debug(f"Loading rule set from: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        # The file location is authoritative for identity
        return MappingRuleSet.from_dict(data, destinationKind=kind, destinationKey=str(key))

    def delete(self, kind: str, key: str) -> bool:
        path = self._path_for(kind, key)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Deleted rule set {kind}/{key}")
        return True

    def list_keys(self, kind: str) -> List[str]:
        directory = self.root_dir / kind
        if not directory.is_dir():
            return []
        return sorted(p.stem for p in directory.glob("*.json"))

    def validate(self, ruleset: MappingRuleSet) -> ValidationReport:
        return self.validator.validate(ruleset)

    def resolve_for_manufacturer(self, manufacturer_id) -> Tuple[MappingRuleSet, str]:
        """
        Rule set used to render a manufacturer's order sheet.

        The manufacturer's own rule set wins when it binds anything; otherwise the
        common fallback applies.

        Returns:
            (ruleset, source) where source is 'manufacturer' or 'common'

        Raises:
            StructuralError: neither rule set exists
        """
        own = self.get("manufacturer", str(manufacturer_id))
        if own is not None and own.has_bindings:
            return own, "manufacturer"

        common = self.get("common", COMMON_DESTINATION_KEY)
        if common is not None:
            if own is not None:
                logger.info(f"Manufacturer {manufacturer_id} rule set is empty; using common template")
            return common, "common"

        raise StructuralError(
            f"No order template for manufacturer {manufacturer_id} and no common template configured"
        )
