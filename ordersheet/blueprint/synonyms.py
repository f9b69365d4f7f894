"""
Synonym Dictionary - resolves raw spreadsheet header text to canonical field keys.

Matching is exact and case-sensitive after trimming. There is no fuzzy matching:
a header either resolves to exactly one field or to nothing.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ordersheet.blueprint.fields import CanonicalFields, DEFAULT_SYNONYMS
from ordersheet.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SynonymEntry:
    standard_key: str
    synonym: str
    enabled: bool = True


class SynonymDictionary:
    """Immutable lookup table built from synonym entries."""

    def __init__(self, entries: Iterable[SynonymEntry]):
        self._entries: List[SynonymEntry] = list(entries)
        self._lookup: Dict[str, str] = {}

        issues = []
        for entry in self._entries:
            if not entry.enabled:
                continue
            text = entry.synonym.strip()
            if not text:
                continue
            existing = self._lookup.get(text)
            if existing is not None and existing != entry.standard_key:
                issues.append({
                    "issue": "Conflicting synonym",
                    "detail": f"'{text}' maps to both '{existing}' and '{entry.standard_key}'",
                    "fix": "Disable or remove one of the two entries",
                })
                continue
            self._lookup[text] = entry.standard_key

        if issues:
            raise ValidationError(f"{len(issues)} conflicting synonym(s)", issues=issues)

        logger.debug(f"Synonym dictionary built: {len(self._lookup)} active synonyms")

    @classmethod
    def from_mapping(cls, mapping: Dict[str, List[str]]) -> "SynonymDictionary":
        entries = [
            SynonymEntry(standard_key=key, synonym=syn)
            for key, synonyms in mapping.items()
            for syn in synonyms
        ]
        return cls(entries)

    @classmethod
    def default(cls) -> "SynonymDictionary":
        return cls.from_mapping(DEFAULT_SYNONYMS)

    def resolve(self, raw_header) -> Optional[str]:
        """Return the canonical field key for a header, or None if unknown."""
        if raw_header is None:
            return None
        text = str(raw_header).strip()
        if not text:
            return None

        direct = CanonicalFields.resolve_direct(text)
        if direct:
            return direct
        return self._lookup.get(text)

    def synonyms_for(self, field_key: str) -> List[str]:
        return [
            e.synonym for e in self._entries
            if e.enabled and e.standard_key == field_key
        ]

    def as_map(self) -> Dict[str, List[str]]:
        result: Dict[str, List[str]] = {}
        for entry in self._entries:
            if entry.enabled:
                result.setdefault(entry.standard_key, []).append(entry.synonym)
        return result

    @property
    def entries(self) -> List[SynonymEntry]:
        return list(self._entries)
