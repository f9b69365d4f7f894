"""
Exclusion filter - keeps orders whose fulfillment type matches a configured
pattern (e.g. "센터택배") out of send batches.

Literal patterns match as substrings, regex patterns through re.search. A regex
that does not compile is a ValidationError when the filter is built.
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple

from ordersheet.errors import ValidationError
from ordersheet.models import CanonicalOrderRecord
from ordersheet.settings import EngineSettings, ExclusionPattern

logger = logging.getLogger(__name__)


class ExclusionFilter:
    """
    Decides which orders never go into a send batch, based on the free-text
    fulfillment type. Any enabled pattern matching means excluded.
    """

    def __init__(self, patterns: Iterable[ExclusionPattern], enabled: bool = True):
        self.enabled = enabled
        self._compiled: List[Tuple[ExclusionPattern, Optional["re.Pattern"]]] = []

        issues = []
        for pattern in patterns:
            if not pattern.enabled:
                continue
            regex = None
            if pattern.is_regex:
                try:
                    regex = re.compile(pattern.pattern)
                except re.error as e:
                    issues.append({
                        "issue": f"Invalid regex: '{pattern.pattern}'",
                        "detail": str(e),
                        "fix": "Fix the expression or turn off the regex flag",
                    })
                    continue
            self._compiled.append((pattern, regex))

        if issues:
            raise ValidationError(f"{len(issues)} invalid exclusion pattern(s)", issues=issues)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "ExclusionFilter":
        return cls(settings.exclusion_patterns, enabled=settings.exclusion_enabled)

    def _matches(self, text: str):
        for pattern, regex in self._compiled:
            hit = regex.search(text) if regex is not None else pattern.pattern in text
            if hit:
                yield pattern

    def is_excluded(self, fulfillment_type: Optional[str]) -> bool:
        if not self.enabled or not fulfillment_type:
            return False
        return any(True for _ in self._matches(fulfillment_type))

    def excluded_reason(self, fulfillment_type: Optional[str]) -> Optional[str]:
        """Description (or the pattern text) of the first matching pattern."""
        if not self.enabled or not fulfillment_type:
            return None
        for pattern in self._matches(fulfillment_type):
            return pattern.description or pattern.pattern
        return None

    def partition(self, records: Iterable[CanonicalOrderRecord]) -> Tuple[List[CanonicalOrderRecord],
                                                                         List[CanonicalOrderRecord]]:
        """(sendable, excluded). Excluded records are kept for audit, never sent."""
        sendable, excluded = [], []
        for record in records:
            (excluded if self.is_excluded(record.fulfillment_type) else sendable).append(record)
        if excluded:
            logger.info(f"Exclusion filter: {len(excluded)} of {len(sendable) + len(excluded)} order(s) excluded")
        return sendable, excluded
