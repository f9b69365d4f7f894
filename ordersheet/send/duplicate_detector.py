"""
Duplicate Send Detector - flags recipient addresses already sent to the same
manufacturer within the configured day window.

A hit is not an error: the caller must supply a reason before sending anyway.
"""

import datetime
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ordersheet.models import SendRecord
from ordersheet.settings import DuplicateCheckSettings

logger = logging.getLogger(__name__)

_ADDRESS_NOISE_RE = re.compile(r"[\s,.\-]")


def normalize_address(address: str) -> str:
    """Whitespace and , . - removed, lower-cased."""
    return _ADDRESS_NOISE_RE.sub("", address or "").lower()


@dataclass
class DuplicateCheckResult:
    has_duplicate: bool = False
    matched_addresses: List[str] = field(default_factory=list)
    duplicate_logs: List[SendRecord] = field(default_factory=list)


class DuplicateSendDetector:

    def __init__(self, send_log):
        self.send_log = send_log

    def check(self, manufacturer_id: str, candidate_addresses: Iterable[str], period_days: int,
              now: Optional[datetime.datetime] = None) -> DuplicateCheckResult:
        """
        Compare candidate addresses against successful sends in [now - period_days, now].

        Matched addresses come back in candidate order without repeats.
        """
        now = now or datetime.datetime.now()
        since = now - datetime.timedelta(days=period_days)
        candidates = [a for a in candidate_addresses if a and a.strip()]

        matched: List[str] = []
        duplicate_logs: List[SendRecord] = []
        for record in self.send_log.find(str(manufacturer_id), since=since, status="success"):
            if record.sent_at > now:
                continue
            recorded = {normalize_address(a) for a in record.recipient_addresses}
            hits = [a for a in candidates if normalize_address(a) in recorded]
            if hits:
                duplicate_logs.append(record)
                for address in hits:
                    if address not in matched:
                        matched.append(address)

        if matched:
            logger.info(
                f"Duplicate send check for manufacturer {manufacturer_id}: "
                f"{len(matched)} address(es) already sent within {period_days} day(s)"
            )
        return DuplicateCheckResult(has_duplicate=bool(matched), matched_addresses=matched,
                                    duplicate_logs=duplicate_logs)

    def check_if_enabled(self, settings: DuplicateCheckSettings, manufacturer_id: str,
                         candidate_addresses: Iterable[str],
                         now: Optional[datetime.datetime] = None) -> Optional[DuplicateCheckResult]:
        """None when the check is switched off; a disabled check never blocks a send."""
        if not settings.enabled:
            logger.debug("Duplicate send check disabled; skipping")
            return None
        return self.check(manufacturer_id, candidate_addresses, settings.period_days, now=now)
