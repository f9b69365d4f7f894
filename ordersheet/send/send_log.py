"""
Send log repositories. SendRecords are append-only; nothing here updates or
deletes an entry.
"""

import datetime
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from ordersheet.models import SendRecord

logger = logging.getLogger(__name__)


class InMemorySendLog:
    def __init__(self, records: Optional[List[SendRecord]] = None):
        self._records: List[SendRecord] = list(records or [])

    def append(self, record: SendRecord) -> None:
        self._records.append(record)

    def find(self, manufacturer_id: str, since: Optional[datetime.datetime] = None,
             status: Optional[str] = None) -> List[SendRecord]:
        return [
            r for r in self._records
            if r.manufacturer_id == str(manufacturer_id)
            and (since is None or r.sent_at >= since)
            and (status is None or r.status == status)
        ]

    def all(self) -> List[SendRecord]:
        return list(self._records)


class JsonSendLog(InMemorySendLog):
    """Send log persisted as a JSON array; rewritten whole on each append."""

    def __init__(self, path: Path):
        self.path = Path(path)
        records = []
        if self.path.exists():
            logger.debug(f"Loading send log from: {self.path}")
            with open(self.path, "r", encoding="utf-8") as f:
                records = [SendRecord.from_dict(item) for item in json.load(f)]
        super().__init__(records)

    def append(self, record: SendRecord) -> None:
        super().append(record)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([r.to_dict() for r in self.all()], f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug(f"Send log appended ({record.status}) for manufacturer {record.manufacturer_id}")
