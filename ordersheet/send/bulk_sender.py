"""
Bulk sender - sends many batches one after another.

Strictly sequential. A cooperative CancelToken is checked between batches;
counts gathered so far are returned even when the run is cancelled. One
batch failing never stops the rest.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from ordersheet.errors import TransportError, ValidationError
from ordersheet.send.batch_state import OrderBatch, OrderBatchStateMachine
from ordersheet.send.transport import MailTransport, OrderEmail
from ordersheet.utils.snitch import snitch

logger = logging.getLogger(__name__)


class CancelToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class BulkSendItem:
    batch: OrderBatch
    message: OrderEmail
    reason: Optional[str] = None


@dataclass
class BulkSendSummary:
    success: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    remaining: int = 0
    errors: Dict[str, str] = field(default_factory=dict)  # manufacturer id -> message


class BulkSender:

    def __init__(self, machine: OrderBatchStateMachine, transport: MailTransport, timeout: float = 30.0):
        self.machine = machine
        self.transport = transport
        self.timeout = timeout

    @snitch
    def run(self, items: Iterable[BulkSendItem], cancel_token: Optional[CancelToken] = None) -> BulkSendSummary:
        items = list(items)
        summary = BulkSendSummary()

        for position, item in enumerate(items):
            if cancel_token is not None and cancel_token.cancelled:
                summary.cancelled = True
                summary.remaining = len(items) - position
                logger.warning(f"Bulk send cancelled with {summary.remaining} batch(es) left")
                break

            key = str(item.batch.manufacturer_id)
            if not item.batch.records:
                summary.skipped += 1
                continue

            try:
                self.machine.send(item.batch, self.transport, item.message,
                                  reason=item.reason, timeout=self.timeout)
                summary.success += 1
            except ValidationError as e:
                summary.skipped += 1
                summary.errors[key] = str(e)
            except TransportError as e:
                summary.failed += 1
                summary.errors[key] = str(e)

        logger.info(
            f"Bulk send finished: success={summary.success} failed={summary.failed} "
            f"skipped={summary.skipped} cancelled={summary.cancelled}"
        )
        return summary
