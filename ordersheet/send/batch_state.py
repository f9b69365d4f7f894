"""
Order Batch State Machine - governs sending one manufacturer's order sheet.

    pending -> sent | error
    sent    -> sent            (resend, reason required)
    error   -> sent | error    (retry)

Entering `sent` needs a destination email. A resend, or a send that the
duplicate detector flags, needs a non-empty reason, which is stored on the
SendRecord. Validation failures raise before anything is recorded; transport
failures leave a pending or failed batch in `error`.
"""

import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from ordersheet.errors import TransportError, ValidationError
from ordersheet.models import CanonicalOrderRecord, SendRecord
from ordersheet.send.duplicate_detector import DuplicateCheckResult, DuplicateSendDetector
from ordersheet.send.transport import MailTransport, OrderEmail
from ordersheet.settings import DuplicateCheckSettings
from ordersheet.utils.snitch import snitch
from ordersheet.utils.text import to_decimal

logger = logging.getLogger(__name__)


class BatchState(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    ERROR = "error"


ALLOWED_TRANSITIONS = {
    BatchState.PENDING: {BatchState.SENT, BatchState.ERROR},
    BatchState.SENT: {BatchState.SENT},
    BatchState.ERROR: {BatchState.SENT, BatchState.ERROR},
}


@dataclass
class OrderBatch:
    manufacturer_id: str
    manufacturer_name: str
    records: List[CanonicalOrderRecord] = field(default_factory=list)
    email: str = ""
    cc_email: str = ""
    state: BatchState = BatchState.PENDING
    last_error: Optional[str] = None

    @property
    def recipient_addresses(self) -> List[str]:
        seen = []
        for record in self.records:
            address = (record.address or "").strip()
            if address and address not in seen:
                seen.append(address)
        return seen

    @property
    def total_amount(self) -> Decimal:
        return sum((to_decimal(r.payment_amount) or Decimal("0") for r in self.records), Decimal("0"))


@dataclass
class SendOutcome:
    record: SendRecord
    duplicate: Optional[DuplicateCheckResult] = None


class OrderBatchStateMachine:

    def __init__(self, send_log, duplicate_settings: DuplicateCheckSettings):
        self.send_log = send_log
        self.detector = DuplicateSendDetector(send_log)
        self.duplicate_settings = duplicate_settings

    def transition(self, batch: OrderBatch, target: BatchState) -> None:
        if target not in ALLOWED_TRANSITIONS[batch.state]:
            raise ValidationError(f"Batch for manufacturer {batch.manufacturer_id} cannot go "
                                  f"from {batch.state.value} to {target.value}")
        logger.debug(f"Batch {batch.manufacturer_id}: {batch.state.value} -> {target.value}")
        batch.state = target

    def mark_error(self, batch: OrderBatch, message: str) -> None:
        self.transition(batch, BatchState.ERROR)
        batch.last_error = message

    def preflight(self, batch: OrderBatch, email: Optional[str] = None, reason: Optional[str] = None,
                  now: Optional[datetime.datetime] = None) -> Optional[DuplicateCheckResult]:
        """
        Check every precondition of a send without sending.

        Raises:
            ValidationError: illegal transition, no email, or a missing reason
                for a resend / detected duplicate
        """
        if BatchState.SENT not in ALLOWED_TRANSITIONS[batch.state]:
            raise ValidationError(f"Batch in state {batch.state.value} cannot be sent")

        address = (email if email is not None else batch.email or "").strip()
        if not address:
            raise ValidationError(
                f"No email address for manufacturer '{batch.manufacturer_name}'",
                issues=[{"issue": "Missing email", "detail": batch.manufacturer_name,
                         "fix": "Register the manufacturer's order email"}],
            )

        duplicate = self.detector.check_if_enabled(
            self.duplicate_settings, batch.manufacturer_id, batch.recipient_addresses, now=now
        )
        needs_reason = batch.state == BatchState.SENT or (duplicate is not None and duplicate.has_duplicate)
        if needs_reason and not (reason or "").strip():
            why = "resend" if batch.state == BatchState.SENT else "duplicate addresses"
            raise ValidationError(
                f"A reason is required to send to '{batch.manufacturer_name}' ({why})",
                issues=[{"issue": "Missing reason", "detail": why,
                         "fix": "Provide a reason for sending again"}],
                report=duplicate,
            )
        return duplicate

    @snitch
    def send(self, batch: OrderBatch, transport: MailTransport, message: OrderEmail,
             reason: Optional[str] = None, timeout: float = 30.0,
             now: Optional[datetime.datetime] = None) -> SendOutcome:
        """
        Send the batch's order email and record it.

        Raises:
            ValidationError: preconditions failed; nothing recorded, state unchanged
            TransportError: delivery failed; batch moved to `error`
        """
        duplicate = self.preflight(batch, email=message.to, reason=reason, now=now)

        try:
            transport.send(message, timeout=timeout)
        except Exception as e:
            if BatchState.ERROR in ALLOWED_TRANSITIONS[batch.state]:
                self.mark_error(batch, str(e))
            else:
                # A failed resend keeps the earlier successful send as the batch state
                batch.last_error = str(e)
            logger.error(f"Sending order sheet to {batch.manufacturer_name} failed: {e}")
            raise TransportError(f"Mail transport failed for {batch.manufacturer_name}: {e}") from e

        record = SendRecord(
            manufacturer_id=str(batch.manufacturer_id),
            manufacturer_name=batch.manufacturer_name,
            email=message.to,
            recipient_addresses=batch.recipient_addresses,
            sent_at=now or datetime.datetime.now(),
            reason=(reason or "").strip() or None,
            order_count=len(batch.records),
            total_amount=batch.total_amount,
            status="success",
        )
        self.send_log.append(record)

        self.transition(batch, BatchState.SENT)
        batch.last_error = None
        for order in batch.records:
            order.status = "completed"

        logger.info(f"Order sheet sent to {batch.manufacturer_name} <{message.to}> ({len(batch.records)} orders)")
        return SendOutcome(record=record, duplicate=duplicate)
