"""
Send workflow: batch state transitions, reasons for resends and duplicate
addresses, transport failures and the sequential bulk sender.
"""

import datetime
import unittest
from decimal import Decimal

from ordersheet.errors import TransportError, ValidationError
from ordersheet.models import CanonicalOrderRecord, SendRecord
from ordersheet.send.batch_state import BatchState, OrderBatch, OrderBatchStateMachine
from ordersheet.send.bulk_sender import BulkSender, BulkSendItem, CancelToken
from ordersheet.send.send_log import InMemorySendLog
from ordersheet.send.transport import InMemoryTransport, MailTransport, OrderEmail
from ordersheet.settings import DuplicateCheckSettings

NOW = datetime.datetime(2026, 10, 19, 9, 0, 0)


class FailingTransport(MailTransport):
    def __init__(self):
        self.calls = 0

    def send(self, message, timeout):
        self.calls += 1
        raise TimeoutError(f"timed out after {timeout}s")


def _batch(manufacturer_id="1", email="order@maker.test", address="서울시 중구 1", n=2):
    records = [
        CanonicalOrderRecord(order_number=f"{manufacturer_id}-{i}", address=address,
                             payment_amount=Decimal("1000"))
        for i in range(n)
    ]
    return OrderBatch(manufacturer_id=manufacturer_id, manufacturer_name=f"제조사{manufacturer_id}",
                      records=records, email=email)


def _message(batch):
    return OrderEmail(to=batch.email, subject="발주서", attachments=[("a.xlsx", b"data")])


class TestOrderBatchStateMachine(unittest.TestCase):

    def setUp(self):
        self.log = InMemorySendLog()
        self.machine = OrderBatchStateMachine(self.log, DuplicateCheckSettings())
        self.transport = InMemoryTransport()

    def test_pending_to_sent(self):
        batch = _batch()
        outcome = self.machine.send(batch, self.transport, _message(batch), now=NOW)

        self.assertEqual(batch.state, BatchState.SENT)
        self.assertEqual(len(self.transport.sent), 1)
        self.assertEqual(len(self.log.all()), 1)
        self.assertEqual(outcome.record.order_count, 2)
        self.assertEqual(outcome.record.total_amount, Decimal("2000"))
        self.assertEqual(outcome.record.recipient_addresses, ["서울시 중구 1"])
        self.assertTrue(all(r.status == "completed" for r in batch.records))

    def test_missing_email_blocks_send(self):
        batch = _batch(email="")
        with self.assertRaises(ValidationError):
            self.machine.send(batch, self.transport, _message(batch), now=NOW)
        self.assertEqual(batch.state, BatchState.PENDING)
        self.assertEqual(self.log.all(), [])
        self.assertEqual(self.transport.sent, [])

    def test_resend_requires_reason(self):
        batch = _batch()
        self.machine.send(batch, self.transport, _message(batch), now=NOW)

        with self.assertRaises(ValidationError):
            self.machine.send(batch, self.transport, _message(batch), now=NOW)
        self.assertEqual(len(self.log.all()), 1)

        outcome = self.machine.send(batch, self.transport, _message(batch), reason="수량 정정", now=NOW)
        self.assertEqual(outcome.record.reason, "수량 정정")
        self.assertEqual(batch.state, BatchState.SENT)
        self.assertEqual(len(self.log.all()), 2)

    def test_duplicate_addresses_require_reason(self):
        self.log.append(SendRecord(manufacturer_id="1", sent_at=NOW - datetime.timedelta(days=5),
                                   recipient_addresses=["서울시 중구 1"]))
        batch = _batch()

        with self.assertRaises(ValidationError) as ctx:
            self.machine.send(batch, self.transport, _message(batch), now=NOW)
        self.assertTrue(ctx.exception.report.has_duplicate)
        self.assertEqual(batch.state, BatchState.PENDING)

        outcome = self.machine.send(batch, self.transport, _message(batch), reason="  재주문  ", now=NOW)
        self.assertEqual(outcome.record.reason, "재주문")
        self.assertTrue(outcome.duplicate.has_duplicate)

    def test_disabled_duplicate_check_never_blocks(self):
        self.log.append(SendRecord(manufacturer_id="1", sent_at=NOW - datetime.timedelta(days=1),
                                   recipient_addresses=["서울시 중구 1"]))
        machine = OrderBatchStateMachine(self.log, DuplicateCheckSettings(enabled=False))
        batch = _batch()
        outcome = machine.send(batch, self.transport, _message(batch), now=NOW)
        self.assertIsNone(outcome.duplicate)

    def test_transport_failure_moves_to_error(self):
        batch = _batch()
        with self.assertRaises(TransportError):
            self.machine.send(batch, FailingTransport(), _message(batch), timeout=5, now=NOW)

        self.assertEqual(batch.state, BatchState.ERROR)
        self.assertIn("timed out", batch.last_error)
        self.assertEqual(self.log.all(), [])

        self.machine.send(batch, self.transport, _message(batch), now=NOW)
        self.assertEqual(batch.state, BatchState.SENT)
        self.assertIsNone(batch.last_error)

    def test_failed_resend_stays_sent(self):
        batch = _batch()
        self.machine.send(batch, self.transport, _message(batch), now=NOW)
        with self.assertRaises(TransportError):
            self.machine.send(batch, FailingTransport(), _message(batch), reason="재발송", now=NOW)
        self.assertEqual(batch.state, BatchState.SENT)
        self.assertIsNotNone(batch.last_error)

    def test_illegal_transition(self):
        batch = _batch()
        batch.state = BatchState.SENT
        with self.assertRaises(ValidationError):
            self.machine.transition(batch, BatchState.PENDING)
        with self.assertRaises(ValidationError):
            self.machine.mark_error(batch, "x")


class TestBulkSender(unittest.TestCase):

    def setUp(self):
        self.log = InMemorySendLog()
        self.machine = OrderBatchStateMachine(self.log, DuplicateCheckSettings(enabled=False))

    def _items(self, *batches):
        return [BulkSendItem(batch=b, message=_message(b)) for b in batches]

    def test_counts_each_outcome(self):
        transport = InMemoryTransport()
        items = self._items(_batch("1"), _batch("2", email=""), _batch("3", n=0))
        summary = BulkSender(self.machine, transport).run(items)

        self.assertEqual((summary.success, summary.failed, summary.skipped), (1, 0, 2))
        self.assertIn("2", summary.errors)
        self.assertFalse(summary.cancelled)

    def test_failure_does_not_stop_the_rest(self):
        summary = BulkSender(self.machine, FailingTransport()).run(self._items(_batch("1"), _batch("2")))
        self.assertEqual(summary.failed, 2)
        self.assertEqual(sorted(summary.errors), ["1", "2"])

    def test_cancel_between_batches(self):
        token = CancelToken()

        class CancellingTransport(InMemoryTransport):
            def send(self, message, timeout):
                super().send(message, timeout)
                token.cancel()

        transport = CancellingTransport()
        summary = BulkSender(self.machine, transport).run(
            self._items(_batch("1"), _batch("2"), _batch("3")), cancel_token=token
        )

        self.assertTrue(summary.cancelled)
        self.assertEqual(summary.success, 1)
        self.assertEqual(summary.remaining, 2)
        self.assertEqual(len(transport.sent), 1)


if __name__ == "__main__":
    unittest.main()
