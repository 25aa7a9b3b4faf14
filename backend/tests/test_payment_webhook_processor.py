from __future__ import annotations

import pytest

from app.errors import MissingExternalReferenceError, WhatsAppTransportError
from app.schemas_webhook import InboundEvent
from app.services.email import EmailSendError
from app.services.payment_webhook import PaymentWebhookProcessor, ProcessingOutcome
from app.services.webhook_queue import WebhookTaskQueue
from app.services.whatsapp.gateway import ConfirmationResult

CARD_CONFIRMED = {
    "event": "PAYMENT_CONFIRMED",
    "payment": {"status": "CONFIRMED", "billingType": "CREDIT_CARD", "externalReference": "abc123"},
}
PIX_RECEIVED = {
    "event": "PAYMENT_RECEIVED",
    "payment": {"status": "RECEIVED", "billingType": "PIX", "externalReference": "xyz"},
}
PIX_OVERDUE = {
    "event": "PAYMENT_OVERDUE",
    "payment": {"status": "OVERDUE", "billingType": "PIX", "externalReference": "xyz"},
}


class RecordingEmailSender:
    def __init__(self, error=None) -> None:
        self.sent = []
        self.error = error

    async def send(self, booking):
        self.sent.append(booking.get("email"))
        if self.error is not None:
            raise self.error
        return {"MessageId": "m-1"}


@pytest.mark.anyio
async def test_card_payment_confirmed_marks_paid_and_notifies_once(booking_store, fake_gateway):
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)

    outcome = await processor.process(InboundEvent.from_payload(CARD_CONFIRMED))

    assert outcome is ProcessingOutcome.NOTIFIED
    booking = booking_store.bookings["abc123"]
    assert booking["status"] == "paid"
    assert booking["paid_at"] is not None
    assert booking["notification_sent"] is True
    assert booking["notification_recipient"] == "5511999998888"

    assert len(fake_gateway.sent) == 1
    sent_id, sent_booking = fake_gateway.sent[0]
    assert sent_id == "abc123"
    assert sent_booking["status"] == "paid"
    assert booking_store.call_names() == ["get_booking", "mark_paid", "mark_notification_sent"]


@pytest.mark.anyio
async def test_pix_received_follows_accept_path(booking_store, fake_gateway):
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)

    outcome = await processor.process(InboundEvent.from_payload(PIX_RECEIVED))

    assert outcome is ProcessingOutcome.NOTIFIED
    assert booking_store.bookings["xyz"]["status"] == "paid"
    assert booking_store.bookings["xyz"]["notification_sent"] is True
    assert [s[0] for s in fake_gateway.sent] == ["xyz"]


@pytest.mark.anyio
async def test_irrelevant_event_touches_nothing(booking_store, fake_gateway):
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)

    outcome = await processor.process(InboundEvent.from_payload(PIX_OVERDUE))

    assert outcome is ProcessingOutcome.IGNORED
    assert booking_store.calls == []
    assert fake_gateway.sent == []


@pytest.mark.anyio
async def test_absent_booking_completes_without_update_or_notification(booking_store, fake_gateway):
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)
    payload = {**CARD_CONFIRMED, "payment": {**CARD_CONFIRMED["payment"], "externalReference": "missing"}}

    outcome = await processor.process(InboundEvent.from_payload(payload))

    assert outcome is ProcessingOutcome.BOOKING_NOT_FOUND
    assert booking_store.call_names() == ["get_booking"]
    assert fake_gateway.sent == []


@pytest.mark.anyio
async def test_absent_booking_is_not_retried_by_queue(booking_store, fake_gateway):
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)
    queue = WebhookTaskQueue(processor, max_retries=3, retry_delay_ms=0)
    payload = {**CARD_CONFIRMED, "payment": {**CARD_CONFIRMED["payment"], "externalReference": "missing"}}

    queue.enqueue(InboundEvent.from_payload(payload))
    await queue.join()

    assert booking_store.call_names() == ["get_booking"]
    assert queue.processed == 1
    assert queue.dropped == 0


@pytest.mark.anyio
async def test_already_notified_booking_is_not_sent_again(booking_store, fake_gateway):
    booking_store.bookings["abc123"].update({"status": "paid", "notification_sent": True})
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)

    outcome = await processor.process(InboundEvent.from_payload(CARD_CONFIRMED))

    assert outcome is ProcessingOutcome.ALREADY_NOTIFIED
    assert fake_gateway.sent == []
    assert booking_store.bookings["abc123"]["status"] == "paid"


@pytest.mark.anyio
async def test_same_event_twice_sends_single_notification(booking_store, fake_gateway):
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)
    queue = WebhookTaskQueue(processor, max_retries=3, retry_delay_ms=0)

    queue.enqueue(InboundEvent.from_payload(CARD_CONFIRMED))
    queue.enqueue(InboundEvent.from_payload(CARD_CONFIRMED))
    await queue.join()

    assert len(fake_gateway.sent) == 1
    assert queue.processed == 2
    assert queue.dropped == 0
    assert booking_store.call_names().count("mark_paid") == 2
    assert booking_store.call_names().count("mark_notification_sent") == 1


@pytest.mark.anyio
async def test_missing_reference_never_reads_store_and_is_retried_then_dropped(booking_store, fake_gateway):
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)
    attempts = []

    async def counting(event):
        attempts.append(event)
        return await processor.process(event)

    queue = WebhookTaskQueue(counting, max_retries=2, retry_delay_ms=0)
    payload = {"event": "PAYMENT_CONFIRMED", "payment": {"status": "CONFIRMED", "billingType": "CREDIT_CARD"}}

    with pytest.raises(MissingExternalReferenceError):
        await processor.process(InboundEvent.from_payload(payload))

    queue.enqueue(InboundEvent.from_payload(payload))
    await queue.join()

    assert len(attempts) == 3
    assert queue.dropped == 1
    assert booking_store.calls == []
    assert fake_gateway.sent == []


@pytest.mark.anyio
async def test_business_skip_keeps_booking_paid_and_unflagged(booking_store, fake_gateway):
    fake_gateway.result = ConfirmationResult(sent=False, reason="whatsapp_not_connected")
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)

    outcome = await processor.process(InboundEvent.from_payload(CARD_CONFIRMED))

    assert outcome is ProcessingOutcome.NOTIFICATION_SKIPPED
    booking = booking_store.bookings["abc123"]
    assert booking["status"] == "paid"
    assert booking.get("notification_sent") is not True
    assert "mark_notification_sent" not in booking_store.call_names()


@pytest.mark.anyio
async def test_transport_error_propagates_and_queue_retries_until_success(booking_store, fake_gateway):
    calls = {"n": 0}
    ok = fake_gateway.result

    async def flaky_send(booking_id, booking, config=None):
        calls["n"] += 1
        fake_gateway.sent.append((booking_id, dict(booking)))
        if calls["n"] == 1:
            raise WhatsAppTransportError("WhatsApp API unreachable")
        return ok

    fake_gateway.send_confirmation = flaky_send
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)

    with pytest.raises(WhatsAppTransportError):
        await processor.process(InboundEvent.from_payload(CARD_CONFIRMED))

    queue = WebhookTaskQueue(processor, max_retries=3, retry_delay_ms=0)
    queue.enqueue(InboundEvent.from_payload(CARD_CONFIRMED))
    await queue.join()

    assert booking_store.bookings["abc123"]["notification_sent"] is True
    assert queue.processed == 1


@pytest.mark.anyio
async def test_store_failure_is_retried(booking_store, fake_gateway):
    booking_store.fail_get = 2
    processor = PaymentWebhookProcessor(booking_store, fake_gateway)
    queue = WebhookTaskQueue(processor, max_retries=3, retry_delay_ms=0)

    queue.enqueue(InboundEvent.from_payload(CARD_CONFIRMED))
    await queue.join()

    assert booking_store.call_names().count("get_booking") == 3
    assert booking_store.bookings["abc123"]["status"] == "paid"
    assert queue.dropped == 0


@pytest.mark.anyio
async def test_confirmation_email_sent_once_when_enabled(booking_store, fake_gateway):
    email = RecordingEmailSender()
    processor = PaymentWebhookProcessor(booking_store, fake_gateway, email_sender=email)

    await processor.process(InboundEvent.from_payload(CARD_CONFIRMED))
    await processor.process(InboundEvent.from_payload(CARD_CONFIRMED))

    assert email.sent == ["maria@example.com"]
    assert booking_store.bookings["abc123"]["confirmation_email_sent"] is True


@pytest.mark.anyio
async def test_confirmation_email_failure_is_not_a_task_failure(booking_store, fake_gateway):
    email = RecordingEmailSender(error=EmailSendError("SES down"))
    processor = PaymentWebhookProcessor(booking_store, fake_gateway, email_sender=email)

    outcome = await processor.process(InboundEvent.from_payload(CARD_CONFIRMED))

    assert outcome is ProcessingOutcome.NOTIFIED
    assert booking_store.bookings["abc123"].get("confirmation_email_sent") is not True


@pytest.mark.anyio
async def test_confirmation_email_skipped_without_address(booking_store, fake_gateway):
    booking_store.bookings["abc123"]["email"] = ""
    email = RecordingEmailSender()
    processor = PaymentWebhookProcessor(booking_store, fake_gateway, email_sender=email)

    await processor.process(InboundEvent.from_payload(CARD_CONFIRMED))

    assert email.sent == []
