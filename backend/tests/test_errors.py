from __future__ import annotations

from dataclasses import fields

from app.errors import AppError, MissingExternalReferenceError, WebhookProcessingError


def test_app_error_envelope():
    err = AppError(401, "webhook_unauthorized", "Invalid webhook access token")

    assert err.to_dict() == {
        "error": {"code": "webhook_unauthorized", "message": "Invalid webhook access token", "details": {}}
    }
    assert [f.name for f in fields(AppError)] == ["status_code", "code", "message", "details"]


def test_missing_reference_error_names_the_event():
    err = MissingExternalReferenceError("PAYMENT_CONFIRMED", "pay_1")

    assert isinstance(err, WebhookProcessingError)
    assert "PAYMENT_CONFIRMED" in str(err)
    assert err.payment_id == "pay_1"
