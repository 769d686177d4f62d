from __future__ import annotations

from types import SimpleNamespace

import pytest

from payments import stripe_api


@pytest.fixture
def stripe_stub(monkeypatch):
    """PaymentIntent calls answered locally; set ``cancel_error``/``capture_error`` to fail."""
    state: dict[str, object] = {
        "capture_calls": [],
        "cancel_calls": [],
        "capture_error": None,
        "cancel_error": None,
    }

    def fake_retrieve(intent_id):
        return SimpleNamespace(id=intent_id, status="requires_capture")

    def fake_capture(intent_id, **kwargs):
        state["capture_calls"].append({"id": intent_id, **kwargs})
        if state["capture_error"] is not None:
            raise state["capture_error"]
        return SimpleNamespace(id=intent_id, status="succeeded", latest_charge="ch_closeout")

    def fake_cancel(intent_id, **kwargs):
        state["cancel_calls"].append({"id": intent_id, **kwargs})
        if state["cancel_error"] is not None:
            raise state["cancel_error"]
        return SimpleNamespace(id=intent_id, status="canceled")

    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "retrieve", fake_retrieve)
    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "capture", fake_capture)
    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "cancel", fake_cancel)
    return state
