"""
Event, registration and Stripe checkout tests.
"""

from unittest.mock import patch

import pytest
import stripe

from congregation_hub.errors import ConfigurationError, PaymentError, ValidationError
from congregation_hub.services import EventService, PaymentService, build_quote
from congregation_hub.services.payments import TIP_PERCENTAGES, calculate_tip

FUTURE = "2099-06-01T18:00:00+00:00"
PAST = "2001-06-01T18:00:00+00:00"


@pytest.fixture
def events(seeded_db):
    return EventService(seeded_db)


@pytest.fixture
def payments(seeded_db, events):
    return PaymentService(seeded_db, events, api_key="sk_test_123")


@pytest.fixture
def paid_event(events):
    return events.create_event({"title": "Marriage Retreat", "starts_at": FUTURE, "ticket_price_cents": 2500, "capacity": 4})


@pytest.fixture
def free_event(events):
    return events.create_event({"title": "Picnic", "starts_at": FUTURE, "capacity": 2})


USER = {"id": "m1", "name": "Ruth Adams", "email": "ruth@example.org"}


class TestQuotes:
    def test_default_tip_is_three_percent_with_dollar_floor(self):
        quote = build_quote(2500, quantity=2)
        # 3% of $50.00 is $1.50
        assert (quote.subtotal, quote.tip, quote.total) == (5000, 150, 5150)

        small = build_quote(1000)
        # 3% of $10.00 is $0.30, raised to the $1.00 minimum
        assert small.tip == 100

    def test_zero_percent_means_no_tip(self):
        assert build_quote(1000, tip_percentage=0).tip == 0

    def test_custom_tip_overrides_preset(self):
        quote = build_quote(1000, tip_percentage=0.08, custom_tip=25)
        assert quote.tip == 25
        assert quote.total == 1025
        assert quote.tip_percentage is None

    def test_rejects_unlisted_percentage_and_bad_amounts(self):
        assert TIP_PERCENTAGES == (0, 0.03, 0.05, 0.08)
        with pytest.raises(ValidationError):
            calculate_tip(1000, 0.5)
        with pytest.raises(ValidationError):
            build_quote(-1)
        with pytest.raises(ValidationError):
            build_quote(1000, quantity=0)
        with pytest.raises(ValidationError):
            calculate_tip(1000, custom_tip=-5)


class TestEvents:
    def test_upcoming_only(self, events):
        events.create_event({"title": "Old", "starts_at": PAST})
        upcoming = events.create_event({"title": "New", "starts_at": FUTURE})

        assert [e["id"] for e in events.list_events()] == [upcoming["id"]]
        assert len(events.list_events(upcoming_only=False)) == 2

    def test_create_validates(self, events):
        with pytest.raises(ValidationError):
            events.create_event({"title": ""})
        with pytest.raises(ValidationError):
            events.create_event({"title": "X", "ticket_price_cents": -100})
        with pytest.raises(ValidationError):
            events.create_event({"title": "X", "capacity": 0})

    def test_free_registration(self, events, free_event):
        registration = events.register_free(free_event["id"], USER)

        assert registration["status"] == "confirmed"
        assert registration["payment_status"] == "free"
        assert registration["user_name"] == "Ruth Adams"
        assert events.seats_taken(free_event["id"]) == 1

    def test_free_registration_refused_for_paid_event(self, events, paid_event):
        with pytest.raises(ValidationError, match="payment"):
            events.register_free(paid_event["id"], USER)

    def test_capacity_counts_pending_and_confirmed(self, events, free_event):
        events.register_free(free_event["id"], USER)
        events.create_pending_registration({"event_id": free_event["id"], "quantity": 1})

        with pytest.raises(ValidationError, match="0 seats"):
            events.register_free(free_event["id"], USER)

    def test_cancelled_registrations_free_seats(self, events, free_event):
        registration = events.register_free(free_event["id"], USER, quantity=2)
        events.cancel_registration(registration["id"])

        assert events.seats_taken(free_event["id"]) == 0
        assert events.list_registrations(free_event["id"]) == []
        assert len(events.list_registrations(free_event["id"], include_cancelled=True)) == 1


class TestPaymentIntent:
    def test_creates_pending_registration_then_intent(self, payments, paid_event, seeded_db):
        intent = {"id": "pi_123", "client_secret": "pi_123_secret"}
        with patch("stripe.PaymentIntent.create", return_value=intent) as create:
            result = payments.create_event_payment_intent(
                paid_event["id"], amount=5000, tip_amount=150, quantity=2, user=USER, registration_data={"answers": {"diet": "none"}}
            )

        registration = seeded_db.rows("registrations")[0]
        assert result == {"client_secret": "pi_123_secret", "id": "pi_123", "registration_id": registration["id"]}
        assert registration["status"] == "pending_payment"
        assert registration["payment_status"] == "pending"
        assert registration["amount_paid"] == 5150
        assert registration["stripe_payment_intent_id"] == "pi_123"
        assert registration["answers"] == {"diet": "none"}

        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 5150
        assert kwargs["application_fee_amount"] == 150
        assert kwargs["transfer_data"] == {"destination": "acct_123"}
        assert kwargs["on_behalf_of"] == "acct_123"
        assert kwargs["metadata"]["type"] == "event_registration"
        assert kwargs["metadata"]["registration_id"] == registration["id"]
        assert kwargs["metadata"]["church_id"] == "default_church"

    def test_rejects_invalid_amount_and_missing_event(self, payments, paid_event):
        with pytest.raises(ValidationError):
            payments.create_event_payment_intent(paid_event["id"], amount=-1)
        with pytest.raises(ValidationError):
            payments.create_event_payment_intent("", amount=100)

    def test_requires_connected_church(self, payments, paid_event, seeded_db):
        seeded_db.rows("churches")[0].pop("stripe_account_id")
        with pytest.raises(ValidationError, match="Stripe"):
            payments.create_event_payment_intent(paid_event["id"], amount=2500)

    def test_requires_api_key(self, seeded_db, events, paid_event):
        service = PaymentService(seeded_db, events)
        service.api_key = None
        with pytest.raises(ConfigurationError):
            service.create_event_payment_intent(paid_event["id"], amount=2500)

    def test_gateway_error_releases_seats(self, payments, events, paid_event, seeded_db):
        with patch("stripe.PaymentIntent.create", side_effect=stripe.StripeError("card declined")):
            for _ in range(2):
                with pytest.raises(PaymentError):
                    payments.create_event_payment_intent(paid_event["id"], amount=5000, quantity=2)

        assert [(r["status"], r["payment_status"]) for r in seeded_db.rows("registrations")] == [
            ("cancelled", "failed"),
            ("cancelled", "failed"),
        ]
        assert events.seats_taken(paid_event["id"]) == 0

        intent = {"id": "pi_ok", "client_secret": "pi_ok_secret"}
        with patch("stripe.PaymentIntent.create", return_value=intent):
            result = payments.create_event_payment_intent(paid_event["id"], amount=10000, quantity=4)
        assert result["id"] == "pi_ok"


class TestWebhook:
    def event(self, event_type, registration_id, kind="event_registration"):
        return {
            "type": event_type,
            "data": {"object": {"id": "pi_1", "metadata": {"type": kind, "registration_id": registration_id}}},
        }

    def test_success_confirms_registration(self, payments, events, paid_event, seeded_db):
        registration = events.create_pending_registration({"event_id": paid_event["id"], "quantity": 1})

        with patch("stripe.Webhook.construct_event", return_value=self.event("payment_intent.succeeded", registration["id"])):
            result = payments.handle_webhook(b"{}", "sig", secret="whsec_test")

        assert result == {"received": True, "handled": True}
        stored = seeded_db.rows("registrations")[0]
        assert stored["status"] == "confirmed"
        assert stored["payment_status"] == "paid"

    def test_failure_releases_the_held_seats(self, payments, events, paid_event, seeded_db):
        registration = events.create_pending_registration({"event_id": paid_event["id"], "quantity": 3})
        assert events.seats_taken(paid_event["id"]) == 3

        payments.process_event(self.event("payment_intent.payment_failed", registration["id"]))

        stored = seeded_db.rows("registrations")[0]
        assert stored["payment_status"] == "failed"
        assert stored["status"] == "cancelled"
        assert events.seats_taken(paid_event["id"]) == 0

    def test_other_events_are_ignored(self, payments):
        assert payments.process_event(self.event("payment_intent.succeeded", "r1", kind="donation")) == {
            "received": True,
            "handled": False,
        }
        assert payments.process_event(self.event("charge.refunded", "r1"))["handled"] is False

    def test_bad_signature(self, payments):
        error = stripe.SignatureVerificationError("bad signature", "sig")
        with patch("stripe.Webhook.construct_event", side_effect=error):
            with pytest.raises(ValidationError):
                payments.handle_webhook(b"{}", "sig", secret="whsec_test")

    def test_missing_secret(self, payments):
        with patch("congregation_hub.config.STRIPE_WEBHOOK_SECRET", None):
            with pytest.raises(ConfigurationError):
                payments.handle_webhook(b"{}", "sig")
