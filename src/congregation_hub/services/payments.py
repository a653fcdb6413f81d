"""
Event checkout through Stripe Connect.

Ticket revenue is transferred to the church's connected account; the
optional tip is kept by the platform as the application fee. All amounts
are integer cents.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import stripe

from .. import config
from ..core.logger import get_logger
from ..errors import ConfigurationError, PaymentError, ValidationError
from .events import EventService
from .repository import TableRepository

logger = get_logger(__name__)

TIP_PERCENTAGES = (0, 0.03, 0.05, 0.08)
DEFAULT_TIP_PERCENTAGE = 0.03
MINIMUM_TIP_CENTS = 100


@dataclass
class CheckoutQuote:
    unit_price: int
    quantity: int
    subtotal: int
    tip: int
    total: int
    tip_percentage: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_tip(subtotal: int, tip_percentage: float = DEFAULT_TIP_PERCENTAGE, custom_tip: Optional[int] = None) -> int:
    """Preset tips round to whole cents with a $1.00 floor; a custom tip wins."""
    if custom_tip is not None:
        if custom_tip < 0:
            raise ValidationError("Tip cannot be negative")
        return int(custom_tip)
    if tip_percentage not in TIP_PERCENTAGES:
        raise ValidationError(f"Tip percentage must be one of {TIP_PERCENTAGES}")
    if tip_percentage <= 0:
        return 0
    return max(round(subtotal * tip_percentage), MINIMUM_TIP_CENTS)


def build_quote(
    unit_price: int,
    quantity: int = 1,
    tip_percentage: float = DEFAULT_TIP_PERCENTAGE,
    custom_tip: Optional[int] = None,
) -> CheckoutQuote:
    if unit_price < 0:
        raise ValidationError("Ticket price cannot be negative")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    subtotal = unit_price * quantity
    tip = calculate_tip(subtotal, tip_percentage, custom_tip)
    return CheckoutQuote(
        unit_price=unit_price,
        quantity=quantity,
        subtotal=subtotal,
        tip=tip,
        total=subtotal + tip,
        tip_percentage=None if custom_tip is not None else tip_percentage,
    )


class PaymentService:
    def __init__(self, client=None, event_service: Optional[EventService] = None, api_key: Optional[str] = None):
        self.event_service = event_service or EventService(client)
        self.churches = TableRepository("churches", client)
        self.api_key = api_key or config.STRIPE_SECRET_KEY

    def _stripe(self):
        if not self.api_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        stripe.api_key = self.api_key
        return stripe

    def quote(self, event_id: str, quantity: int = 1, tip_percentage: float = DEFAULT_TIP_PERCENTAGE, custom_tip=None) -> CheckoutQuote:
        event = self.event_service.require_event(event_id)
        return build_quote(int(event.get("ticket_price_cents") or 0), quantity, tip_percentage, custom_tip)

    def create_event_payment_intent(
        self,
        event_id: str,
        amount: int,
        tip_amount: int = 0,
        quantity: int = 1,
        ticket_type: str = "general",
        church_id: Optional[str] = None,
        user: Optional[Dict[str, Any]] = None,
        registration_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Creates a pending registration, then a PaymentIntent linked to it.

        Returns ``client_secret``, ``id`` and ``registration_id``. The
        registration is confirmed later by the webhook.
        """
        if not event_id:
            raise ValidationError("Missing event id")
        if not isinstance(amount, int) or amount < 0:
            raise ValidationError("Invalid amount")
        if not isinstance(tip_amount, int) or tip_amount < 0:
            tip_amount = 0

        user = user or {}
        registration_data = registration_data or {}
        church_id = church_id or config.DEFAULT_CHURCH_ID

        event = self.event_service.require_event(event_id)
        self.event_service.check_capacity(event, quantity)

        church = self.churches.get(church_id) or {}
        account_id = church.get("stripe_account_id")
        if not account_id:
            raise ValidationError("Church is not connected to Stripe.")

        client = self._stripe()
        total = amount + tip_amount

        registration = self.event_service.create_pending_registration(
            {
                "event_id": event_id,
                "user_id": user.get("id"),
                "ticket_type": ticket_type,
                "quantity": quantity,
                "amount_paid": total,
                "tip_amount": tip_amount,
                "currency": "usd",
                "user_name": registration_data.get("name") or user.get("name") or "Guest",
                "user_email": registration_data.get("email") or user.get("email"),
                "answers": registration_data.get("answers") or {},
            }
        )

        try:
            intent = client.PaymentIntent.create(
                amount=total,
                currency="usd",
                automatic_payment_methods={"enabled": True},
                application_fee_amount=tip_amount,
                transfer_data={"destination": account_id},
                on_behalf_of=account_id,
                description=f"Event Ticket: {event_id} ({quantity}x {ticket_type})",
                metadata={
                    "type": "event_registration",
                    "event_id": event_id,
                    "registration_id": registration["id"],
                    "user_id": user.get("id") or "guest",
                    "church_id": church_id,
                    "ticket_type": ticket_type,
                },
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Payment intent for event {event_id} failed: {e}")
            self.event_service.update_registration(registration["id"], {"status": "cancelled", "payment_status": "failed"})
            raise PaymentError(getattr(e, "user_message", None) or str(e)) from e

        self.event_service.update_registration(registration["id"], {"stripe_payment_intent_id": intent["id"]})
        logger.info(f"💳 Payment intent {intent['id']} for registration {registration['id']} ({total} cents)")
        return {"client_secret": intent["client_secret"], "id": intent["id"], "registration_id": registration["id"]}

    def handle_webhook(self, payload: bytes, signature: str, secret: Optional[str] = None) -> Dict[str, Any]:
        secret = secret or config.STRIPE_WEBHOOK_SECRET
        if not secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"⚠️ Rejected webhook: {e}")
            raise ValidationError("Invalid webhook signature") from e
        return self.process_event(event)

    def process_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_type = event["type"]
        intent = event["data"]["object"]
        metadata = intent.get("metadata") or {}

        if metadata.get("type") != "event_registration" or not metadata.get("registration_id"):
            logger.debug(f"Ignoring webhook {event_type}")
            return {"received": True, "handled": False}

        registration_id = metadata["registration_id"]
        if event_type == "payment_intent.succeeded":
            self.event_service.update_registration(
                registration_id, {"status": "confirmed", "payment_status": "paid", "stripe_payment_intent_id": intent.get("id")}
            )
            logger.info(f"✅ Registration {registration_id} paid")
        elif event_type == "payment_intent.payment_failed":
            # Releases the held seats; a later success on the same intent re-confirms.
            self.event_service.update_registration(registration_id, {"status": "cancelled", "payment_status": "failed"})
            logger.warning(f"❌ Payment failed for registration {registration_id}")
        else:
            return {"received": True, "handled": False}
        return {"received": True, "handled": True}
