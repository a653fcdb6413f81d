"""
Events and their registrations.
"""

from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from ..core.utils import utc_now_iso
from ..errors import ValidationError
from .repository import TableRepository

logger = get_logger(__name__)

REGISTRATION_STATUSES = ("pending_payment", "confirmed", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "free")
# Registrations that hold seats
ACTIVE_STATUSES = ("pending_payment", "confirmed")


class EventService:
    def __init__(self, client=None):
        self.events = TableRepository("events", client)
        self.registrations = TableRepository("registrations", client)

    # --- events ---

    def list_events(self, church_id: Optional[str] = None, upcoming_only: bool = True) -> List[Dict[str, Any]]:
        filters = {"church_id": church_id} if church_id else None
        events = self.events.list(filters=filters, order_by="starts_at")
        if upcoming_only:
            now = utc_now_iso()
            events = [e for e in events if (e.get("starts_at") or "") >= now]
        return events

    def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        return self.events.get(event_id)

    def require_event(self, event_id: str) -> Dict[str, Any]:
        return self.events.require(event_id)

    def create_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not (data.get("title") or "").strip():
            raise ValidationError("Event title is required")
        self._validate_numbers(data)
        event = self.events.create({"ticket_price_cents": 0, "registration_open": True, **data})
        logger.info(f"📅 Created event {event['id']} ({event['title']})")
        return event

    def update_event(self, event_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        self._validate_numbers(updates)
        return self.events.update(event_id, updates)

    def delete_event(self, event_id: str) -> None:
        self.events.delete(event_id)
        logger.info(f"🗑️ Deleted event {event_id}")

    @staticmethod
    def _validate_numbers(data: Dict[str, Any]) -> None:
        price = data.get("ticket_price_cents")
        if price is not None and (not isinstance(price, int) or price < 0):
            raise ValidationError("ticket_price_cents must be a non-negative integer")
        capacity = data.get("capacity")
        if capacity is not None and (not isinstance(capacity, int) or capacity < 1):
            raise ValidationError("capacity must be a positive integer")

    # --- registrations ---

    def list_registrations(self, event_id: str, include_cancelled: bool = False) -> List[Dict[str, Any]]:
        rows = self.registrations.list(filters={"event_id": event_id}, order_by="created_at")
        if not include_cancelled:
            rows = [r for r in rows if r.get("status") != "cancelled"]
        return rows

    def seats_taken(self, event_id: str) -> int:
        return sum(
            int(r.get("quantity") or 1)
            for r in self.registrations.list(filters={"event_id": event_id})
            if r.get("status") in ACTIVE_STATUSES
        )

    def check_capacity(self, event: Dict[str, Any], quantity: int) -> None:
        """Raises when ``quantity`` more seats would exceed the event's capacity."""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if not event.get("registration_open", True):
            raise ValidationError("Registration is closed for this event")
        capacity = event.get("capacity")
        if capacity is None:
            return
        remaining = capacity - self.seats_taken(event["id"])
        if quantity > remaining:
            raise ValidationError(f"Only {max(remaining, 0)} seats left for this event")

    def register_free(
        self,
        event_id: str,
        user: Dict[str, Any],
        quantity: int = 1,
        ticket_type: str = "general",
        answers: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        event = self.require_event(event_id)
        if event.get("ticket_price_cents"):
            raise ValidationError("This event requires payment")
        self.check_capacity(event, quantity)

        registration = self.registrations.create(
            {
                "event_id": event_id,
                "user_id": user.get("id"),
                "status": "confirmed",
                "payment_status": "free",
                "ticket_type": ticket_type,
                "quantity": quantity,
                "amount_paid": 0,
                "tip_amount": 0,
                "currency": "usd",
                "user_name": user.get("name") or "Guest",
                "user_email": user.get("email"),
                "answers": answers or {},
            }
        )
        logger.info(f"🎟️ Registered {registration['user_name']} for event {event_id}")
        return registration

    def create_pending_registration(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self.registrations.create({**record, "status": "pending_payment", "payment_status": "pending"})

    def get_registration(self, registration_id: str) -> Optional[Dict[str, Any]]:
        return self.registrations.get(registration_id)

    def update_registration(self, registration_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.registrations.update(registration_id, updates)

    def cancel_registration(self, registration_id: str) -> Dict[str, Any]:
        self.registrations.require(registration_id)
        return self.registrations.update(registration_id, {"status": "cancelled"})
