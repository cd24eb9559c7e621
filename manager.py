import logging
from datetime import datetime

from auth import AuthManager
from errors import AuthorizationError, ConflictError, NotFoundError, PersistenceError, ValidationError
from models import BOOKING_STATUSES, Booking, Event
from notifications import NotificationManager
from storage import StorageManager
from utils import (check_event_permission, format_currency, format_date, generate_booking_reference,
                   generate_csv, get_event_status, is_past_date, now_iso, parse_date, search_objects)

logger = logging.getLogger(__name__)

EVENT_FIELDS = ("title", "description", "date", "time", "location", "capacity", "price")


def _to_int(value, label) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a whole number")


def _to_float(value, label) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number")


class EventManager:
    def __init__(self, storage: StorageManager, auth: AuthManager, notifications: NotificationManager, clock=datetime.now):
        """Initialize EventManager with storage, the session and notifications."""
        self.storage = storage
        self.auth = auth
        self.notifications = notifications
        self.clock = clock

    def load_events(self) -> list[Event]:
        """Organizers see their own events, participants see every event."""
        user = self.auth.require_login()
        events = self.storage.get_events()
        if self.auth.is_organizer():
            events = [e for e in events if e.organizer_id == user.id]
        return events

    def get_event(self, event_id: str) -> Event:
        """Retrieve an event by ID."""
        event = self.storage.get_event_by_id(event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    def validate_event(self, data: dict) -> dict:
        """Check the event form fields and return them normalized."""
        missing = [name for name in EVENT_FIELDS if data.get(name) is None or str(data.get(name)).strip() == ""]
        if missing:
            raise ValidationError(f"{', '.join(missing)} is required")

        cleaned = {name: str(data[name]).strip() for name in ("title", "description", "date", "time", "location")}
        cleaned["capacity"] = _to_int(data["capacity"], "Event capacity")
        cleaned["price"] = _to_float(data["price"], "Event price")

        if parse_date(f"{cleaned['date']} {cleaned['time']}") <= self.clock():
            raise ValidationError("Event date and time must be in the future")
        if cleaned["capacity"] <= 0:
            raise ValidationError("Event capacity must be greater than 0")
        if cleaned["price"] < 0:
            raise ValidationError("Event price cannot be negative")
        return cleaned

    def create_event(self, title, description, date, time, location, capacity, price, category=None) -> Event:
        """Create a new event owned by the logged-in organizer."""
        user = self.auth.require_role("organizer", "Only organizers can create events")
        fields = self.validate_event(dict(title=title, description=description, date=date, time=time,
                                          location=location, capacity=capacity, price=price))
        event = Event(**fields, category=category, organizer_id=user.id, organizer_name=user.name)
        if not self.storage.save_event(event):
            raise PersistenceError("Failed to save event")
        logger.info(f"Event {event.id} created by {user.id}: {event.display_details()}")
        self.notifications.event_created(event)
        return event

    def update_event(self, event_id: str, **changes) -> Event:
        """Edit an owned event; participants holding bookings are notified."""
        event = self.get_event(event_id)
        check_event_permission(event, self.auth.get_current_user())

        current = {name: getattr(event, name) for name in EVENT_FIELDS}
        current.update({k: v for k, v in changes.items() if k in EVENT_FIELDS and v is not None})
        fields = self.validate_event(current)
        if fields["capacity"] < event.bookings:
            raise ValidationError(f"Capacity cannot be lower than the {event.bookings} tickets already booked")

        for name, value in fields.items():
            setattr(event, name, value)
        if changes.get("category") is not None:
            event.category = changes["category"]
        event.updated_at = now_iso()
        if not self.storage.save_event(event):
            raise PersistenceError("Failed to save event")
        logger.info(f"Event {event_id} updated by {event.organizer_id}")

        bookings = self.storage.get_bookings_by_event(event_id)
        if bookings:
            self.notifications.event_updated(event, len(bookings))
        return event

    def delete_event(self, event_id: str) -> list[Booking]:
        """Delete an owned event and its bookings; returns the bookings that were removed."""
        event = self.get_event(event_id)
        check_event_permission(event, self.auth.get_current_user())
        bookings = self.storage.get_bookings_by_event(event_id)
        if not self.storage.delete_event(event_id):
            raise PersistenceError("Failed to delete event")
        logger.info(f"Event {event_id} deleted with {len(bookings)} booking(s)")
        if bookings:
            self.notifications.event_cancelled(event, bookings)
        return bookings

    def export_attendees(self, event_id: str):
        """CSV of an owned event's bookings."""
        event = self.get_event(event_id)
        check_event_permission(event, self.auth.get_current_user())
        return generate_csv(self.storage.get_bookings_by_event(event_id))

    @staticmethod
    def available_tickets(event: Event) -> int:
        return event.available_tickets

    def booking_quote(self, event_id: str, quantity) -> dict:
        """Price summary shown while choosing a ticket quantity."""
        event = self.get_event(event_id)
        quantity = max(_to_int(quantity, "Quantity"), 0)
        return {
            "ticketPrice": event.price,
            "quantity": quantity,
            "total": quantity * event.price,
            "availableTickets": event.available_tickets,
        }

    def event_status(self, event: Event) -> str:
        return get_event_status(event.starts_at, now=self.clock())

    def search_events(self, term: str) -> list[Event]:
        return search_objects(self.load_events(), term, ["title", "description", "location", "organizer_name"])

    def filter_events_by_status(self, status: str) -> list[Event]:
        events = self.load_events()
        if not status or status == "all":
            return events
        return [e for e in events if self.event_status(e) == status]

    def get_event_stats(self) -> dict:
        events = self.load_events()
        statuses = [self.event_status(e) for e in events]
        return {
            "totalEvents": len(events),
            "activeEvents": sum(1 for s in statuses if s in ("active", "upcoming")),
            "completedEvents": sum(1 for s in statuses if s == "completed"),
            "totalBookings": sum(e.bookings or 0 for e in events),
        }


class BookingManager:
    def __init__(self, storage: StorageManager, auth: AuthManager, notifications: NotificationManager, clock=datetime.now):
        self.storage = storage
        self.auth = auth
        self.notifications = notifications
        self.clock = clock

    def _scope(self, bookings: list[Booking]) -> list[Booking]:
        """Restrict bookings to what the current user may see."""
        user = self.auth.require_login()
        if self.auth.is_participant():
            return [b for b in bookings if b.user_id == user.id]
        owned = {e.id for e in self.storage.get_events_by_organizer(user.id)}
        return [b for b in bookings if b.event_id in owned]

    def visible_bookings(self) -> list[Booking]:
        return self._scope(self.storage.get_bookings())

    def _with_events(self, bookings: list[Booking]) -> list[tuple[Booking, Event]]:
        pairs = []
        for booking in bookings:
            event = self.storage.get_event_by_id(booking.event_id)
            if event is not None:  # bookings of deleted events are not shown
                pairs.append((booking, event))
        return pairs

    def load_bookings(self, status: str = "all") -> list[tuple[Booking, Event]]:
        """Visible bookings newest first, paired with their events."""
        bookings = self.visible_bookings()
        if status and status != "all":
            bookings = [b for b in bookings if b.status == status]
        bookings.sort(key=lambda b: parse_date(b.created_at) if b.created_at else datetime.min, reverse=True)
        return self._with_events(bookings)

    def _get_booking(self, booking_id) -> Booking:
        booking = self.storage.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def _get_event(self, event_id) -> Event:
        event = self.storage.get_event_by_id(event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    def create_booking(self, event_id: str, quantity, notes: str = "") -> Booking:
        """Book tickets for the logged-in participant; bookings are auto-confirmed."""
        user = self.auth.require_role("participant", "Only participants can book tickets")
        event = self._get_event(event_id)
        quantity = _to_int(quantity, "Quantity")
        available = event.available_tickets

        if available <= 0:
            raise ValidationError("Sorry, this event is fully booked")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")
        if quantity > available:
            raise ValidationError(f"Only {available} tickets available")
        if any(b.event_id == event.id and b.status != "cancelled" for b in self.storage.get_bookings_by_user(user.id)):
            raise ConflictError("You already have a booking for this event")

        booking = Booking(
            event_id=event.id,
            event_title=event.title,
            user_id=user.id,
            participant_name=user.name,
            participant_email=user.email,
            quantity=quantity,
            total_amount=quantity * event.price,
            notes=(notes or "").strip(),
            status="confirmed",
            booking_reference=generate_booking_reference(),
        )
        if not self.storage.save_booking(booking):
            raise PersistenceError("Failed to create booking")
        logger.info(f"Booking {booking.booking_reference} created for event {event.id} by {user.id}")

        self.notifications.booking_confirmation(booking)
        self.notifications.capacity_warning(self._get_event(event.id))
        return booking

    def update_booking_status(self, booking_id, new_status: str) -> Booking:
        """Organizer approval or rejection of a booking on one of their events."""
        booking = self._get_booking(booking_id)
        user = self.auth.require_login()
        event = self.storage.get_event_by_id(booking.event_id)
        if not self.auth.is_organizer() or event is None or event.organizer_id != user.id:
            raise AuthorizationError("You do not have permission to modify this booking")
        if new_status not in BOOKING_STATUSES:
            raise ValidationError(f"Status must be one of {', '.join(BOOKING_STATUSES)}")
        if new_status == "confirmed" and booking.status != "confirmed" and booking.quantity > event.available_tickets:
            raise ValidationError(f"Only {event.available_tickets} tickets available")

        if not self.storage.update_booking_status(booking_id, new_status):
            raise PersistenceError("Failed to update booking status")
        logger.info(f"Booking {booking_id} set to {new_status} by {user.id}")

        updated = self._get_booking(booking_id)
        self.notifications.booking_status_update(updated, event, new_status)
        if new_status == "confirmed":
            self.notifications.capacity_warning(self._get_event(event.id))
        return updated

    def cancel_booking(self, booking_id) -> Booking:
        """Cancel a booking for an event that has not happened yet."""
        booking = self._get_booking(booking_id)
        user = self.auth.require_login()
        event = self._get_event(booking.event_id)
        if self.auth.is_participant() and booking.user_id != user.id:
            raise AuthorizationError("You can only cancel your own bookings")
        if self.auth.is_organizer() and event.organizer_id != user.id:
            raise AuthorizationError("You do not have permission to modify this booking")
        if booking.status == "cancelled":
            raise ValidationError("Booking is already cancelled")
        if is_past_date(event.date, today=self.clock().date()):
            raise ValidationError("Cannot cancel booking for past events")

        if not self.storage.update_booking_status(booking_id, "cancelled"):
            raise PersistenceError("Failed to cancel booking")
        logger.info(f"Booking {booking_id} cancelled by {user.id}")

        updated = self._get_booking(booking_id)
        self.notifications.booking_cancellation(updated, event)
        return updated

    def _check_visible(self, booking: Booking, event: Event):
        user = self.auth.require_login()
        if booking.user_id != user.id and event.organizer_id != user.id:
            raise AuthorizationError("You do not have permission to view this booking")

    def get_booking_details(self, booking_id) -> dict:
        booking = self._get_booking(booking_id)
        event = self._get_event(booking.event_id)
        self._check_visible(booking, event)
        return {
            "booking": booking.to_dict(),
            "event": event.to_dict(),
            "summary": f"Booking {booking.booking_reference} for {event.title} - "
                       f"{booking.quantity} ticket(s) - {format_currency(booking.total_amount)}",
        }

    def download_ticket(self, booking_id) -> dict:
        """Ticket document for a booking, as a JSON-ready dict."""
        booking = self._get_booking(booking_id)
        event = self._get_event(booking.event_id)
        self._check_visible(booking, event)
        return {
            "bookingReference": booking.booking_reference,
            "eventTitle": event.title,
            "eventDate": format_date(event.date, "long"),
            "eventTime": event.time,
            "eventLocation": event.location,
            "participantName": booking.participant_name,
            "quantity": booking.quantity,
            "totalAmount": booking.total_amount,
            "status": booking.status,
            "qrCode": f"EMS-{booking.id}-{event.id}",
        }

    def filter_by_event(self, event_id) -> list[tuple[Booking, Event]]:
        return self._with_events(self._scope(self.storage.get_bookings_by_event(event_id)))

    def get_booking_stats(self) -> dict:
        bookings = self._scope(self.storage.get_bookings())
        return {
            "totalBookings": len(bookings),
            "confirmedBookings": sum(1 for b in bookings if b.status == "confirmed"),
            "pendingBookings": sum(1 for b in bookings if b.status == "pending"),
            "cancelledBookings": sum(1 for b in bookings if b.status == "cancelled"),
            "totalRevenue": sum(b.total_amount or 0 for b in bookings if b.status == "confirmed"),
        }
