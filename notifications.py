import logging
from datetime import date, datetime, timedelta

from auth import AuthManager
from errors import PersistenceError, ValidationError
from models import NOTIFICATION_TYPES, RECIPIENT_GROUPS, Booking, Event, Notification
from storage import StorageManager
from utils import parse_date, simulate_latency, tomorrow

logger = logging.getLogger(__name__)

RECIPIENT_LABELS = {"all": "All Users", "organizers": "Organizers", "participants": "Participants"}


class NotificationManager:
    """Stores outgoing notifications; delivery is simulated."""

    def __init__(self, storage: StorageManager, auth: AuthManager, delay: float = 0.0):
        self.storage = storage
        self.auth = auth
        self.delay = delay

    def load_notifications(self) -> list[Notification]:
        """Notifications visible to the current user, newest first."""
        user = self.auth.require_login()
        notifications = self.storage.get_notifications()
        if self.auth.is_participant():
            notifications = [
                n for n in notifications
                if n.recipients in ("all", "participants")
                or (n.booking_id and self.is_user_booking(n.booking_id, user.id))
            ]
        return notifications

    def send_notification(self, type: str, recipients: str, subject: str, message: str) -> Notification:
        """Organizer-composed broadcast."""
        user = self.auth.require_role("organizer", "Only organizers can send notifications")
        if not subject or not subject.strip() or not message or not message.strip():
            raise ValidationError("Subject and message are required")
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Notification type must be one of {', '.join(NOTIFICATION_TYPES)}")
        if recipients not in RECIPIENT_GROUPS:
            raise ValidationError(f"Recipients must be one of {', '.join(RECIPIENT_GROUPS)}")

        notification = Notification(
            type=type,
            recipients=recipients,
            subject=subject.strip(),
            message=message.strip(),
            sender_id=user.id,
            sender_name=user.name,
            metadata={"recipientCount": self.get_recipient_count(recipients)},
        )
        simulate_latency(self.delay)
        if not self.storage.save_notification(notification):
            raise PersistenceError("Failed to send notification")
        self.simulate_delivery(notification)
        return notification

    def simulate_delivery(self, notification: Notification):
        count = notification.metadata.get("recipientCount", 0)
        logger.info(f"{notification.type.upper()} notification delivered to {count} recipient(s): {notification.subject}")

    def get_recipient_count(self, recipients: str) -> int:
        users = self.storage.get_users()
        if recipients == "all":
            return len(users)
        if recipients == "organizers":
            return sum(1 for u in users if u.role == "organizer")
        if recipients == "participants":
            return sum(1 for u in users if u.role == "participant")
        return 0

    @staticmethod
    def get_recipients_label(recipients: str) -> str:
        return RECIPIENT_LABELS.get(recipients, "Unknown")

    def is_user_booking(self, booking_id, user_id) -> bool:
        booking = self.storage.get_booking_by_id(booking_id)
        return booking is not None and booking.user_id == user_id

    def _record(self, notification: Notification) -> bool:
        """Best-effort write for system notifications; failures are only logged."""
        if not self.storage.save_notification(notification):
            logger.warning(f"Could not record notification: {notification.subject}")
            return False
        return True

    # System notifications
    def booking_confirmation(self, booking: Booking) -> bool:
        return self._record(Notification(
            type="email",
            recipients="participants",
            subject=f"Booking Confirmed: {booking.event_title}",
            message=f'Your booking for "{booking.event_title}" has been confirmed. Reference: {booking.booking_reference}',
            booking_id=booking.id,
            event_id=booking.event_id,
            metadata={
                "bookingReference": booking.booking_reference,
                "eventTitle": booking.event_title,
                "quantity": booking.quantity,
                "totalAmount": booking.total_amount,
            },
        ))

    def booking_status_update(self, booking: Booking, event: Event, new_status: str) -> bool:
        status_text = "confirmed" if new_status == "confirmed" else "rejected" if new_status == "cancelled" else new_status
        return self._record(Notification(
            type="email",
            recipients="participants",
            subject=f"Booking {status_text}: {event.title}",
            message=f'Your booking for "{event.title}" has been {status_text}. Reference: {booking.booking_reference}',
            booking_id=booking.id,
            event_id=event.id,
            metadata={
                "bookingReference": booking.booking_reference,
                "eventTitle": event.title,
                "newStatus": new_status,
            },
        ))

    def booking_cancellation(self, booking: Booking, event: Event) -> bool:
        return self._record(Notification(
            type="email",
            recipients="participants",
            subject=f"Booking Cancelled: {event.title}",
            message=f'Your booking for "{event.title}" has been cancelled. Reference: {booking.booking_reference}',
            booking_id=booking.id,
            event_id=event.id,
            metadata={
                "bookingReference": booking.booking_reference,
                "eventTitle": event.title,
                "refundAmount": booking.total_amount,
            },
        ))

    def event_created(self, event: Event) -> bool:
        return self._record(Notification(
            type="email",
            recipients="participants",
            subject=f"New Event Available: {event.title}",
            message=f'A new event "{event.title}" is now available for booking. Check it out!',
            event_id=event.id,
            sender_id=event.organizer_id,
            sender_name=event.organizer_name,
            metadata={
                "eventTitle": event.title,
                "eventDate": event.date,
                "eventPrice": event.price,
                "recipientCount": self.get_recipient_count("participants"),
            },
        ))

    def event_updated(self, event: Event, affected_bookings: int) -> bool:
        return self._record(Notification(
            type="email",
            recipients="participants",
            subject=f"Event Updated: {event.title}",
            message=f'The event "{event.title}" has been updated. Please check the latest details.',
            event_id=event.id,
            sender_id=event.organizer_id,
            sender_name=event.organizer_name,
            metadata={
                "eventTitle": event.title,
                "eventDate": event.date,
                "eventTime": event.time,
                "affectedBookings": affected_bookings,
            },
        ))

    def event_cancelled(self, event: Event, bookings: list[Booking]) -> bool:
        return self._record(Notification(
            type="email",
            recipients="participants",
            subject=f"Event Cancelled: {event.title}",
            message=f'We regret to inform you that the event "{event.title}" has been cancelled. '
                    f'Refunds will be processed automatically.',
            event_id=event.id,
            sender_id=event.organizer_id,
            sender_name=event.organizer_name,
            metadata={
                "eventTitle": event.title,
                "cancelledBookings": len(bookings),
                "refundAmount": sum(b.total_amount or 0 for b in bookings),
            },
        ))

    def booking_reminder(self, booking: Booking, event: Event) -> bool:
        return self._record(Notification(
            type="email",
            recipients="participants",
            subject=f"Event Reminder: {event.title}",
            message=f'Don\'t forget! Your event "{event.title}" is coming up soon. We look forward to seeing you there!',
            booking_id=booking.id,
            event_id=event.id,
            metadata={
                "eventTitle": event.title,
                "eventDate": event.date,
                "eventTime": event.time,
                "bookingReference": booking.booking_reference,
            },
        ))

    def capacity_warning(self, event: Event) -> bool:
        """Warn organizers once an event is at least 90% full."""
        if event.capacity <= 0:
            return False
        percentage_full = (event.bookings or 0) / event.capacity * 100
        if percentage_full < 90:
            return False
        return self._record(Notification(
            type="email",
            recipients="organizers",
            subject=f"Event Almost Full: {event.title}",
            message=f'Your event "{event.title}" is {round(percentage_full)}% full '
                    f'with only {event.available_tickets} tickets remaining.',
            event_id=event.id,
            metadata={
                "eventTitle": event.title,
                "percentageFull": round(percentage_full),
                "availableTickets": event.available_tickets,
            },
        ))

    def send_bulk_event_reminders(self, today: date | None = None) -> int:
        """Remind every confirmed booking of events dated tomorrow; returns the event count."""
        target = tomorrow(today)
        upcoming = [e for e in self.storage.get_events() if e.date == target]
        bookings = self.storage.get_bookings()
        for event in upcoming:
            for booking in bookings:
                if booking.event_id == event.id and booking.status == "confirmed":
                    self.booking_reminder(booking, event)
        if upcoming:
            logger.info(f"Sent reminders for {len(upcoming)} upcoming event(s)")
        return len(upcoming)

    def get_notification_stats(self, now: datetime | None = None) -> dict:
        user = self.auth.require_login()
        notifications = self.storage.get_notifications()
        if self.auth.is_organizer():
            notifications = [n for n in notifications if n.sender_id == user.id]
        week_ago = (now or datetime.now()) - timedelta(days=7)
        return {
            "totalSent": len(notifications),
            "emailNotifications": sum(1 for n in notifications if n.type in ("email", "both")),
            "smsNotifications": sum(1 for n in notifications if n.type in ("sms", "both")),
            "recentNotifications": sum(
                1 for n in notifications if n.created_at and parse_date(n.created_at) >= week_ago
            ),
        }

    def cleanup_old_notifications(self, keep: int = 50) -> int:
        if keep < 0:
            raise ValidationError("Number of notifications to keep cannot be negative")
        removed = self.storage.trim_notifications(keep)
        if removed:
            logger.info(f"Cleaned up {removed} old notification(s)")
        return removed
