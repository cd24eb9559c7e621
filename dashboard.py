import logging
from datetime import datetime

from analytics import AnalyticsManager
from auth import AuthManager
from errors import NotFoundError
from manager import BookingManager, EventManager
from notifications import NotificationManager
from storage import StorageManager
from utils import format_currency, is_past_date, parse_date, search_objects

logger = logging.getLogger(__name__)

SECTIONS = ("overview", "events", "bookings", "notifications", "analytics", "test-cases")


def _newest_first(items):
    return sorted(items, key=lambda a: parse_date(a["timestamp"]) if a["timestamp"] else datetime.min, reverse=True)


class DashboardManager:
    """Section routing and the overview cards for the logged-in user."""

    def __init__(self, storage: StorageManager, auth: AuthManager, events: EventManager,
                 bookings: BookingManager, notifications: NotificationManager,
                 analytics: AnalyticsManager, smoke_tests=None):
        self.storage = storage
        self.auth = auth
        self.events = events
        self.bookings = bookings
        self.notifications = notifications
        self.analytics = analytics
        self.smoke_tests = smoke_tests
        self.current_section = "overview"

    def show_section(self, name: str):
        """Switch to a section and return its data."""
        if name not in SECTIONS:
            raise NotFoundError(f"Unknown section: {name}")
        self.current_section = name
        return self.load_section_data(name)

    def load_section_data(self, name: str):
        if name == "overview":
            return self.update_stats()
        if name == "events":
            return [e.to_dict() for e in self.events.load_events()]
        if name == "bookings":
            return [{**b.to_dict(), "event": e.to_dict()} for b, e in self.bookings.load_bookings()]
        if name == "notifications":
            return [n.to_dict() for n in self.notifications.load_notifications()]
        if name == "analytics":
            return self.analytics.load_analytics()
        if self.smoke_tests is not None:
            self.smoke_tests.clear_test_results()
        return []

    def user_welcome(self) -> str:
        user = self.auth.require_login()
        return f"Welcome, {user.name}"

    def update_stats(self) -> dict:
        """The four overview cards, labelled for the current role."""
        user = self.auth.require_login()
        if self.auth.is_organizer():
            events = self.storage.get_events_by_organizer(user.id)
            owned = {e.id for e in events}
            bookings = [b for b in self.storage.get_bookings() if b.event_id in owned]
            confirmed = [b for b in bookings if b.status == "confirmed"]
            return {
                "totalEvents": {"value": len(events), "label": "Total Events"},
                "totalBookings": {"value": len(bookings), "label": "Total Bookings"},
                "totalParticipants": {"value": len({b.user_id for b in confirmed}), "label": "Participants"},
                "totalRevenue": {
                    "value": format_currency(sum(b.total_amount or 0 for b in confirmed)),
                    "label": "Total Revenue",
                },
            }

        bookings = self.storage.get_bookings_by_user(user.id)
        confirmed = [b for b in bookings if b.status == "confirmed"]
        upcoming = 0
        for booking in confirmed:
            event = self.storage.get_event_by_id(booking.event_id)
            if event and not is_past_date(event.date):
                upcoming += 1
        return {
            "totalEvents": {"value": len(self.storage.get_events()), "label": "Available Events"},
            "totalBookings": {"value": len(bookings), "label": "My Bookings"},
            "totalParticipants": {"value": upcoming, "label": "Upcoming Events"},
            "totalRevenue": {
                "value": format_currency(sum(b.total_amount or 0 for b in confirmed)),
                "label": "Total Spent",
            },
        }

    def refresh_dashboard(self) -> dict:
        return {
            "welcome": self.user_welcome(),
            "stats": self.update_stats(),
            "section": self.current_section,
            "data": self.load_section_data(self.current_section),
        }

    def get_dashboard_summary(self) -> dict:
        user = self.auth.require_login()
        summary = {
            "user": {"name": user.name, "email": user.email, "role": user.role, "lastLogin": user.last_login},
            "stats": {},
            "recentActivity": [],
        }
        if self.auth.is_organizer():
            events = self.storage.get_events_by_organizer(user.id)
            owned = {e.id for e in events}
            bookings = [b for b in self.storage.get_bookings() if b.event_id in owned]
            summary["stats"] = {
                "totalEvents": len(events),
                "totalBookings": len(bookings),
                "totalRevenue": sum(b.total_amount or 0 for b in bookings if b.status == "confirmed"),
                "upcomingEvents": sum(1 for e in events if not is_past_date(e.date)),
            }
            activity = [
                {"type": "booking", "description": f"New booking for {b.event_title}", "timestamp": b.created_at}
                for b in bookings[:5]
            ] + [
                {"type": "event", "description": f"Created event: {e.title}", "timestamp": e.created_at}
                for e in events[:3]
            ]
            summary["recentActivity"] = _newest_first(activity)[:5]
        else:
            bookings = self.storage.get_bookings_by_user(user.id)
            confirmed = [b for b in bookings if b.status == "confirmed"]
            upcoming = 0
            for booking in confirmed:
                event = self.storage.get_event_by_id(booking.event_id)
                if event and not is_past_date(event.date):
                    upcoming += 1
            summary["stats"] = {
                "totalBookings": len(bookings),
                "confirmedBookings": len(confirmed),
                "totalSpent": sum(b.total_amount or 0 for b in confirmed),
                "upcomingEvents": upcoming,
            }
            summary["recentActivity"] = _newest_first([
                {"type": "booking", "description": f"Booked: {b.event_title}", "timestamp": b.created_at}
                for b in bookings[:5]
            ])
        return summary

    def export_dashboard_data(self) -> dict:
        return {
            **self.get_dashboard_summary(),
            "exportDate": datetime.now().isoformat(),
            "systemInfo": {"version": "1.0.0"},
        }

    def search_dashboard(self, query: str) -> list[dict]:
        """Search what the current user can see; each hit names the section it lives in."""
        if not query or not query.strip():
            return []
        results = []
        for event in search_objects(self.events.load_events(), query, ["title", "description", "location"]):
            results.append({"type": "event", "title": event.title, "description": event.description,
                            "section": "events", "id": event.id})
        for booking in search_objects(self.bookings.visible_bookings(), query, ["event_title", "participant_name"]):
            results.append({"type": "booking", "title": f"Booking: {booking.event_title}",
                            "description": f"{booking.participant_name} - {booking.quantity} ticket(s)",
                            "section": "bookings", "id": booking.id})
        for notification in search_objects(self.notifications.load_notifications(), query, ["subject", "message"]):
            results.append({"type": "notification", "title": notification.subject,
                            "description": notification.message, "section": "notifications",
                            "id": notification.id})
        logger.info(f"Dashboard search for '{query}' found {len(results)} result(s)")
        return results
