"""Persistence of the event management collections.

Every collection lives under one key of the key-value store as a JSON list of
camelCase records. The storage layer owns the derived ``bookings`` field on
events and recomputes it whenever a booking is created, edited, deleted or
changes status. Writes that touch two collections go through one transaction.

Write faults never raise out of this module: they are logged and reported as
``False`` so callers can surface a message and keep going.
"""

import json
import logging
import sqlite3
from datetime import datetime

from database import Database
from models import AnalyticsData, Booking, Event, Notification, PopularEvent, Settings, User
from utils import generate_id, now_iso

logger = logging.getLogger(__name__)

KEYS = {
    "USERS": "ems_users",
    "CURRENT_USER": "ems_current_user",
    "EVENTS": "ems_events",
    "BOOKINGS": "ems_bookings",
    "NOTIFICATIONS": "ems_notifications",
    "SETTINGS": "ems_settings",
}
ERRORS_KEY = "ems_errors"
COLLECTIONS = ("users", "events", "bookings", "notifications", "settings")


def _find_index(items, key, value):
    for i, item in enumerate(items):
        if item.get(key) == value:
            return i
    return None


def _merge(existing: dict, record) -> dict:
    """Shallow-merge a record over its stored version, keeping generated fields."""
    data = record.to_dict()
    for key in ("id", "createdAt"):
        if not data.get(key):
            data[key] = existing.get(key)
    merged = {**existing, **data}
    record.id = merged.get("id")
    record.created_at = merged.get("createdAt")
    return merged


def _count_confirmed(bookings, event_id) -> int:
    return sum(
        b.get("quantity") or 1
        for b in bookings
        if b.get("eventId") == event_id and b.get("status") == "confirmed"
    )


def _recount(events, bookings, event_id) -> bool:
    """Refresh the derived bookings field of one event in place."""
    index = _find_index(events, "id", event_id)
    if index is None:
        return False
    events[index]["bookings"] = _count_confirmed(bookings, event_id)
    return True


class StorageManager:
    def __init__(self, db: Database, notification_limit: int = 100):
        """Wrap a key-value store and seed any missing collections."""
        self.db = db
        self.keys = dict(KEYS)
        self.notification_limit = notification_limit
        self.initialize_storage()

    def initialize_storage(self):
        """Seed each collection that has never been written."""
        defaults = {
            self.keys["USERS"]: [],
            self.keys["EVENTS"]: self.default_events(),
            self.keys["BOOKINGS"]: [],
            self.keys["NOTIFICATIONS"]: [],
            self.keys["SETTINGS"]: Settings().to_dict(),
        }
        for key, value in defaults.items():
            if self.get_item(key) is None:
                self.set_item(key, value)

    # ------------------------------------------------------------------
    # Generic storage methods
    # ------------------------------------------------------------------
    def set_item(self, key, value) -> bool:
        return self._set_many({key: value})

    def _set_many(self, items: dict) -> bool:
        try:
            encoded = {key: json.dumps(value) for key, value in items.items()}
            self.db.set_many(encoded)
            return True
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Error saving {', '.join(items)}: {e}", exc_info=True)
            return False

    def get_item(self, key):
        try:
            raw = self.db.get_item(key)
            return json.loads(raw) if raw is not None else None
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Error reading {key}: {e}", exc_info=True)
            return None

    def remove_item(self, key) -> bool:
        try:
            self.db.remove_item(key)
            return True
        except sqlite3.Error as e:
            logger.error(f"Error removing {key}: {e}", exc_info=True)
            return False

    def _raw(self, name) -> list:
        return self.get_item(self.keys[name]) or []

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def get_users(self) -> list[User]:
        return [User.from_dict(u) for u in self._raw("USERS")]

    def save_user(self, user: User) -> bool:
        """Merge by email into an existing user, or append a new one."""
        users = self._raw("USERS")
        index = _find_index(users, "email", user.email)
        if index is None and user.id:
            # an email change on an existing account
            index = _find_index(users, "id", user.id)
        if index is not None:
            users[index] = _merge(users[index], user)
        else:
            user.id = generate_id()
            user.created_at = user.created_at or now_iso()
            users.append(user.to_dict())
        return self.set_item(self.keys["USERS"], users)

    def get_user_by_email(self, email) -> User | None:
        users = self._raw("USERS")
        index = _find_index(users, "email", email)
        return User.from_dict(users[index]) if index is not None else None

    def get_user_by_id(self, user_id) -> User | None:
        users = self._raw("USERS")
        index = _find_index(users, "id", user_id)
        return User.from_dict(users[index]) if index is not None else None

    def get_current_user(self) -> User | None:
        data = self.get_item(self.keys["CURRENT_USER"])
        return User.from_dict(data) if data else None

    def set_current_user(self, user: User) -> bool:
        return self.set_item(self.keys["CURRENT_USER"], user.to_dict())

    def logout(self) -> bool:
        return self.remove_item(self.keys["CURRENT_USER"])

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def get_events(self) -> list[Event]:
        return [Event.from_dict(e) for e in self._raw("EVENTS")]

    def save_event(self, event: Event) -> bool:
        """Merge into the event with the same id, or append a new one with bookings=0."""
        events = self._raw("EVENTS")
        index = _find_index(events, "id", event.id) if event.id else None
        if index is not None:
            stored_count = events[index].get("bookings", 0)
            events[index] = _merge(events[index], event)
            # the derived count is owned here, never by the caller
            events[index]["bookings"] = stored_count
            event.bookings = stored_count
        else:
            event.id = event.id or generate_id()
            event.created_at = now_iso()
            event.bookings = 0
            events.append(event.to_dict())
        return self.set_item(self.keys["EVENTS"], events)

    def get_event_by_id(self, event_id) -> Event | None:
        events = self._raw("EVENTS")
        index = _find_index(events, "id", event_id)
        return Event.from_dict(events[index]) if index is not None else None

    def delete_event(self, event_id) -> bool:
        """Delete an event and every booking that references it in one transaction.

        Returns False if the event does not exist or the write failed.
        """
        events = self._raw("EVENTS")
        remaining = [e for e in events if e.get("id") != event_id]
        if len(remaining) == len(events):
            return False
        bookings = [b for b in self._raw("BOOKINGS") if b.get("eventId") != event_id]
        return self._set_many({self.keys["EVENTS"]: remaining, self.keys["BOOKINGS"]: bookings})

    def get_events_by_organizer(self, organizer_id) -> list[Event]:
        return [e for e in self.get_events() if e.organizer_id == organizer_id]

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------
    def get_bookings(self) -> list[Booking]:
        return [Booking.from_dict(b) for b in self._raw("BOOKINGS")]

    def save_booking(self, booking: Booking) -> bool:
        """Merge or append a booking and refresh its event's count in the same write."""
        bookings = self._raw("BOOKINGS")
        index = _find_index(bookings, "id", booking.id) if booking.id else None
        if index is not None:
            previous_event = bookings[index].get("eventId")
            bookings[index] = _merge(bookings[index], booking)
        else:
            previous_event = None
            booking.id = booking.id or generate_id()
            booking.created_at = now_iso()
            booking.status = booking.status or "confirmed"
            bookings.append(booking.to_dict())

        events = self._raw("EVENTS")
        _recount(events, bookings, booking.event_id)
        if previous_event and previous_event != booking.event_id:
            _recount(events, bookings, previous_event)
        return self._set_many({self.keys["BOOKINGS"]: bookings, self.keys["EVENTS"]: events})

    def get_booking_by_id(self, booking_id) -> Booking | None:
        bookings = self._raw("BOOKINGS")
        index = _find_index(bookings, "id", booking_id)
        return Booking.from_dict(bookings[index]) if index is not None else None

    def get_bookings_by_user(self, user_id) -> list[Booking]:
        return [b for b in self.get_bookings() if b.user_id == user_id]

    def get_bookings_by_event(self, event_id) -> list[Booking]:
        return [b for b in self.get_bookings() if b.event_id == event_id]

    def update_booking_status(self, booking_id, status) -> bool:
        """Set status and updatedAt, then recompute the event's confirmed count."""
        bookings = self._raw("BOOKINGS")
        index = _find_index(bookings, "id", booking_id)
        if index is None:
            return False
        bookings[index]["status"] = status
        bookings[index]["updatedAt"] = now_iso()
        events = self._raw("EVENTS")
        _recount(events, bookings, bookings[index].get("eventId"))
        return self._set_many({self.keys["BOOKINGS"]: bookings, self.keys["EVENTS"]: events})

    def delete_booking(self, booking_id) -> bool:
        bookings = self._raw("BOOKINGS")
        index = _find_index(bookings, "id", booking_id)
        if index is None:
            return False
        removed = bookings.pop(index)
        events = self._raw("EVENTS")
        _recount(events, bookings, removed.get("eventId"))
        return self._set_many({self.keys["BOOKINGS"]: bookings, self.keys["EVENTS"]: events})

    def update_event_booking_count(self, event_id) -> bool:
        """Recompute event.bookings as the sum of confirmed booking quantities."""
        events = self._raw("EVENTS")
        if not _recount(events, self._raw("BOOKINGS"), event_id):
            return False
        return self.set_item(self.keys["EVENTS"], events)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def get_notifications(self) -> list[Notification]:
        return [Notification.from_dict(n) for n in self._raw("NOTIFICATIONS")]

    def save_notification(self, notification: Notification) -> bool:
        """Prepend a notification, dropping the oldest beyond the retention limit."""
        notifications = self._raw("NOTIFICATIONS")
        notification.id = generate_id()
        notification.created_at = now_iso()
        notification.status = "sent"
        notifications.insert(0, notification.to_dict())
        del notifications[self.notification_limit:]
        return self.set_item(self.keys["NOTIFICATIONS"], notifications)

    def trim_notifications(self, keep: int) -> int:
        """Keep only the newest ``keep`` notifications; returns how many were dropped."""
        keep = max(keep, 0)
        notifications = self._raw("NOTIFICATIONS")
        removed = max(len(notifications) - keep, 0)
        if removed and not self.set_item(self.keys["NOTIFICATIONS"], notifications[:keep]):
            return 0
        return removed

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def get_settings(self) -> Settings:
        return Settings.from_dict(self.get_item(self.keys["SETTINGS"]) or Settings().to_dict())

    def update_settings(self, changes: dict) -> bool:
        merged = {**self.get_settings().to_dict(), **changes}
        return self.set_item(self.keys["SETTINGS"], merged)

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------
    @staticmethod
    def default_events() -> list[dict]:
        demo = dict(
            organizer_id="demo-organizer",
            organizer_name="Demo Organizer",
            created_at="2024-01-01T00:00:00.000Z",
            bookings=0,
        )
        return [
            Event(
                id="demo-event-1",
                title="Tech Conference 2024",
                description="Annual technology conference featuring the latest innovations and trends.",
                date="2024-06-15",
                time="09:00",
                location="Convention Center, Downtown",
                capacity=500,
                price=99.99,
                category="Technology",
                **demo,
            ).to_dict(),
            Event(
                id="demo-event-2",
                title="Music Festival",
                description="Three-day music festival featuring local and international artists.",
                date="2024-07-20",
                time="18:00",
                location="City Park Amphitheater",
                capacity=2000,
                price=149.99,
                category="Music",
                **demo,
            ).to_dict(),
        ]

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    def get_analytics_data(self) -> AnalyticsData:
        """Aggregate totals and the top five events by confirmed tickets.

        Recomputed from scratch on every call.
        """
        events = self.get_events()
        bookings = self.get_bookings()

        confirmed = [b for b in bookings if b.status == "confirmed"]
        total_revenue = sum(b.total_amount or 0 for b in confirmed)
        participants = {b.user_id for b in bookings}

        counts = {}
        for b in confirmed:
            counts[b.event_id] = counts.get(b.event_id, 0) + (b.quantity or 1)

        ranked = sorted(events, key=lambda e: counts.get(e.id, 0), reverse=True)
        popular = [PopularEvent(event=e, booking_count=counts.get(e.id, 0)) for e in ranked[:5]]

        return AnalyticsData(
            total_events=len(events),
            total_bookings=len(bookings),
            total_revenue=total_revenue,
            total_participants=len(participants),
            popular_events=popular,
            event_booking_counts=counts,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def clear_all_data(self):
        for key in self.keys.values():
            self.remove_item(key)
        self.initialize_storage()

    def export_data(self) -> dict:
        return {
            "users": self._raw("USERS"),
            "events": self._raw("EVENTS"),
            "bookings": self._raw("BOOKINGS"),
            "notifications": self._raw("NOTIFICATIONS"),
            "settings": self.get_settings().to_dict(),
            "exportDate": datetime.now().isoformat(),
        }

    def import_data(self, data) -> bool:
        """Overwrite each collection present in ``data``; absent ones are left alone.

        No referential checks: an imported booking may point at a missing event.
        """
        try:
            if isinstance(data, (str, bytes)):
                data = json.loads(data)
            if not isinstance(data, dict):
                raise ValueError("import document must be a JSON object")
            for name in COLLECTIONS:
                value = data.get(name)
                if value is None:
                    continue
                if name == "settings":
                    if not isinstance(value, dict):
                        raise ValueError("settings must be an object")
                elif not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
                    raise ValueError(f"{name} must be a list of objects")
        except ValueError as e:
            logger.error(f"Error importing data: {e}")
            return False

        items = {
            self.keys[name.upper()]: data[name]
            for name in COLLECTIONS
            if data.get(name) is not None
        }
        if not items:
            return True
        saved = self._set_many(items)
        if saved:
            logger.info(f"Imported {', '.join(sorted(k for k in COLLECTIONS if data.get(k) is not None))}")
        return saved

    def get_error_reports(self) -> list:
        return self.get_item(ERRORS_KEY) or []

    def save_error_report(self, report: dict, keep: int = 10) -> bool:
        reports = self.get_error_reports()
        reports.append(report)
        return self.set_item(ERRORS_KEY, reports[-keep:])

    def storage_health(self) -> dict:
        try:
            self.db.ping()
            return {
                "status": True,
                "message": "Storage is healthy",
                "details": {
                    "users": len(self._raw("USERS")),
                    "events": len(self._raw("EVENTS")),
                    "bookings": len(self._raw("BOOKINGS")),
                },
            }
        except sqlite3.Error as e:
            logger.error(f"Storage health check failed: {e}")
            return {"status": False, "message": "Storage error", "error": str(e)}
