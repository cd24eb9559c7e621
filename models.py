from dataclasses import dataclass, field, fields
from typing import Optional

ROLES = ("organizer", "participant")
BOOKING_STATUSES = ("pending", "confirmed", "cancelled")
NOTIFICATION_TYPES = ("email", "sms", "both")
RECIPIENT_GROUPS = ("all", "organizers", "participants")


def camel_case(name: str) -> str:
    """Convert a snake_case attribute name to the camelCase storage key."""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class Record:
    """Mixin for dataclasses persisted as camelCase JSON objects."""

    def to_dict(self) -> dict:
        return {camel_case(f.name): getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict):
        """Build a record from stored JSON, ignoring keys the record does not know."""
        known = {camel_case(f.name): f.name for f in fields(cls)}
        return cls(**{known[key]: value for key, value in data.items() if key in known})


@dataclass
class User(Record):
    id: str = ""
    name: str = ""
    email: str = ""
    password: str = ""
    role: str = "participant"  # 'organizer' or 'participant'
    is_active: bool = True
    created_at: Optional[str] = None
    last_login: Optional[str] = None
    updated_at: Optional[str] = None

    def public_dict(self) -> dict:
        """Return the user without the password field."""
        data = self.to_dict()
        data.pop("password")
        return data


@dataclass
class Event(Record):
    id: str = ""
    title: str = ""
    description: str = ""
    date: str = ""  # YYYY-MM-DD
    time: str = ""  # HH:MM
    location: str = ""
    capacity: int = 0
    price: float = 0.0
    organizer_id: Optional[str] = None  # user id of organizer
    organizer_name: Optional[str] = None
    bookings: int = 0  # confirmed tickets, maintained by storage
    category: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def available_tickets(self) -> int:
        return self.capacity - (self.bookings or 0)

    @property
    def starts_at(self) -> str:
        return f"{self.date} {self.time}".strip()

    def display_details(self) -> str:
        """Return a string representation of the event details."""
        return f"Event: {self.title}, Date: {self.starts_at}, Capacity: {self.capacity}, Booked: {self.bookings}"


@dataclass
class Booking(Record):
    id: str = ""
    event_id: str = ""
    event_title: str = ""
    user_id: str = ""
    participant_name: str = ""
    participant_email: str = ""
    quantity: int = 1
    total_amount: float = 0.0
    status: str = "confirmed"
    booking_reference: str = ""
    notes: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Notification(Record):
    id: str = ""
    type: str = "email"
    recipients: str = "all"
    subject: str = ""
    message: str = ""
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    booking_id: Optional[str] = None
    event_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    status: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class Settings(Record):
    theme: str = "light"
    notifications: dict = field(default_factory=lambda: {"email": True, "sms": False, "push": True})
    currency: str = "USD"
    timezone: str = "America/New_York"
    language: str = "en"


@dataclass
class PopularEvent:
    event: Event
    booking_count: int

    def to_dict(self) -> dict:
        return {**self.event.to_dict(), "bookingCount": self.booking_count}


@dataclass
class AnalyticsData:
    total_events: int
    total_bookings: int
    total_revenue: float
    total_participants: int
    popular_events: list[PopularEvent]
    event_booking_counts: dict[str, int]

    def to_dict(self) -> dict:
        return {
            "totalEvents": self.total_events,
            "totalBookings": self.total_bookings,
            "totalRevenue": self.total_revenue,
            "totalParticipants": self.total_participants,
            "popularEvents": [p.to_dict() for p in self.popular_events],
            "eventBookingCounts": dict(self.event_booking_counts),
        }
