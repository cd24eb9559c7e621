"""Analytics views over events and bookings.

Feedback is not collected anywhere in the system, so the feedback panel reads
from a pluggable ``FeedbackSource``. The default source simulates ratings from
a seedable random generator.
"""

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime

from auth import AuthManager
from models import Booking, Event
from storage import StorageManager
from utils import get_event_status, parse_date

logger = logging.getLogger(__name__)

FEEDBACK_COMMENTS = [
    "Great event! Well organized and informative.",
    "Loved the venue and the speakers were excellent.",
    "Good event but could use better catering.",
    "Amazing experience, will definitely attend again!",
    "The event was okay, met my expectations.",
    "Outstanding organization and great networking opportunities.",
    "Could improve on time management but overall good.",
    "Fantastic event with great value for money.",
    "The content was relevant and well-presented.",
    "Excellent event, highly recommend to others.",
]


@dataclass
class FeedbackEntry:
    rating: int
    text: str
    event_title: str
    date: str


@dataclass
class FeedbackSummary:
    total_feedback: int = 0
    average_rating: float = 0.0
    rating_breakdown: dict = field(default_factory=dict)
    recent_comments: list[FeedbackEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalFeedback": self.total_feedback,
            "averageRating": self.average_rating,
            "ratingBreakdown": {str(k): v for k, v in self.rating_breakdown.items()},
            "recentComments": [
                {"rating": c.rating, "text": c.text, "eventTitle": c.event_title, "date": c.date}
                for c in self.recent_comments
            ],
        }


class FeedbackSource(ABC):
    """Interface for participant feedback on completed events."""

    @abstractmethod
    def feedback_for(self, events: list[Event]) -> list[FeedbackEntry]:
        """Return feedback entries for the given completed events."""
        ...


class RandomFeedbackSource(FeedbackSource):
    """Simulated feedback: up to three ratings per event, capped at 50, skewed positive."""

    def __init__(self, seed=None):
        self.rng = random.Random(seed)

    def _rating(self) -> int:
        roll = self.rng.random()
        if roll < 0.4:
            return 5
        if roll < 0.7:
            return 4
        if roll < 0.85:
            return 3
        if roll < 0.95:
            return 2
        return 1

    def feedback_for(self, events: list[Event]) -> list[FeedbackEntry]:
        if not events:
            return []
        entries = []
        for _ in range(min(len(events) * 3, 50)):
            event = self.rng.choice(events)
            entries.append(FeedbackEntry(
                rating=self._rating(),
                text=self.rng.choice(FEEDBACK_COMMENTS),
                event_title=event.title,
                date=event.date,
            ))
        return entries


def _revenue(bookings: list[Booking]) -> float:
    return sum(b.total_amount or 0 for b in bookings if b.status == "confirmed")


class AnalyticsManager:
    def __init__(self, storage: StorageManager, auth: AuthManager, feedback_source: FeedbackSource | None = None,
                 clock=datetime.now):
        self.storage = storage
        self.auth = auth
        self.feedback_source = feedback_source or RandomFeedbackSource()
        self.clock = clock

    def _scope(self) -> tuple[list[Event], list[Booking]]:
        """Events and bookings relevant to the current user."""
        user = self.auth.require_login()
        events = self.storage.get_events()
        bookings = self.storage.get_bookings()
        if self.auth.is_organizer():
            events = [e for e in events if e.organizer_id == user.id]
            owned = {e.id for e in events}
            bookings = [b for b in bookings if b.event_id in owned]
        elif self.auth.is_participant():
            bookings = [b for b in bookings if b.user_id == user.id]
        return events, bookings

    def _status(self, event: Event) -> str:
        return get_event_status(event.starts_at, now=self.clock())

    def load_analytics(self) -> dict:
        return {
            "eventPerformance": self.event_performance(),
            "revenueTrends": self.revenue_trends(),
            "popularEvents": self.popular_events(),
            "feedback": self.feedback_summary().to_dict(),
        }

    def event_performance(self) -> list[dict]:
        """Per-event confirmed tickets, revenue and occupancy, most occupied first."""
        events, _ = self._scope()
        bookings = self.storage.get_bookings()
        rows = []
        for event in events:
            confirmed = [b for b in bookings if b.event_id == event.id and b.status == "confirmed"]
            tickets = sum(b.quantity or 1 for b in confirmed)
            rows.append({
                "eventId": event.id,
                "title": event.title,
                "bookings": tickets,
                "capacity": event.capacity,
                "revenue": _revenue(confirmed),
                "occupancyRate": round(tickets / event.capacity * 100) if event.capacity else 0,
                "status": self._status(event),
            })
        rows.sort(key=lambda row: row["occupancyRate"], reverse=True)
        return rows

    def revenue_trends(self, months: int = 6) -> dict:
        """Confirmed revenue and booking counts per calendar month, oldest month first."""
        user = self.auth.require_login()
        bookings = [b for b in self.storage.get_bookings() if b.status == "confirmed"]
        if self.auth.is_organizer():
            owned = {e.id for e in self.storage.get_events_by_organizer(user.id)}
            bookings = [b for b in bookings if b.event_id in owned]

        revenue, counts = {}, {}
        for booking in bookings:
            if not booking.created_at:
                continue
            key = parse_date(booking.created_at).strftime("%Y-%m")
            revenue[key] = revenue.get(key, 0) + (booking.total_amount or 0)
            counts[key] = counts.get(key, 0) + 1

        today = self.clock().date()
        series = []
        for offset in range(months - 1, -1, -1):
            year, month = divmod(today.year * 12 + today.month - 1 - offset, 12)
            first = date(year, month + 1, 1)
            key = first.strftime("%Y-%m")
            series.append({
                "key": key,
                "label": first.strftime("%b %Y"),
                "revenue": revenue.get(key, 0),
                "bookings": counts.get(key, 0),
            })

        total_revenue = sum(m["revenue"] for m in series)
        total_bookings = sum(m["bookings"] for m in series)
        return {
            "months": series,
            "maxRevenue": max((m["revenue"] for m in series), default=0),
            "totalRevenue": total_revenue,
            "totalBookings": total_bookings,
            "averageBookingValue": total_revenue / total_bookings if total_bookings else 0,
        }

    def popular_events(self) -> list[dict]:
        return [p.to_dict() for p in self.storage.get_analytics_data().popular_events]

    def feedback_summary(self) -> FeedbackSummary:
        events, _ = self._scope()
        completed = [e for e in events if self._status(e) == "completed"]
        entries = self.feedback_source.feedback_for(completed)
        if not entries:
            return FeedbackSummary()

        breakdown = {5: 0, 4: 0, 3: 0, 2: 0, 1: 0}
        for entry in entries:
            breakdown[entry.rating] = breakdown.get(entry.rating, 0) + 1
        average = sum(rating * count for rating, count in breakdown.items()) / len(entries)
        return FeedbackSummary(
            total_feedback=len(entries),
            average_rating=average,
            rating_breakdown=breakdown,
            recent_comments=entries[:5],
        )

    def export_analytics_data(self) -> dict:
        user = self.auth.require_login()
        events, bookings = self._scope()
        return {
            "user": {"name": user.name, "email": user.email, "role": user.role},
            "summary": {
                "totalEvents": len(events),
                "totalBookings": len(bookings),
                "totalRevenue": _revenue(bookings),
            },
            "events": [
                {
                    "title": e.title,
                    "date": e.date,
                    "capacity": e.capacity,
                    "bookings": e.bookings or 0,
                    "revenue": _revenue([b for b in bookings if b.event_id == e.id]),
                }
                for e in events
            ],
            "bookings": [
                {
                    "eventTitle": b.event_title,
                    "date": b.created_at,
                    "quantity": b.quantity,
                    "amount": b.total_amount,
                    "status": b.status,
                }
                for b in bookings
            ],
            "exportDate": datetime.now().isoformat(),
        }

    def get_analytics_summary(self) -> dict:
        events, bookings = self._scope()
        confirmed = [b for b in bookings if b.status == "confirmed"]
        total_revenue = _revenue(bookings)
        total_capacity = sum(e.capacity for e in events)
        return {
            "totalEvents": len(events),
            "upcomingEvents": sum(1 for e in events if self._status(e) != "completed"),
            "totalBookings": len(bookings),
            "confirmedBookings": len(confirmed),
            "totalRevenue": total_revenue,
            "averageTicketPrice": sum(e.price for e in events) / len(events) if events else 0,
            "averageBookingValue": total_revenue / len(bookings) if bookings else 0,
            "totalUsers": len(self.storage.get_users()),
            "conversionRate": len(confirmed) / total_capacity * 100 if total_capacity else 0,
        }
