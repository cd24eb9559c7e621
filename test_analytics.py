from datetime import datetime

from analytics import RandomFeedbackSource
from conftest import PAST_DATE
from models import Event


def _past_event(system, organizer, title="Old Show"):
    event = Event(title=title, date=PAST_DATE, time="10:00", capacity=10, price=20,
                  organizer_id=organizer.id, organizer_name=organizer.name)
    system.storage.save_event(event)
    return event


def test_event_performance(system, login, make_event):
    login("organizer")
    event = make_event(capacity=10, price=20)
    login("participant")
    system.bookings.create_booking(event.id, 5)

    login("organizer")
    rows = system.analytics.event_performance()
    assert len(rows) == 1
    assert rows[0]["bookings"] == 5
    assert rows[0]["revenue"] == 100
    assert rows[0]["occupancyRate"] == 50
    assert rows[0]["status"] == "active"


def test_revenue_trends_buckets_by_month(system, login, make_event):
    login("organizer")
    event = make_event(price=25)
    login("participant")
    system.bookings.create_booking(event.id, 2)

    login("organizer")
    trends = system.analytics.revenue_trends()
    assert len(trends["months"]) == 6
    assert trends["months"][-1]["key"] == datetime.now().strftime("%Y-%m")
    assert trends["months"][-1]["revenue"] == 50
    assert trends["totalRevenue"] == 50
    assert trends["totalBookings"] == 1
    assert trends["averageBookingValue"] == 50


def test_feedback_only_for_completed_events(system, login, make_event):
    organizer = login("organizer")
    make_event()
    assert system.analytics.feedback_summary().total_feedback == 0

    _past_event(system, organizer)
    summary = system.analytics.feedback_summary()
    assert summary.total_feedback == 2
    assert summary.average_rating == 4.0
    assert summary.rating_breakdown == {5: 1, 4: 0, 3: 1, 2: 0, 1: 0}
    assert summary.to_dict()["recentComments"][0]["eventTitle"] == "Old Show"


def test_random_feedback_is_seedable():
    events = [Event(title=f"E{i}", date=PAST_DATE) for i in range(3)]
    first = RandomFeedbackSource(seed=7).feedback_for(events)
    second = RandomFeedbackSource(seed=7).feedback_for(events)
    assert first == second
    assert len(first) == 9
    assert all(1 <= entry.rating <= 5 for entry in first)


def test_random_feedback_is_capped():
    events = [Event(title=f"E{i}") for i in range(30)]
    assert len(RandomFeedbackSource(seed=1).feedback_for(events)) == 50
    assert RandomFeedbackSource(seed=1).feedback_for([]) == []


def test_popular_events(system, login, make_event):
    login("organizer")
    event = make_event()
    login("participant")
    system.bookings.create_booking(event.id, 3)
    popular = system.analytics.popular_events()
    assert popular[0]["id"] == event.id
    assert popular[0]["bookingCount"] == 3


def test_summary_scoped_to_participant(system, login, make_event, signup):
    login("organizer")
    event = make_event(price=10)
    login("participant")
    system.bookings.create_booking(event.id, 1)
    signup("second@example.com")
    login("participant", "second@example.com", "secret123")
    system.bookings.create_booking(event.id, 3)

    summary = system.analytics.get_analytics_summary()
    assert summary["totalBookings"] == 1
    assert summary["totalRevenue"] == 30
    assert summary["totalUsers"] == 3


def test_load_and_export(system, login, make_event):
    login("organizer")
    make_event()
    data = system.analytics.load_analytics()
    assert set(data) == {"eventPerformance", "revenueTrends", "popularEvents", "feedback"}

    exported = system.analytics.export_analytics_data()
    assert exported["user"]["email"] == "organizer@demo.com"
    assert exported["summary"]["totalEvents"] == 1
    assert exported["events"][0]["title"] == "Test Event"
