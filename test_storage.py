import json

import pytest

from database import Database
from models import Booking, Event, Notification, User
from storage import ERRORS_KEY, StorageManager


def test_fresh_store_is_seeded(storage):
    events = storage.get_events()
    assert [e.id for e in events] == ["demo-event-1", "demo-event-2"]
    assert all(e.bookings == 0 for e in events)
    assert storage.get_users() == []
    assert storage.get_settings().currency == "USD"


def test_seeding_does_not_overwrite_existing_collections():
    db = Database(":memory:")
    first = StorageManager(db)
    first.set_item(first.keys["EVENTS"], [])
    second = StorageManager(db)
    assert second.get_events() == []
    db.close()


def test_new_event_gets_id_created_at_and_zero_bookings(storage):
    event = Event(title="Launch", date="2099-12-31", time="10:00", capacity=10, bookings=7)
    assert storage.save_event(event)
    stored = storage.get_event_by_id(event.id)
    assert event.id
    assert stored.created_at
    assert stored.bookings == 0


def test_event_merge_keeps_created_at_and_booking_count(storage):
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u1", quantity=4))
    event = storage.get_event_by_id("demo-event-1")
    event.title = "Renamed"
    event.bookings = 99
    event.created_at = None
    storage.save_event(event)

    stored = storage.get_event_by_id("demo-event-1")
    assert stored.title == "Renamed"
    assert stored.bookings == 4
    assert stored.created_at == "2024-01-01T00:00:00.000Z"


def test_event_count_is_sum_of_confirmed_quantities(storage):
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u1", quantity=2))
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u2", quantity=3))
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u3", quantity=4, status="pending"))
    storage.save_booking(Booking(event_id="demo-event-2", user_id="u1", quantity=1))
    assert storage.get_event_by_id("demo-event-1").bookings == 5
    assert storage.get_event_by_id("demo-event-2").bookings == 1


def test_status_change_recounts(storage):
    booking = Booking(event_id="demo-event-1", user_id="u1", quantity=3)
    storage.save_booking(booking)
    assert storage.update_booking_status(booking.id, "cancelled")
    assert storage.get_event_by_id("demo-event-1").bookings == 0
    assert storage.get_booking_by_id(booking.id).updated_at
    assert storage.update_booking_status(booking.id, "confirmed")
    assert storage.get_event_by_id("demo-event-1").bookings == 3


def test_update_status_of_missing_booking(storage):
    assert storage.update_booking_status("missing", "cancelled") is False


def test_update_event_booking_count_repairs_stale_count(storage):
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u1", quantity=2))
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u2", quantity=3, status="pending"))
    events = storage.get_item(storage.keys["EVENTS"])
    events[0]["bookings"] = 42
    storage.set_item(storage.keys["EVENTS"], events)

    assert storage.update_event_booking_count("demo-event-1") is True
    assert storage.get_event_by_id("demo-event-1").bookings == 2
    assert storage.update_event_booking_count("missing") is False


def test_delete_event_cascades_to_bookings(storage):
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u1"))
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u2"))
    kept = Booking(event_id="demo-event-2", user_id="u1")
    storage.save_booking(kept)

    assert storage.delete_event("demo-event-1")
    assert storage.get_event_by_id("demo-event-1") is None
    assert [b.id for b in storage.get_bookings()] == [kept.id]


def test_delete_missing_event(storage):
    assert storage.delete_event("nope") is False


def test_delete_booking_recounts(storage):
    booking = Booking(event_id="demo-event-2", user_id="u1", quantity=2)
    storage.save_booking(booking)
    assert storage.delete_booking(booking.id)
    assert storage.get_event_by_id("demo-event-2").bookings == 0
    assert storage.delete_booking(booking.id) is False


def test_save_user_merges_by_email(storage):
    user = User(name="Ann", email="ann@example.com", password="secret1")
    storage.save_user(user)
    original_id = user.id
    storage.save_user(User(name="Ann B", email="ann@example.com", password="secret1"))

    users = storage.get_users()
    assert len(users) == 1
    assert users[0].id == original_id
    assert users[0].name == "Ann B"


def test_current_user_roundtrip(storage):
    user = User(id="u1", name="Ann", email="ann@example.com")
    storage.set_current_user(user)
    assert storage.get_current_user().email == "ann@example.com"
    storage.logout()
    assert storage.get_current_user() is None


def test_notifications_are_newest_first_and_capped():
    db = Database(":memory:")
    storage = StorageManager(db, notification_limit=3)
    for i in range(5):
        storage.save_notification(Notification(subject=f"n{i}", message="hello"))

    notifications = storage.get_notifications()
    assert [n.subject for n in notifications] == ["n4", "n3", "n2"]
    assert all(n.status == "sent" and n.id for n in notifications)
    db.close()


def test_trim_notifications(storage):
    for i in range(4):
        storage.save_notification(Notification(subject=f"n{i}"))
    assert storage.trim_notifications(1) == 3
    assert [n.subject for n in storage.get_notifications()] == ["n3"]


def test_trim_notifications_with_negative_keep_empties_the_list(storage):
    for i in range(5):
        storage.save_notification(Notification(subject=f"n{i}"))
    assert storage.trim_notifications(-2) == 5
    assert storage.get_notifications() == []


def test_analytics_revenue_counts_confirmed_only(storage):
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u1", quantity=1, total_amount=100))
    storage.save_booking(Booking(event_id="demo-event-2", user_id="u2", quantity=3, total_amount=200))
    storage.save_booking(Booking(event_id="demo-event-2", user_id="u2", quantity=1, total_amount=75,
                                 status="cancelled"))

    data = storage.get_analytics_data()
    assert data.total_revenue == 300
    assert data.total_bookings == 3
    assert data.total_participants == 2
    assert data.popular_events[0].event.id == "demo-event-2"
    assert data.popular_events[0].booking_count == 3
    assert data.to_dict()["popularEvents"][0]["bookingCount"] == 3


def test_export_import_roundtrip(storage):
    storage.save_user(User(name="Ann", email="ann@example.com", password="secret1"))
    storage.save_booking(Booking(event_id="demo-event-1", user_id="u1", quantity=2))
    exported = storage.export_data()
    assert "exportDate" in exported

    db = Database(":memory:")
    target = StorageManager(db)
    assert target.import_data(json.dumps(exported))
    assert target.export_data()["users"] == exported["users"]
    assert target.export_data()["events"] == exported["events"]
    assert target.export_data()["bookings"] == exported["bookings"]
    db.close()


def test_import_leaves_absent_collections_alone(storage):
    storage.save_user(User(name="Ann", email="ann@example.com"))
    assert storage.import_data({"events": []})
    assert storage.get_events() == []
    assert len(storage.get_users()) == 1


@pytest.mark.parametrize("payload", ["not json", "[1, 2]", 42])
def test_import_rejects_bad_documents(storage, payload):
    assert storage.import_data(payload) is False


@pytest.mark.parametrize("payload", [
    {"users": {"not": "a list"}},
    {"events": [], "bookings": ["x"]},
    {"settings": []},
])
def test_import_rejects_malformed_collections_without_writing(storage, payload):
    storage.save_user(User(name="Ann", email="ann@example.com"))
    assert storage.import_data(payload) is False
    assert [u.email for u in storage.get_users()] == ["ann@example.com"]
    assert [e.id for e in storage.get_events()] == ["demo-event-1", "demo-event-2"]
    assert storage.get_settings().currency == "USD"


def test_corrupt_value_reads_as_missing(storage):
    storage.db.set_item("ems_users", "{broken")
    assert storage.get_item("ems_users") is None
    assert storage.get_users() == []


def test_unserializable_value_is_reported_not_raised(storage):
    assert storage.set_item("ems_misc", {"bad": object()}) is False


def test_update_settings_merges(storage):
    storage.update_settings({"theme": "dark"})
    settings = storage.get_settings()
    assert settings.theme == "dark"
    assert settings.currency == "USD"


def test_error_reports_keep_last_ten(storage):
    for i in range(12):
        storage.save_error_report({"message": f"e{i}"})
    reports = storage.get_item(ERRORS_KEY)
    assert len(reports) == 10
    assert reports[0]["message"] == "e2"


def test_clear_all_data_reseeds(storage):
    storage.save_user(User(name="Ann", email="ann@example.com"))
    storage.clear_all_data()
    assert storage.get_users() == []
    assert len(storage.get_events()) == 2


def test_storage_health(storage):
    health = storage.storage_health()
    assert health["status"] is True
    assert health["details"]["events"] == 2
    assert "ems_health_check" not in storage.db.keys()
