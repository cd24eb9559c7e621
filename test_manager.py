import pytest

from conftest import PAST_DATE
from errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from models import Booking, Event


@pytest.fixture
def organizer(login):
    return login("organizer")


def test_create_event(system, organizer, make_event):
    event = make_event(category="Technology")
    stored = system.storage.get_event_by_id(event.id)
    assert stored.organizer_id == organizer.id
    assert stored.organizer_name == "Demo Organizer"
    assert stored.bookings == 0
    assert stored.created_at
    assert system.storage.get_notifications()[0].subject == "New Event Available: Test Event"


def test_participant_cannot_create_event(login, make_event):
    login("participant")
    with pytest.raises(AuthorizationError):
        make_event()


@pytest.mark.parametrize("overrides,message", [
    ({"date": PAST_DATE}, "Event date and time must be in the future"),
    ({"capacity": 0}, "Event capacity must be greater than 0"),
    ({"price": -1}, "Event price cannot be negative"),
    ({"title": "  "}, "title is required"),
])
def test_event_validation(organizer, make_event, overrides, message):
    with pytest.raises(ValidationError) as exc:
        make_event(**overrides)
    assert exc.value.message == message


def test_get_missing_event(system):
    with pytest.raises(NotFoundError):
        system.events.get_event("missing")


def test_organizer_sees_only_own_events(system, organizer, make_event):
    make_event()
    assert [e.organizer_id for e in system.events.load_events()] == [organizer.id]


def test_participant_sees_all_events(system, organizer, make_event, login):
    make_event()
    login("participant")
    assert len(system.events.load_events()) == 3


def test_update_event(system, organizer, make_event):
    event = make_event()
    updated = system.events.update_event(event.id, title="Renamed", capacity=20)
    assert updated.title == "Renamed"
    assert system.storage.get_event_by_id(event.id).capacity == 20
    assert system.storage.get_event_by_id(event.id).updated_at


def test_update_event_of_other_organizer(system, organizer, make_event, signup, login):
    event = make_event()
    signup("rival@example.com", role="organizer")
    login("organizer", "rival@example.com", "secret123")
    with pytest.raises(AuthorizationError):
        system.events.update_event(event.id, title="Mine now")


def test_capacity_cannot_drop_below_bookings(system, organizer, make_event, login):
    event = make_event(capacity=10)
    login("participant")
    system.bookings.create_booking(event.id, 5)
    login("organizer")
    with pytest.raises(ValidationError):
        system.events.update_event(event.id, capacity=4)
    assert system.events.update_event(event.id, capacity=5).capacity == 5
    assert system.storage.get_notifications()[0].subject == "Event Updated: Test Event"


def test_delete_event_removes_bookings(system, organizer, make_event, login):
    event = make_event()
    login("participant")
    system.bookings.create_booking(event.id, 2)
    login("organizer")

    removed = system.events.delete_event(event.id)
    assert len(removed) == 1
    assert system.storage.get_event_by_id(event.id) is None
    assert system.storage.get_bookings_by_event(event.id) == []
    assert system.storage.get_notifications()[0].subject == "Event Cancelled: Test Event"


def test_export_attendees(system, organizer, make_event, login):
    event = make_event()
    login("participant")
    booking = system.bookings.create_booking(event.id, 2)
    login("organizer")
    lines = system.events.export_attendees(event.id).getvalue().splitlines()
    assert lines[0] == "Reference,Name,Email,Quantity,Amount,Status"
    assert lines[1] == f"{booking.booking_reference},Demo Participant,participant@demo.com,2,100.00,confirmed"


def test_booking_quote(system, organizer, make_event):
    event = make_event(price=12.5)
    quote = system.events.booking_quote(event.id, 4)
    assert quote["total"] == 50
    assert quote["availableTickets"] == 100


def test_event_stats(system, organizer, make_event):
    make_event()
    stats = system.events.get_event_stats()
    assert stats["totalEvents"] == 1
    assert stats["activeEvents"] == 1
    assert stats["completedEvents"] == 0


def test_search_events(system, organizer, make_event):
    make_event(title="Python Meetup")
    make_event(title="Jazz Night")
    assert [e.title for e in system.events.search_events("python")] == ["Python Meetup"]


def test_capacity_two_scenario(system, organizer, make_event, login, signup):
    event = make_event(capacity=2, price=50)
    login("participant")
    booking = system.bookings.create_booking(event.id, 2)
    assert booking.total_amount == 100
    assert booking.status == "confirmed"
    assert booking.booking_reference.startswith("BK")
    stored = system.storage.get_event_by_id(event.id)
    assert stored.bookings == 2
    assert stored.available_tickets == 0

    signup("second@example.com")
    login("participant", "second@example.com", "secret123")
    with pytest.raises(ValidationError) as exc:
        system.bookings.create_booking(event.id, 1)
    assert exc.value.message == "Sorry, this event is fully booked"

    login("participant")
    system.bookings.cancel_booking(booking.id)
    assert system.storage.get_event_by_id(event.id).bookings == 0

    login("participant", "second@example.com", "secret123")
    assert system.bookings.create_booking(event.id, 1).quantity == 1
    assert system.storage.get_event_by_id(event.id).bookings == 1


def test_booking_more_than_available(system, organizer, make_event, login):
    event = make_event(capacity=3)
    login("participant")
    with pytest.raises(ValidationError) as exc:
        system.bookings.create_booking(event.id, 4)
    assert exc.value.message == "Only 3 tickets available"


def test_booking_zero_quantity(system, organizer, make_event, login):
    event = make_event()
    login("participant")
    with pytest.raises(ValidationError):
        system.bookings.create_booking(event.id, 0)


def test_duplicate_booking(system, organizer, make_event, login):
    event = make_event()
    login("participant")
    system.bookings.create_booking(event.id, 1)
    with pytest.raises(ConflictError):
        system.bookings.create_booking(event.id, 1)


def test_organizer_cannot_book(system, organizer, make_event):
    event = make_event()
    with pytest.raises(AuthorizationError):
        system.bookings.create_booking(event.id, 1)


def test_booking_confirmation_and_capacity_warning(system, organizer, make_event, login):
    event = make_event(capacity=10)
    login("participant")
    system.bookings.create_booking(event.id, 9)
    subjects = [n.subject for n in system.storage.get_notifications()]
    assert subjects[0] == "Event Almost Full: Test Event"
    assert subjects[1] == "Booking Confirmed: Test Event"


def test_cancel_someone_elses_booking(system, organizer, make_event, login, signup):
    event = make_event()
    login("participant")
    booking = system.bookings.create_booking(event.id, 1)
    signup("second@example.com")
    login("participant", "second@example.com", "secret123")
    with pytest.raises(AuthorizationError) as exc:
        system.bookings.cancel_booking(booking.id)
    assert exc.value.message == "You can only cancel your own bookings"


def test_cancel_twice(system, organizer, make_event, login):
    event = make_event()
    login("participant")
    booking = system.bookings.create_booking(event.id, 1)
    assert system.bookings.cancel_booking(booking.id).status == "cancelled"
    with pytest.raises(ValidationError) as exc:
        system.bookings.cancel_booking(booking.id)
    assert exc.value.message == "Booking is already cancelled"


def test_cannot_cancel_past_event(system, login):
    participant = login("participant")
    system.storage.save_event(Event(id="old", title="Old", date=PAST_DATE, time="10:00", capacity=10))
    booking = Booking(event_id="old", event_title="Old", user_id=participant.id, quantity=1)
    system.storage.save_booking(booking)
    with pytest.raises(ValidationError) as exc:
        system.bookings.cancel_booking(booking.id)
    assert exc.value.message == "Cannot cancel booking for past events"


def test_organizer_status_update_recounts(system, organizer, make_event, login):
    event = make_event(capacity=5)
    login("participant")
    booking = system.bookings.create_booking(event.id, 3)
    login("organizer")

    updated = system.bookings.update_booking_status(booking.id, "pending")
    assert updated.status == "pending"
    assert system.storage.get_event_by_id(event.id).bookings == 0
    assert system.storage.get_notifications()[0].subject == "Booking pending: Test Event"

    system.bookings.update_booking_status(booking.id, "confirmed")
    assert system.storage.get_event_by_id(event.id).bookings == 3


def test_participant_cannot_change_status(system, organizer, make_event, login):
    event = make_event()
    login("participant")
    booking = system.bookings.create_booking(event.id, 1)
    with pytest.raises(AuthorizationError):
        system.bookings.update_booking_status(booking.id, "cancelled")


def test_reconfirm_checks_availability(system, organizer, make_event, login, signup):
    event = make_event(capacity=2)
    login("participant")
    first = system.bookings.create_booking(event.id, 2)
    login("organizer")
    system.bookings.update_booking_status(first.id, "pending")

    signup("second@example.com")
    login("participant", "second@example.com", "secret123")
    system.bookings.create_booking(event.id, 1)

    login("organizer")
    with pytest.raises(ValidationError):
        system.bookings.update_booking_status(first.id, "confirmed")


def test_load_bookings_scoped_to_participant(system, organizer, make_event, login, signup):
    event = make_event()
    login("participant")
    mine = system.bookings.create_booking(event.id, 1)
    signup("second@example.com")
    login("participant", "second@example.com", "secret123")
    system.bookings.create_booking(event.id, 1)

    login("participant")
    pairs = system.bookings.load_bookings()
    assert [b.id for b, _ in pairs] == [mine.id]
    assert pairs[0][1].id == event.id

    login("organizer")
    assert len(system.bookings.load_bookings()) == 2
    assert system.bookings.load_bookings("cancelled") == []
    assert system.bookings.get_booking_stats()["totalRevenue"] == 100


def test_ticket(system, organizer, make_event, login):
    event = make_event()
    login("participant")
    booking = system.bookings.create_booking(event.id, 2)
    ticket = system.bookings.download_ticket(booking.id)
    assert ticket["qrCode"] == f"EMS-{booking.id}-{event.id}"
    assert ticket["eventDate"] == "December 31, 2099 at 12:00 AM"
    assert ticket["totalAmount"] == 100

    details = system.bookings.get_booking_details(booking.id)
    assert details["booking"]["bookingReference"] == booking.booking_reference


def test_ticket_of_missing_booking(system, login):
    login("participant")
    with pytest.raises(NotFoundError):
        system.bookings.download_ticket("missing")
