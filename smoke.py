"""In-app smoke tests.

The runner exercises the services end to end and records expected/actual
pairs, so the dashboard can show a pass/fail table and export it. Every
category runs against a fresh scratch system produced by ``system_factory``,
never against the live store.
"""

import logging
from datetime import datetime, timedelta

from errors import AuthenticationError, ConflictError, ValidationError
from models import NOTIFICATION_TYPES, Booking, Event, Notification, User
from utils import (calculate_percentage, format_currency, generate_booking_reference, get_event_status,
                   is_past_date, search_objects, sort_objects, time_ago, validate_email)

logger = logging.getLogger(__name__)

FUTURE_DATE = (datetime.now() + timedelta(days=60)).strftime("%Y-%m-%d")


def _raises(error_type, fn, *args, **kwargs) -> bool:
    try:
        fn(*args, **kwargs)
    except error_type:
        return True
    return False


def _organizer(system, email="organizer@smoke.example.com"):
    system.auth.signup("Smoke Organizer", email, "password123", "organizer")
    return system.auth.login(email, "password123", "organizer")


def _participant(system, email="participant@smoke.example.com"):
    system.auth.signup("Smoke Participant", email, "password123", "participant")
    return system.auth.login(email, "password123", "participant")


def _event(system, capacity=100, price=50.0):
    return system.events.create_event("Smoke Event", "Smoke test event", FUTURE_DATE, "18:00",
                                      "Test Location", capacity, price)


class SmokeTestRunner:
    CATEGORIES = (
        "Authentication Tests",
        "Event Management Tests",
        "Booking Tests",
        "Notification Tests",
        "Analytics Tests",
    )

    def __init__(self, system_factory):
        self.system_factory = system_factory
        self.test_results = []

    def run_all_tests(self) -> list[dict]:
        self.test_results = []
        for category in self.CATEGORIES:
            self._run_category(category)
        passed = sum(1 for r in self.test_results if r["passed"])
        logger.info(f"Test run completed: {passed}/{len(self.test_results)} tests passed")
        return self.test_results

    def run_test_category(self, category: str) -> list[dict]:
        if category not in self.CATEGORIES:
            raise ValueError(f"Unknown test category: {category}")
        self.test_results = [r for r in self.test_results if r["category"] != category]
        self._run_category(category)
        results = [r for r in self.test_results if r["category"] == category]
        logger.info(f"{category}: {sum(1 for r in results if r['passed'])}/{len(results)} tests passed")
        return results

    def _run_category(self, category: str):
        runners = {
            "Authentication Tests": self.run_authentication_tests,
            "Event Management Tests": self.run_event_management_tests,
            "Booking Tests": self.run_booking_tests,
            "Notification Tests": self.run_notification_tests,
            "Analytics Tests": self.run_analytics_tests,
        }
        runners[category](self.system_factory())

    def run_test(self, category, name, description, test_function, expected=True):
        """Run one check; an exception is recorded as a failed result."""
        try:
            actual = test_function()
        except Exception as e:
            actual = f"Error: {e}"
        self.test_results.append({
            "category": category,
            "testName": name,
            "description": description,
            "expected": expected,
            "actual": actual,
            "passed": actual == expected,
            "timestamp": datetime.now().isoformat(),
        })

    def run_authentication_tests(self, system):
        category = "Authentication Tests"
        auth = system.auth

        self.run_test(category, "Valid Signup", "User should be able to create account with valid data",
                      lambda: bool(auth.signup("Test User", "test@example.com", "password123", "participant").id))
        self.run_test(category, "Valid Login", "User should be able to login with correct credentials",
                      lambda: auth.login("test@example.com", "password123", "participant").email == "test@example.com")
        self.run_test(category, "Invalid Login", "Login should fail with incorrect credentials",
                      lambda: _raises(AuthenticationError, auth.login, "test@example.com", "wrongpassword", "participant"))
        self.run_test(category, "Role Mismatch", "Login should fail when the role does not match",
                      lambda: _raises(AuthenticationError, auth.login, "test@example.com", "password123", "organizer"))
        self.run_test(category, "Duplicate Email Signup", "Signup should fail with existing email",
                      lambda: _raises(ConflictError, auth.signup, "Test User 2", "test@example.com", "password123", "participant"))
        self.run_test(category, "Email Validation", "Should validate email format",
                      lambda: not validate_email("invalid-email") and validate_email("valid@example.com"))

    def run_event_management_tests(self, system):
        category = "Event Management Tests"
        _organizer(system)

        def create():
            event = _event(system)
            stored = system.storage.get_event_by_id(event.id)
            return stored is not None and bool(stored.created_at) and stored.bookings == 0

        self.run_test(category, "Create Event", "Organizer should be able to create new event", create)
        self.run_test(category, "Event Date Validation", "Should validate future event dates",
                      lambda: is_past_date("2020-01-01") and not is_past_date(FUTURE_DATE))
        self.run_test(category, "Past Event Rejected", "Events cannot be scheduled in the past",
                      lambda: _raises(ValidationError, system.events.create_event, "Old", "Old event",
                                      "2020-01-01", "10:00", "Nowhere", 10, 0))
        self.run_test(category, "Event Capacity Check", "Should track available tickets correctly",
                      lambda: Event(capacity=100, bookings=75).available_tickets == 25)
        self.run_test(category, "Event Status Calculation", "Should calculate event status correctly",
                      lambda: get_event_status("2020-01-01 10:00") == "completed"
                      and get_event_status(f"{FUTURE_DATE} 10:00") in ("active", "upcoming"))

        def search():
            events = [
                Event(title="Tech Conference", description="Technology event"),
                Event(title="Music Festival", description="Music event"),
                Event(title="Art Exhibition", description="Art showcase"),
            ]
            results = search_objects(events, "tech", ["title", "description"])
            return len(results) == 1 and results[0].title == "Tech Conference"

        self.run_test(category, "Event Search Functionality", "Should search events by title and description", search)

    def run_booking_tests(self, system):
        category = "Booking Tests"
        _organizer(system)
        event = _event(system, capacity=10, price=25.5)
        _participant(system)

        def create():
            booking = system.bookings.create_booking(event.id, 3)
            return booking.status == "confirmed" and system.storage.get_event_by_id(event.id).bookings == 3

        self.run_test(category, "Create Booking", "User should be able to book available event", create)

        def references():
            first, second = generate_booking_reference(), generate_booking_reference()
            return first != second and first.startswith("BK") and second.startswith("BK")

        self.run_test(category, "Booking Reference Generation", "Should generate unique booking reference", references)
        self.run_test(category, "Booking Total Calculation", "Should calculate booking total correctly",
                      lambda: system.storage.get_bookings()[0].total_amount == 76.5)

        def status_update():
            booking = system.storage.get_bookings()[0]
            updated = system.storage.update_booking_status(booking.id, "pending")
            return (updated and system.storage.get_booking_by_id(booking.id).status == "pending"
                    and system.storage.get_event_by_id(event.id).bookings == 0)

        self.run_test(category, "Booking Status Update", "Should update booking status and the event count", status_update)

        def overbooking():
            _participant(system, "second@smoke.example.com")
            return _raises(ValidationError, system.bookings.create_booking, event.id, 11)

        self.run_test(category, "Overbooking Prevention", "Should prevent booking when capacity exceeded", overbooking)

    def run_notification_tests(self, system):
        category = "Notification Tests"
        storage = system.storage

        self.run_test(category, "Send Notification", "Should save notification successfully",
                      lambda: storage.save_notification(Notification(
                          type="email", recipients="all", subject="Test Notification",
                          message="This is a test notification")))
        self.run_test(category, "Notification Type Validation", "Should validate notification types",
                      lambda: "email" in NOTIFICATION_TYPES and "fax" not in NOTIFICATION_TYPES)

        def recipients():
            for i, role in enumerate(["organizer", "organizer", "participant", "participant"]):
                storage.save_user(User(name=f"User {i}", email=f"user{i}@smoke.example.com", password="password123", role=role))
            manager = system.notifications
            return manager.get_recipient_count("organizers") == 2 and manager.get_recipient_count("participants") == 2

        self.run_test(category, "Recipient Count Calculation", "Should calculate recipient count correctly", recipients)
        self.run_test(category, "Time Ago Calculation", "Should calculate time ago correctly",
                      lambda: "hour" in time_ago(datetime.now() - timedelta(hours=2)))

    def run_analytics_tests(self, system):
        category = "Analytics Tests"

        def revenue():
            for amount, status in [(100, "confirmed"), (200, "confirmed"), (150, "confirmed"), (75, "cancelled")]:
                system.storage.save_booking(Booking(event_id="e1", user_id="u1", total_amount=amount, status=status))
            return system.storage.get_analytics_data().total_revenue == 450

        self.run_test(category, "Revenue Calculation", "Should calculate total revenue correctly", revenue)
        self.run_test(category, "Percentage Calculation", "Should calculate percentages correctly",
                      lambda: calculate_percentage(75, 100) == 75)
        self.run_test(category, "Average Calculation", "Should calculate averages correctly",
                      lambda: sum([10, 20, 30, 40, 50]) / 5 == 30)

        def sorting():
            data = [{"title": "Event A", "bookings": 30}, {"title": "Event B", "bookings": 10},
                    {"title": "Event C", "bookings": 20}]
            ordered = sort_objects(data, "bookings", "desc")
            return ordered[0]["title"] == "Event A" and ordered[0]["bookings"] == 30

        self.run_test(category, "Data Sorting", "Should sort data correctly", sorting)
        self.run_test(category, "Currency Formatting", "Should format currency correctly",
                      lambda: format_currency(1234.56) == "$1,234.56")

    def get_test_summary(self) -> dict:
        summary = {}
        for result in self.test_results:
            entry = summary.setdefault(result["category"], {"total": 0, "passed": 0, "failed": 0})
            entry["total"] += 1
            entry["passed" if result["passed"] else "failed"] += 1
        return summary

    def export_test_results(self) -> dict:
        passed = sum(1 for r in self.test_results if r["passed"])
        return {
            "testRun": {
                "timestamp": datetime.now().isoformat(),
                "totalTests": len(self.test_results),
                "passedTests": passed,
                "failedTests": len(self.test_results) - passed,
            },
            "results": list(self.test_results),
            "summary": self.get_test_summary(),
        }

    def clear_test_results(self):
        self.test_results = []
