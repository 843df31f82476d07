from datetime import time, timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from customers.models import Customer
from registrations.models import EventRegistration, Registration

from .models import Course, Event


@override_settings(IMPROV_UPCOMING_DAYS=14)
class UpcomingOfferingsTests(TestCase):
    url = "/api/offerings/"

    def setUp(self):
        today = timezone.localdate()
        self.jam = Event.objects.create(
            name="Friday jam", date=today + timedelta(days=2), time=time(19, 0),
            price=Decimal("250"), max_capacity=2,
        )
        self.show = Event.objects.create(name="Big show", date=today + timedelta(days=30), price=Decimal("400"))
        Event.objects.create(name="Last week", date=today - timedelta(days=7), price=Decimal("250"))
        self.basics = Course.objects.create(
            name="Basics", type="beginner", day_of_week=Course.DayOfWeek.TUESDAY,
            time=time(19, 30), start_date=today + timedelta(days=5), price=Decimal("3200"),
        )
        Course.objects.create(
            name="Scenes", type="advanced", day_of_week=Course.DayOfWeek.THURSDAY,
            time=time(19, 30), start_date=today + timedelta(days=6), price=Decimal("3600"),
        )

    def _register(self, email, status):
        customer = Customer.objects.create(email=email, first_name="A", last_name="B")
        EventRegistration.objects.create(customer=customer, event=self.jam, status=status)

    def test_default_window(self):
        payload = self.client.get(self.url).json()

        self.assertEqual([e["name"] for e in payload["events"]], ["Friday jam"])
        self.assertEqual([c["name"] for c in payload["courses"]], ["Basics", "Scenes"])

    def test_days_parameter(self):
        payload = self.client.get(self.url, {"days": "60"}).json()

        self.assertEqual([e["name"] for e in payload["events"]], ["Friday jam", "Big show"])

    def test_level_filter(self):
        payload = self.client.get(self.url, {"level": "advanced"}).json()

        self.assertEqual([c["name"] for c in payload["courses"]], ["Scenes"])

    def test_counts_active_registrations(self):
        self._register("a@example.com", Registration.Status.PAID)
        self._register("b@example.com", Registration.Status.FAILED)

        jam = self.client.get(self.url).json()["events"][0]

        self.assertEqual(jam["participant_count"], 1)
        self.assertEqual(jam["seats_left"], 1)
        self.assertFalse(jam["is_full"])
        self.assertEqual(jam["time"], "19:00")
        self.assertEqual(jam["price"], "250.00")

    def test_full_event(self):
        self._register("a@example.com", Registration.Status.PAID)
        self._register("b@example.com", Registration.Status.PENDING)

        jam = self.client.get(self.url).json()["events"][0]

        self.assertTrue(jam["is_full"])
        self.assertEqual(jam["seats_left"], 0)
        self.assertTrue(self.jam.is_full)
        self.assertEqual(self.jam.seats_left, 0)

    def test_unlimited_capacity(self):
        basics = self.client.get(self.url).json()["courses"][0]

        self.assertIsNone(basics["max_capacity"])
        self.assertIsNone(basics["seats_left"])
        self.assertFalse(basics["is_full"])
        self.assertIsNone(self.basics.seats_left)
