from datetime import time, timedelta
from decimal import Decimal
from unittest import mock

import requests
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from customers.models import Customer
from offerings.models import Event
from registrations.models import EventRegistration, Registration

from .exceptions import AlreadyRegistered, CapacityExceeded, StoreError
from .http import client_ip, json_body
from .telegram_notify import notify_registration_paid, occupancy_line, occupancy_note, tg_send


class ExceptionTests(SimpleTestCase):
    def test_statuses_and_public_messages(self):
        self.assertEqual(CapacityExceeded().status, 409)
        self.assertEqual(AlreadyRegistered().status, 409)
        self.assertEqual(CapacityExceeded().public_message, "Sorry, this event is now full.")

    def test_store_error_hides_details(self):
        exc = StoreError("Error creating registration: connection refused")

        self.assertEqual(exc.status, 500)
        self.assertIn("connection refused", str(exc))
        self.assertNotIn("connection refused", exc.public_message)


class HttpHelpersTests(SimpleTestCase):
    def setUp(self):
        self.rf = RequestFactory()

    def test_client_ip_prefers_forwarded_for(self):
        request = self.rf.get("/", HTTP_X_FORWARDED_FOR="203.0.113.5, 10.0.0.1")

        self.assertEqual(client_ip(request), "203.0.113.5")

    def test_client_ip_falls_back_to_remote_addr(self):
        self.assertEqual(client_ip(self.rf.get("/")), "127.0.0.1")

    def test_client_ip_real_ip_and_unknown(self):
        self.assertEqual(client_ip(self.rf.get("/", HTTP_X_REAL_IP="198.51.100.7")), "198.51.100.7")
        self.assertEqual(client_ip(self.rf.get("/", REMOTE_ADDR="")), "-")

    def test_json_body(self):
        ok = self.rf.post("/", data='{"a": 1}', content_type="application/json")
        not_object = self.rf.post("/", data="[1]", content_type="application/json")
        broken = self.rf.post("/", data="{", content_type="application/json")

        self.assertEqual(json_body(ok), {"a": 1})
        self.assertIsNone(json_body(not_object))
        self.assertIsNone(json_body(broken))


class OccupancyTests(SimpleTestCase):
    def test_line(self):
        self.assertEqual(occupancy_line(3, 10), "👥 Participants: <b>3 / 10</b>")
        self.assertEqual(occupancy_line(3, None), "👥 Participants: <b>3</b>")

    def test_note(self):
        self.assertEqual(occupancy_note(10, 10), "🚫 <b>Fully booked</b>")
        self.assertEqual(occupancy_note(9, 10), "⚠️ <b>1 spot left</b>")
        self.assertEqual(occupancy_note(3, 10), "")
        self.assertEqual(occupancy_note(3, None), "")


class TelegramSendTests(SimpleTestCase):
    @override_settings(TELEGRAM_NOTIFICATIONS=False, TELEGRAM_BOT_TOKEN="t", TELEGRAM_CHAT_ID="1")
    def test_disabled(self):
        with mock.patch("core.telegram_notify.requests.post") as post:
            tg_send("hi")

        post.assert_not_called()

    @override_settings(TELEGRAM_NOTIFICATIONS=True, TELEGRAM_BOT_TOKEN="t", TELEGRAM_CHAT_ID="1")
    def test_request_error_is_swallowed(self):
        with mock.patch("core.telegram_notify.requests.post", side_effect=requests.ConnectionError()) as post:
            tg_send("hi")

        post.assert_called_once()


@override_settings(TELEGRAM_NOTIFICATIONS=True, TELEGRAM_BOT_TOKEN="token", TELEGRAM_CHAT_ID="42")
class NotifyRegistrationPaidTests(TestCase):
    def test_message(self):
        customer = Customer.objects.create(
            email="ann@example.com", first_name="Ann", last_name="<Lee>", phone="+380671234567",
        )
        event = Event.objects.create(
            name="Friday jam", date=timezone.localdate() + timedelta(days=1), time=time(19, 0),
            price=Decimal("250.00"), max_capacity=10,
        )
        registration = EventRegistration.objects.create(
            customer=customer, event=event, status=Registration.Status.PAID,
        )

        with mock.patch("core.telegram_notify.requests.post") as post:
            notify_registration_paid(registration=registration, active_count=9)

        post.assert_called_once()
        url = post.call_args.args[0]
        payload = post.call_args.kwargs["json"]
        self.assertEqual(url, "https://api.telegram.org/bottoken/sendMessage")
        self.assertEqual(payload["chat_id"], "42")
        text = payload["text"]
        self.assertIn("Registration paid", text)
        self.assertIn("Ann &lt;Lee&gt;", text)
        self.assertIn("Event: <b>Friday jam</b>", text)
        self.assertIn("19:00", text)
        self.assertIn("9 / 10", text)
        self.assertIn("1 spot left", text)

    def test_message_shows_charged_amount(self):
        customer = Customer.objects.create(email="bob@example.com", first_name="Bob", last_name="Kim")
        event = Event.objects.create(
            name="Level 2", date=timezone.localdate() + timedelta(days=1), price=Decimal("3200.00"),
        )
        registration = EventRegistration.objects.create(
            customer=customer, event=event, status=Registration.Status.PAID,
        )

        with mock.patch("core.telegram_notify.requests.post") as post:
            notify_registration_paid(
                registration=registration, active_count=1, amount=Decimal("2800.00"), currency="UAH",
            )

        text = post.call_args.kwargs["json"]["text"]
        self.assertIn("Amount: <b>2800.00 UAH</b>", text)
        self.assertNotIn("3200.00", text)
