import base64
import json
from datetime import time, timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db import DatabaseError, IntegrityError, transaction
from django.test import TestCase, override_settings
from django.utils import timezone

from core.exceptions import AlreadyRegistered, CapacityExceeded, OfferingNotFound
from customers.models import Customer
from offerings.models import Course, Event
from payments.orders import OrderReference

from .forms import RegistrationSubmitForm
from .models import CourseRegistration, EventRegistration, OfferingKind, Registration
from .services import (
    EXPIRED_MARKER,
    check_capacity,
    expire_stale_pending,
    finalize,
    register,
    submit_registration,
)


LIQPAY_TEST_SETTINGS = {
    "LIQPAY_PUBLIC_KEY": "pub",
    "LIQPAY_PRIVATE_KEY": "priv",
    "LIQPAY_SANDBOX": False,
    "LIQPAY_SERVER_URL": "",
    "LIQPAY_RESULT_URL": "",
    "IMPROV_COURSE_PRICE_UAH": None,
    "TELEGRAM_NOTIFICATIONS": False,
}


def make_customer(email="ann@example.com", first_name="Ann", last_name="Lee"):
    return Customer.objects.create(email=email, first_name=first_name, last_name=last_name)


def make_event(**kwargs):
    defaults = {
        "name": "Friday jam",
        "date": timezone.localdate() + timedelta(days=3),
        "time": time(19, 0),
        "price": Decimal("250.00"),
        "max_capacity": 10,
    }
    defaults.update(kwargs)
    return Event.objects.create(**defaults)


def make_course(**kwargs):
    defaults = {
        "name": "Improv basics",
        "type": "beginner",
        "day_of_week": Course.DayOfWeek.TUESDAY,
        "time": time(19, 30),
        "start_date": timezone.localdate() + timedelta(days=7),
        "price": Decimal("3200.00"),
        "max_capacity": 12,
    }
    defaults.update(kwargs)
    return Course.objects.create(**defaults)


class CapacityTests(TestCase):
    def setUp(self):
        self.event = make_event(max_capacity=2)
        self.ann = make_customer()
        self.bob = make_customer(email="bob@example.com", first_name="Bob")

    def test_counts_pending_and_paid_but_not_failed(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event, status=Registration.Status.PAID)
        EventRegistration.objects.create(customer=self.bob, event=self.event, status=Registration.Status.FAILED)

        status = check_capacity(self.event.id, OfferingKind.EVENT, self.event.max_capacity)

        self.assertEqual(status.count, 1)
        self.assertFalse(status.full)

    def test_full_when_active_reaches_capacity(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event, status=Registration.Status.PAID)
        EventRegistration.objects.create(customer=self.bob, event=self.event, status=Registration.Status.PENDING)

        status = check_capacity(self.event.id, OfferingKind.EVENT, 2)

        self.assertTrue(status.full)
        self.assertEqual(status.capacity, 2)

    def test_no_capacity_means_unlimited(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event, status=Registration.Status.PAID)

        status = check_capacity(self.event.id, OfferingKind.EVENT, None)

        self.assertFalse(status.full)
        self.assertEqual(status.count, 1)

    def test_zero_capacity_is_always_full(self):
        self.assertTrue(check_capacity(self.event.id, OfferingKind.EVENT, 0).full)

    def test_own_pending_row_is_excluded(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event, status=Registration.Status.PENDING)

        status = check_capacity(self.event.id, OfferingKind.EVENT, 1, exclude_customer_id=self.ann.id)

        self.assertFalse(status.full)
        self.assertEqual(status.count, 0)


class RegisterTests(TestCase):
    def setUp(self):
        self.event = make_event()
        self.course = make_course()
        self.ann = make_customer()

    def test_creates_pending_row(self):
        result = register(self.ann.id, self.event.id, OfferingKind.EVENT)

        self.assertEqual(result.status, Registration.Status.PENDING)
        self.assertEqual(result.replaced_pending, 0)
        self.assertEqual(result.registration.event_id, self.event.id)

    def test_course_registration_goes_to_its_own_table(self):
        result = register(self.ann.id, self.course.id, OfferingKind.COURSE)

        self.assertIsInstance(result.registration, CourseRegistration)
        self.assertEqual(EventRegistration.objects.count(), 0)

    def test_repeat_attempt_replaces_pending_row(self):
        first = register(self.ann.id, self.event.id, OfferingKind.EVENT)
        second = register(self.ann.id, self.event.id, OfferingKind.EVENT)

        self.assertEqual(second.replaced_pending, 1)
        self.assertNotEqual(first.registration_id, second.registration_id)
        self.assertEqual(
            list(EventRegistration.objects.filter(customer=self.ann).values_list("status", flat=True)),
            [Registration.Status.PENDING],
        )

    def test_failed_rows_are_kept_on_retry(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event, status=Registration.Status.FAILED)

        register(self.ann.id, self.event.id, OfferingKind.EVENT)

        self.assertEqual(EventRegistration.objects.filter(customer=self.ann).count(), 2)

    def test_paid_pair_is_rejected(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event, status=Registration.Status.PAID)

        with self.assertRaises(AlreadyRegistered) as ctx:
            register(self.ann.id, self.event.id, OfferingKind.EVENT)

        self.assertEqual(ctx.exception.status, 409)
        self.assertEqual(ctx.exception.public_message, "You are already registered for this event.")

    def test_database_refuses_second_active_row(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event, status=Registration.Status.PAID)

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                EventRegistration.objects.create(
                    customer=self.ann, event=self.event, status=Registration.Status.PENDING,
                )


class SubmitRegistrationTests(TestCase):
    def setUp(self):
        self.ann = make_customer()
        self.bob = make_customer(email="bob@example.com", first_name="Bob")

    def test_unknown_offering(self):
        with self.assertRaises(OfferingNotFound):
            submit_registration(self.ann.id, 999, OfferingKind.EVENT)

    def test_full_offering(self):
        event = make_event(max_capacity=1)
        EventRegistration.objects.create(customer=self.bob, event=event, status=Registration.Status.PAID)

        with self.assertRaises(CapacityExceeded) as ctx:
            submit_registration(self.ann.id, event.id, OfferingKind.EVENT)

        self.assertEqual(ctx.exception.public_message, "Sorry, this event is now full.")
        self.assertFalse(EventRegistration.objects.filter(customer=self.ann).exists())

    def test_full_course_message(self):
        course = make_course(max_capacity=1)
        CourseRegistration.objects.create(customer=self.bob, course=course, status=Registration.Status.PENDING)

        with self.assertRaises(CapacityExceeded) as ctx:
            submit_registration(self.ann.id, course.id, OfferingKind.COURSE)

        self.assertEqual(ctx.exception.public_message, "Sorry, this course is now full.")

    def test_capacity_is_checked_before_already_registered(self):
        event = make_event(max_capacity=1)
        EventRegistration.objects.create(customer=self.ann, event=event, status=Registration.Status.PAID)

        with self.assertRaises(CapacityExceeded):
            submit_registration(self.ann.id, event.id, OfferingKind.EVENT)

    def test_own_pending_does_not_block_retry_on_last_spot(self):
        event = make_event(max_capacity=1)
        submit_registration(self.ann.id, event.id, OfferingKind.EVENT)

        result = submit_registration(self.ann.id, event.id, OfferingKind.EVENT)

        self.assertEqual(result.replaced_pending, 1)
        self.assertEqual(EventRegistration.objects.filter(event=event).count(), 1)


class FinalizeTests(TestCase):
    def setUp(self):
        self.event = make_event()
        self.ann = make_customer()
        self.reference = OrderReference(kind="event", customer_id=self.ann.id, offering_id=self.event.id)

    def _pending(self):
        return EventRegistration.objects.create(customer=self.ann, event=self.event)

    def test_pending_to_paid(self):
        reg = self._pending()

        result = finalize(self.reference, Registration.Status.PAID, provider_status="success", payment_id="42")

        reg.refresh_from_db()
        self.assertTrue(result.changed)
        self.assertTrue(result.newly_paid)
        self.assertEqual(result.previous_status, Registration.Status.PENDING)
        self.assertEqual(reg.status, Registration.Status.PAID)
        self.assertEqual(reg.provider_status, "success")
        self.assertEqual(reg.payment_id, "42")
        self.assertIsNotNone(reg.paid_at)

    def test_pending_to_failed_keeps_the_row(self):
        reg = self._pending()

        result = finalize(self.reference, Registration.Status.FAILED, provider_status="failure")

        reg.refresh_from_db()
        self.assertTrue(result.changed)
        self.assertFalse(result.newly_paid)
        self.assertEqual(reg.status, Registration.Status.FAILED)
        self.assertIsNone(reg.paid_at)

    def test_paid_is_final(self):
        reg = self._pending()
        finalize(self.reference, Registration.Status.PAID, provider_status="success")
        paid_at = EventRegistration.objects.get(id=reg.id).paid_at

        again = finalize(self.reference, Registration.Status.PAID, provider_status="success")
        failed = finalize(self.reference, Registration.Status.FAILED, provider_status="failure")

        reg.refresh_from_db()
        self.assertFalse(again.changed)
        self.assertFalse(again.newly_paid)
        self.assertFalse(failed.changed)
        self.assertEqual(reg.status, Registration.Status.PAID)
        self.assertEqual(reg.paid_at, paid_at)

    def test_no_registration(self):
        result = finalize(self.reference, Registration.Status.PAID, provider_status="success")

        self.assertFalse(result.changed)
        self.assertIsNone(result.registration)

    def test_late_payment_revives_expired_row(self):
        reg = EventRegistration.objects.create(
            customer=self.ann, event=self.event,
            status=Registration.Status.FAILED, provider_status=EXPIRED_MARKER,
        )

        result = finalize(self.reference, Registration.Status.PAID, provider_status="success")

        reg.refresh_from_db()
        self.assertTrue(result.newly_paid)
        self.assertEqual(reg.status, Registration.Status.PAID)

    def test_payment_failure_row_is_not_revived(self):
        EventRegistration.objects.create(
            customer=self.ann, event=self.event,
            status=Registration.Status.FAILED, provider_status="failure",
        )

        result = finalize(self.reference, Registration.Status.PAID, provider_status="success")

        self.assertFalse(result.changed)

    def test_rejects_pending_as_target(self):
        with self.assertRaises(ValueError):
            finalize(self.reference, Registration.Status.PENDING)


class ExpirePendingTests(TestCase):
    def setUp(self):
        self.event = make_event()
        self.course = make_course()
        self.ann = make_customer()
        self.bob = make_customer(email="bob@example.com", first_name="Bob")

    def _age(self, reg, hours):
        type(reg).objects.filter(id=reg.id).update(created_at=timezone.now() - timedelta(hours=hours))

    def test_only_old_pending_rows_expire(self):
        old = EventRegistration.objects.create(customer=self.ann, event=self.event)
        fresh = EventRegistration.objects.create(customer=self.bob, event=self.event)
        old_paid = CourseRegistration.objects.create(
            customer=self.ann, course=self.course, status=Registration.Status.PAID,
        )
        old_course = CourseRegistration.objects.create(customer=self.bob, course=self.course)
        for reg in (old, old_paid, old_course):
            self._age(reg, 30)

        expired = expire_stale_pending(timezone.now() - timedelta(hours=24))

        self.assertEqual(expired, {"event": 1, "course": 1})
        old.refresh_from_db()
        fresh.refresh_from_db()
        old_paid.refresh_from_db()
        self.assertEqual(old.status, Registration.Status.FAILED)
        self.assertEqual(old.provider_status, EXPIRED_MARKER)
        self.assertEqual(fresh.status, Registration.Status.PENDING)
        self.assertEqual(old_paid.status, Registration.Status.PAID)

    def test_dry_run_writes_nothing(self):
        reg = EventRegistration.objects.create(customer=self.ann, event=self.event)
        self._age(reg, 30)

        expired = expire_stale_pending(timezone.now() - timedelta(hours=24), dry_run=True)

        reg.refresh_from_db()
        self.assertEqual(expired["event"], 1)
        self.assertEqual(reg.status, Registration.Status.PENDING)

    @override_settings(IMPROV_PENDING_TTL_HOURS=24)
    def test_command(self):
        reg = EventRegistration.objects.create(customer=self.ann, event=self.event)
        self._age(reg, 25)
        out = StringIO()

        call_command("expire_pending_registrations", stdout=out)

        reg.refresh_from_db()
        self.assertEqual(reg.status, Registration.Status.FAILED)
        self.assertIn("Expired 1 pending registration(s) older than 24h", out.getvalue())

    def test_command_hours_option(self):
        reg = EventRegistration.objects.create(customer=self.ann, event=self.event)
        self._age(reg, 3)
        out = StringIO()

        call_command("expire_pending_registrations", "--hours", "2", "--dry-run", stdout=out)

        reg.refresh_from_db()
        self.assertEqual(reg.status, Registration.Status.PENDING)
        self.assertIn("DRY RUN: 1", out.getvalue())


class RegistrationSubmitFormTests(TestCase):
    base = {"firstName": "Ann", "lastName": "Lee", "email": "ann@example.com"}

    def test_exactly_one_selector(self):
        both = RegistrationSubmitForm(data={**self.base, "selectedEventId": 1, "selectedCourseId": 2})
        neither = RegistrationSubmitForm(data=self.base)

        self.assertFalse(both.is_valid())
        self.assertFalse(neither.is_valid())

    def test_selection_and_language(self):
        form = RegistrationSubmitForm(data={**self.base, "selectedCourseId": "5", "lang": "ua"})

        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.selection(), (OfferingKind.COURSE, 5))
        self.assertEqual(form.checkout_language(), "uk")

    def test_language_defaults_to_english(self):
        form = RegistrationSubmitForm(data={**self.base, "selectedEventId": 1})

        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.checkout_language(), "en")


def decode_liqpay_data(data: str) -> dict:
    return json.loads(base64.b64decode(data).decode("utf-8"))


@override_settings(**LIQPAY_TEST_SETTINGS)
class SubmitApiTests(TestCase):
    url = "/api/submit/"

    def setUp(self):
        self.event = make_event(max_capacity=2)
        self.course = make_course()

    def post(self, body):
        return self.client.post(self.url, data=json.dumps(body), content_type="application/json")

    def body(self, **extra):
        data = {
            "firstName": "Ann",
            "lastName": "Lee",
            "email": "Ann@Example.com ",
            "number": "067 123 45 67",
            "instagram": "@ann.improv",
            "lang": "en",
        }
        data.update(extra)
        return data

    def test_event_registration_returns_signed_session(self):
        resp = self.post(self.body(selectedEventId=self.event.id))

        self.assertEqual(resp.status_code, 201)
        payload = resp.json()
        customer = Customer.objects.get()
        reg = EventRegistration.objects.get()
        self.assertEqual(customer.email, "ann@example.com")
        self.assertEqual(customer.phone, "+380671234567")
        self.assertEqual(customer.instagram, "ann.improv")
        self.assertEqual(reg.status, Registration.Status.PENDING)
        self.assertEqual(payload["registrationId"], reg.id)
        self.assertEqual(payload["orderId"], f"event_{customer.id}_{self.event.id}")
        self.assertEqual(payload["checkoutUrl"], "https://www.liqpay.ua/api/3/checkout")

        params = decode_liqpay_data(payload["liqpayData"])
        self.assertEqual(params["order_id"], payload["orderId"])
        self.assertEqual(params["amount"], 250)
        self.assertEqual(params["currency"], "UAH")
        self.assertEqual(params["action"], "pay")
        self.assertEqual(params["version"], 3)
        self.assertEqual(params["public_key"], "pub")
        self.assertEqual(params["language"], "en")
        self.assertEqual(params["server_url"], "http://testserver/api/payment-callback/")
        self.assertTrue(params["result_url"].startswith("http://testserver/payments/result/?order_id="))
        self.assertNotIn("sandbox", params)

    def test_signature_matches_data(self):
        from payments.conf import liqpay_client

        payload = self.post(self.body(selectedEventId=self.event.id)).json()

        self.assertTrue(liqpay_client().verify(payload["liqpayData"], payload["liqpaySignature"]))

    def test_course_uses_configured_price_and_language(self):
        with self.settings(IMPROV_COURSE_PRICE_UAH="2800"):
            resp = self.post(self.body(selectedCourseId=self.course.id, lang="ua"))

        self.assertEqual(resp.status_code, 201)
        params = decode_liqpay_data(resp.json()["liqpayData"])
        self.assertEqual(params["amount"], 2800)
        self.assertEqual(params["language"], "uk")
        self.assertTrue(params["order_id"].startswith("course_"))

    def test_existing_customer_is_reused(self):
        make_customer(email="ann@example.com", first_name="Anna", last_name="Lee")

        resp = self.post(self.body(selectedEventId=self.event.id))

        self.assertEqual(resp.status_code, 201)
        self.assertEqual(Customer.objects.count(), 1)
        self.assertEqual(Customer.objects.get().first_name, "Anna")

    def test_full_event(self):
        for i in range(2):
            other = make_customer(email=f"guest{i}@example.com")
            EventRegistration.objects.create(customer=other, event=self.event, status=Registration.Status.PAID)

        resp = self.post(self.body(selectedEventId=self.event.id))

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"], "Sorry, this event is now full.")
        self.assertEqual(EventRegistration.objects.filter(customer__email="ann@example.com").count(), 0)

    def test_already_paid(self):
        ann = make_customer()
        EventRegistration.objects.create(customer=ann, event=self.event, status=Registration.Status.PAID)

        resp = self.post(self.body(selectedEventId=self.event.id))

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"], "You are already registered for this event.")

    def test_retry_replaces_pending(self):
        self.post(self.body(selectedEventId=self.event.id))
        resp = self.post(self.body(selectedEventId=self.event.id))

        self.assertEqual(resp.status_code, 201)
        self.assertEqual(EventRegistration.objects.count(), 1)

    def test_free_event_is_confirmed_without_checkout(self):
        jam = make_event(name="Open jam", price=Decimal("0"))

        with mock.patch("registrations.views.notify_paid") as notify:
            resp = self.post(self.body(selectedEventId=jam.id))

        self.assertEqual(resp.status_code, 201)
        payload = resp.json()
        self.assertTrue(payload["free"])
        self.assertNotIn("liqpayData", payload)
        reg = EventRegistration.objects.get(event=jam)
        self.assertEqual(reg.status, Registration.Status.PAID)
        self.assertEqual(reg.provider_status, "FREE")
        notify.assert_called_once()
        self.assertEqual(notify.call_args.kwargs["amount"], Decimal("0.00"))

    @override_settings(LIQPAY_PRIVATE_KEY="")
    def test_session_failure_marks_registration_failed(self):
        resp = self.post(self.body(selectedEventId=self.event.id))

        self.assertEqual(resp.status_code, 500)
        self.assertNotIn("LIQPAY", resp.json()["error"])
        reg = EventRegistration.objects.get()
        self.assertEqual(reg.status, Registration.Status.FAILED)
        self.assertEqual(reg.provider_status, "INIT_FAILED")

    @override_settings(IMPROV_COURSE_PRICE_UAH="3 000")
    def test_bad_course_price_releases_the_spot(self):
        last_spot = make_course(max_capacity=1)

        resp = self.post(self.body(selectedCourseId=last_spot.id))

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp["Content-Type"], "application/json")
        self.assertIn("error", resp.json())
        reg = CourseRegistration.objects.get(course=last_spot)
        self.assertEqual(reg.status, Registration.Status.FAILED)
        self.assertEqual(reg.provider_status, "INIT_FAILED")
        self.assertFalse(check_capacity(last_spot.id, OfferingKind.COURSE, 1).full)

    @override_settings(LIQPAY_PRIVATE_KEY="")
    def test_release_failure_still_answers_json(self):
        with mock.patch("registrations.views.finalize", side_effect=DatabaseError("store down")):
            resp = self.post(self.body(selectedEventId=self.event.id))

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp["Content-Type"], "application/json")
        self.assertNotIn("store down", resp.json()["error"])

    def test_unknown_offering(self):
        resp = self.post(self.body(selectedEventId=999))

        self.assertEqual(resp.status_code, 500)
        self.assertIn("error", resp.json())

    def test_missing_fields(self):
        resp = self.post({"firstName": "Ann", "selectedEventId": self.event.id})

        self.assertEqual(resp.status_code, 400)
        self.assertIn("email", resp.json()["fields"])
        self.assertFalse(Customer.objects.exists())

    def test_both_selectors(self):
        resp = self.post(self.body(selectedEventId=self.event.id, selectedCourseId=self.course.id))

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Select either an event or a course, not both.")

    def test_invalid_email(self):
        resp = self.post(self.body(email="not-an-email", selectedEventId=self.event.id))

        self.assertEqual(resp.status_code, 400)

    def test_not_json(self):
        resp = self.client.post(self.url, data="nope", content_type="application/json")

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid request body")

    def test_get_not_allowed(self):
        self.assertEqual(self.client.get(self.url).status_code, 405)
