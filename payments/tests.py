import base64
import hashlib
import json
import os
from datetime import time, timedelta
from decimal import Decimal
from unittest import mock

from django.conf import settings
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from customers.models import Customer
from offerings.models import Course, Event
from registrations.models import CourseRegistration, EventRegistration, Registration
from registrations.services import EXPIRED_MARKER

from .conf import liqpay_client
from .liqpay import LiqPayClient, PayloadMalformed
from .models import PaymentWebhookLog
from .orders import OrderReference
from .services import map_status, session_amount


LIQPAY_TEST_SETTINGS = {
    "LIQPAY_PUBLIC_KEY": "pub",
    "LIQPAY_PRIVATE_KEY": "priv",
    "LIQPAY_SANDBOX": False,
    "TELEGRAM_NOTIFICATIONS": False,
}


class LiqPayClientTests(SimpleTestCase):
    def setUp(self):
        self.liqpay = LiqPayClient("pub", "priv")

    def test_signature(self):
        data = self.liqpay.encode({"order_id": "event_1_2", "status": "success"})
        expected = base64.b64encode(hashlib.sha1(f"priv{data}priv".encode()).digest()).decode()

        self.assertEqual(self.liqpay.sign(data), expected)
        self.assertTrue(self.liqpay.verify(data, expected))

    def test_verify_rejects_tampering(self):
        data = self.liqpay.encode({"order_id": "event_1_2", "status": "success"})
        signature = self.liqpay.sign(data)
        forged = self.liqpay.encode({"order_id": "event_1_3", "status": "success"})

        self.assertFalse(self.liqpay.verify(forged, signature))
        self.assertFalse(self.liqpay.verify(data, ""))
        self.assertFalse(LiqPayClient("pub", "other").verify(data, signature))

    def test_nothing_verifies_without_private_key(self):
        unconfigured = LiqPayClient("", "")
        data = unconfigured.encode({"status": "success"})

        self.assertFalse(unconfigured.verify(data, unconfigured.sign(data)))

    def test_checkout_params(self):
        signed = self.liqpay.checkout_params({"action": "pay", "amount": 100, "order_id": "event_1_2"})
        params = json.loads(base64.b64decode(signed["data"]))

        self.assertEqual(params["version"], 3)
        self.assertEqual(params["public_key"], "pub")
        self.assertNotIn("sandbox", params)
        self.assertEqual(signed["signature"], self.liqpay.sign(signed["data"]))

    def test_checkout_params_sandbox(self):
        sandbox = LiqPayClient("pub", "priv", sandbox=True)
        params = json.loads(base64.b64decode(sandbox.checkout_params({"action": "pay"})["data"]))

        self.assertEqual(params["sandbox"], 1)

    def test_checkout_params_need_keys(self):
        with self.assertRaises(ValueError):
            LiqPayClient("pub", "").checkout_params({"action": "pay"})

    def test_decode_keeps_non_ascii(self):
        data = self.liqpay.encode({"description": "Імпров джем"})

        self.assertEqual(self.liqpay.decode(data)["description"], "Імпров джем")

    def test_decode_malformed(self):
        with self.assertRaises(PayloadMalformed):
            self.liqpay.decode("%%% not base64 %%%")
        with self.assertRaises(PayloadMalformed):
            self.liqpay.decode(base64.b64encode(b"not json").decode())
        with self.assertRaises(PayloadMalformed):
            self.liqpay.decode(base64.b64encode(b"[1, 2]").decode())


class OrderReferenceTests(SimpleTestCase):
    def test_format(self):
        self.assertEqual(str(OrderReference(kind="course", customer_id=7, offering_id=3)), "course_7_3")

    def test_parse(self):
        ref = OrderReference.parse("event_12_5")

        self.assertEqual(ref, OrderReference(kind="event", customer_id=12, offering_id=5))

    def test_parse_rejects_garbage(self):
        for raw in ("", "event_1", "event_1_2_3", "party_1_2", "event_a_2", "event_1_-2", "event_0_2"):
            with self.subTest(raw=raw):
                with self.assertRaises(ValueError):
                    OrderReference.parse(raw)


class StatusMappingTests(SimpleTestCase):
    def test_map_status(self):
        self.assertEqual(map_status("success"), Registration.Status.PAID)
        self.assertEqual(map_status("subscribed"), Registration.Status.PAID)
        self.assertEqual(map_status("failure"), Registration.Status.FAILED)
        self.assertEqual(map_status("error"), Registration.Status.FAILED)
        self.assertIsNone(map_status("processing"))
        self.assertIsNone(map_status("wait_secure"))

    def test_sandbox_status_only_counts_in_sandbox(self):
        self.assertIsNone(map_status("sandbox"))
        self.assertEqual(map_status("sandbox", sandbox=True), Registration.Status.PAID)

    def test_sandbox_is_off_unless_enabled(self):
        if "LIQPAY_SANDBOX" in os.environ:
            self.skipTest("LIQPAY_SANDBOX is set in the environment")

        self.assertFalse(settings.LIQPAY_SANDBOX)
        self.assertFalse(liqpay_client().sandbox)


def make_customer(email="ann@example.com"):
    return Customer.objects.create(email=email, first_name="Ann", last_name="Lee")


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


class SessionAmountTests(TestCase):
    def test_event_uses_its_price(self):
        event = make_event(price=Decimal("199.5"))

        self.assertEqual(session_amount(event, "event", "1000"), Decimal("199.50"))

    def test_course_price_setting_overrides_course_price(self):
        course = Course.objects.create(
            name="Basics", type="beginner", day_of_week=Course.DayOfWeek.MONDAY,
            time=time(19, 0), start_date=timezone.localdate(), price=Decimal("3000"),
        )

        self.assertEqual(session_amount(course, "course", "2800"), Decimal("2800.00"))
        self.assertEqual(session_amount(course, "course", None), Decimal("3000.00"))


@override_settings(**LIQPAY_TEST_SETTINGS)
class LiqPayCallbackTests(TestCase):
    url = "/api/payment-callback/"

    def setUp(self):
        self.liqpay = LiqPayClient("pub", "priv")
        self.ann = make_customer()
        self.event = make_event()
        self.registration = EventRegistration.objects.create(customer=self.ann, event=self.event)
        self.order_id = f"event_{self.ann.id}_{self.event.id}"

    def callback(self, **params):
        data = self.liqpay.encode(params)
        return self.client.post(self.url, {"data": data, "signature": self.liqpay.sign(data)})

    def test_success_marks_registration_paid(self):
        with mock.patch("payments.services.notify_registration_paid") as notify:
            resp = self.callback(
                order_id=self.order_id, status="success", payment_id=123456, amount=250, currency="UAH",
            )

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PAID)
        self.assertEqual(self.registration.provider_status, "success")
        self.assertEqual(self.registration.payment_id, "123456")
        self.assertIsNotNone(self.registration.paid_at)
        notify.assert_called_once()
        self.assertEqual(notify.call_args.kwargs["active_count"], 1)
        self.assertEqual(notify.call_args.kwargs["amount"], 250)
        self.assertEqual(notify.call_args.kwargs["currency"], "UAH")

        log = PaymentWebhookLog.objects.get()
        self.assertEqual(log.order_id, self.order_id)
        self.assertEqual(log.status, "success")
        self.assertEqual(log.payload["payment_id"], 123456)

    def test_replayed_success_changes_nothing(self):
        with mock.patch("payments.services.notify_registration_paid") as notify:
            self.callback(order_id=self.order_id, status="success")
            self.registration.refresh_from_db()
            paid_at = self.registration.paid_at

            resp = self.callback(order_id=self.order_id, status="success")

        self.assertEqual(resp.status_code, 200)
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.paid_at, paid_at)
        self.assertEqual(notify.call_count, 1)
        self.assertEqual(PaymentWebhookLog.objects.count(), 2)

    def test_failure_keeps_registration_as_failed(self):
        resp = self.callback(order_id=self.order_id, status="failure")

        self.assertEqual(resp.status_code, 200)
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.FAILED)
        self.assertEqual(self.registration.provider_status, "failure")

    def test_failure_after_success_is_ignored(self):
        self.callback(order_id=self.order_id, status="success")

        resp = self.callback(order_id=self.order_id, status="error")

        self.assertEqual(resp.status_code, 200)
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PAID)

    def test_intermediate_status_leaves_pending(self):
        resp = self.callback(order_id=self.order_id, status="processing")

        self.assertEqual(resp.status_code, 200)
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PENDING)
        self.assertEqual(PaymentWebhookLog.objects.count(), 1)

    def test_sandbox_status_outside_sandbox_mode(self):
        self.callback(order_id=self.order_id, status="sandbox")

        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PENDING)

    @override_settings(LIQPAY_SANDBOX=True)
    def test_sandbox_status_in_sandbox_mode(self):
        self.callback(order_id=self.order_id, status="sandbox")

        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PAID)

    def test_late_success_for_expired_registration(self):
        EventRegistration.objects.filter(id=self.registration.id).update(
            status=Registration.Status.FAILED, provider_status=EXPIRED_MARKER,
        )

        self.callback(order_id=self.order_id, status="success")

        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PAID)

    def test_course_order(self):
        course = Course.objects.create(
            name="Basics", type="beginner", day_of_week=Course.DayOfWeek.MONDAY,
            time=time(19, 0), start_date=timezone.localdate(), price=Decimal("3000"),
        )
        reg = CourseRegistration.objects.create(customer=self.ann, course=course)

        self.callback(order_id=f"course_{self.ann.id}_{course.id}", status="success")

        reg.refresh_from_db()
        self.registration.refresh_from_db()
        self.assertEqual(reg.status, Registration.Status.PAID)
        self.assertEqual(self.registration.status, Registration.Status.PENDING)

    def test_unknown_registration_is_still_acknowledged(self):
        resp = self.callback(order_id=f"event_{self.ann.id}_9999", status="success")

        self.assertEqual(resp.status_code, 200)

    def test_store_failure_is_still_acknowledged(self):
        with mock.patch("payments.services.finalize", side_effect=RuntimeError("db down")):
            resp = self.callback(order_id=self.order_id, status="success")

        self.assertEqual(resp.status_code, 200)
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PENDING)

    def test_notification_failure_does_not_break_callback(self):
        with mock.patch("payments.services.notify_registration_paid", side_effect=RuntimeError("tg down")):
            resp = self.callback(order_id=self.order_id, status="success")

        self.assertEqual(resp.status_code, 200)
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PAID)

    def test_invalid_signature(self):
        data = self.liqpay.encode({"order_id": self.order_id, "status": "success"})

        resp = self.client.post(self.url, {"data": data, "signature": "forged"})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid signature")
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PENDING)
        self.assertFalse(PaymentWebhookLog.objects.exists())

    def test_missing_fields(self):
        self.assertEqual(self.client.post(self.url, {}).status_code, 400)
        self.assertEqual(self.client.post(self.url, {"data": "abc"}).status_code, 400)

    def test_payload_without_status(self):
        resp = self.callback(order_id=self.order_id)

        self.assertEqual(resp.status_code, 400)

    def test_malformed_order_id(self):
        resp = self.callback(order_id="order-42", status="success")

        self.assertEqual(resp.status_code, 400)
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, Registration.Status.PENDING)

    def test_signed_garbage(self):
        data = base64.b64encode(b"not json").decode()

        resp = self.client.post(self.url, {"data": data, "signature": self.liqpay.sign(data)})

        self.assertEqual(resp.status_code, 400)

    def test_get_not_allowed(self):
        self.assertEqual(self.client.get(self.url).status_code, 405)


@override_settings(**LIQPAY_TEST_SETTINGS)
class CheckoutAndResultViewTests(TestCase):
    def setUp(self):
        self.liqpay = LiqPayClient("pub", "priv")
        self.ann = make_customer()
        self.event = make_event()
        self.order_id = f"event_{self.ann.id}_{self.event.id}"

    def test_checkout_form_posts_to_liqpay(self):
        signed = self.liqpay.checkout_params({"action": "pay", "amount": 250, "order_id": self.order_id})

        resp = self.client.post("/payments/checkout/", signed)

        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "https://www.liqpay.ua/api/3/checkout")
        self.assertContains(resp, signed["data"])

    def test_checkout_refuses_unsigned_session(self):
        resp = self.client.post("/payments/checkout/", {"data": "abc", "signature": "forged"})

        self.assertEqual(resp.status_code, 400)
        self.assertContains(resp, 'data-state="invalid"', status_code=400)

    def test_result_shows_registration_state(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event, status=Registration.Status.PAID)

        resp = self.client.get("/payments/result/", {"order_id": self.order_id})

        self.assertContains(resp, 'data-state="paid"')
        self.assertContains(resp, "Friday jam")

    def test_result_pending(self):
        EventRegistration.objects.create(customer=self.ann, event=self.event)

        resp = self.client.get("/payments/result/", {"order_id": self.order_id})

        self.assertContains(resp, 'data-state="pending"')

    def test_result_accepts_post_from_liqpay(self):
        resp = self.client.post(f"/payments/result/?order_id={self.order_id}")

        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "Friday jam")

    def test_result_without_order(self):
        resp = self.client.get("/payments/result/", {"order_id": "garbage"})

        self.assertContains(resp, 'data-state="unknown"')


class AdminSmokeTests(TestCase):
    def setUp(self):
        admin = get_user_model().objects.create_superuser("admin", "admin@example.com", "pass12345")
        self.client.force_login(admin)
        ann = make_customer()
        event = make_event()
        EventRegistration.objects.create(customer=ann, event=event)
        PaymentWebhookLog.objects.create(order_id="event_1_1", status="success", payload={"status": "success"})

    def test_changelists_render(self):
        for url in (
            "/admin/customers/customer/",
            "/admin/offerings/event/",
            "/admin/offerings/course/",
            "/admin/registrations/eventregistration/",
            "/admin/registrations/courseregistration/",
            "/admin/payments/paymentwebhooklog/",
        ):
            with self.subTest(url=url):
                self.assertEqual(self.client.get(url).status_code, 200)
