from unittest import mock

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase

from core.exceptions import StoreError

from .models import Customer
from .services import clean_instagram, normalize_email, normalize_phone, resolve_customer


class NormalizeTests(SimpleTestCase):
    def test_email(self):
        self.assertEqual(normalize_email("  Ann.Lee@Example.COM "), "ann.lee@example.com")
        self.assertEqual(normalize_email(None), "")

    def test_ukrainian_phone(self):
        self.assertEqual(normalize_phone("+38 (067) 123-45-67"), "+380671234567")
        self.assertEqual(normalize_phone("067 123 45 67"), "+380671234567")
        self.assertEqual(normalize_phone("380671234567"), "+380671234567")

    def test_other_phone(self):
        self.assertEqual(normalize_phone("+48 501 234 567"), "+48501234567")
        self.assertEqual(normalize_phone(""), "")

    def test_instagram(self):
        self.assertEqual(clean_instagram("@ann.improv"), "ann.improv")
        self.assertEqual(clean_instagram("  ann  "), "ann")
        self.assertEqual(clean_instagram(""), "")


class ResolveCustomerTests(TestCase):
    def test_creates_customer(self):
        customer_id = resolve_customer(
            "Ann@Example.com", " Ann ", "Lee", phone="0671234567", instagram="@ann",
        )

        customer = Customer.objects.get(id=customer_id)
        self.assertEqual(customer.email, "ann@example.com")
        self.assertEqual(customer.first_name, "Ann")
        self.assertEqual(customer.phone, "+380671234567")
        self.assertEqual(customer.instagram, "ann")

    def test_same_email_same_customer(self):
        first = resolve_customer("ann@example.com", "Ann", "Lee")
        second = resolve_customer("ANN@example.com ", "Anna", "Lee-Smith", phone="0500000000")

        self.assertEqual(first, second)
        customer = Customer.objects.get()
        self.assertEqual(customer.first_name, "Ann")
        self.assertEqual(customer.phone, "")

    def test_invalid_email(self):
        with self.assertRaises(ValidationError):
            resolve_customer("not-an-email", "Ann", "Lee")
        self.assertFalse(Customer.objects.exists())

    def test_names_required(self):
        with self.assertRaises(ValidationError):
            resolve_customer("ann@example.com", "  ", "Lee")

    def test_store_error(self):
        with mock.patch.object(Customer.objects, "get_or_create", side_effect=DatabaseError("gone")):
            with self.assertRaises(StoreError) as ctx:
                resolve_customer("ann@example.com", "Ann", "Lee")

        self.assertEqual(ctx.exception.status, 500)
        self.assertNotIn("gone", ctx.exception.public_message)
