from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpRequest
from django.urls import reverse

from .liqpay import LiqPayClient


def _configured(name: str) -> str:
    return str(getattr(settings, name, "") or "").strip()


def liqpay_client() -> LiqPayClient:
    return LiqPayClient(
        settings.LIQPAY_PUBLIC_KEY,
        settings.LIQPAY_PRIVATE_KEY,
        sandbox=settings.LIQPAY_SANDBOX,
        currency=settings.LIQPAY_CURRENCY or "UAH",
    )


def course_price():
    return getattr(settings, "IMPROV_COURSE_PRICE_UAH", None)


def server_url(request: HttpRequest) -> str:
    configured = _configured("LIQPAY_SERVER_URL")
    if configured:
        return configured
    return request.build_absolute_uri(reverse("api_payment_callback"))


def result_url(request: HttpRequest, order_id: str) -> str:
    base = _configured("LIQPAY_RESULT_URL") or request.build_absolute_uri(reverse("payments:result"))
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode({'order_id': order_id})}"
