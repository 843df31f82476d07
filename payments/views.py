import logging

from django.http import HttpRequest, JsonResponse
from django.shortcuts import render
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from core.http import client_ip
from registrations.models import offering_model
from registrations.services import latest_registration

from .conf import liqpay_client
from .liqpay import CallbackError
from .orders import OrderReference
from .services import handle_callback


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def liqpay_callback(request: HttpRequest):
    data = (request.POST.get("data") or "").strip()
    signature = (request.POST.get("signature") or "").strip()

    try:
        result = handle_callback(liqpay_client(), data, signature)
    except CallbackError as exc:
        logger.warning("LiqPay callback from %s rejected: %s", client_ip(request), exc)
        return JsonResponse({"error": str(exc)}, status=400)
    except Exception:
        logger.exception("Unhandled error in LiqPay callback")
        return JsonResponse({"error": "An unexpected error occurred."}, status=500)

    logger.info("LiqPay callback %s (%s): %s", result.order_id, result.status, result.outcome)
    return JsonResponse({"status": "ok"}, status=200)


@csrf_exempt
@require_POST
def checkout(request: HttpRequest):
    """Auto-submitting form that hands a session we signed over to LiqPay."""
    data = (request.POST.get("data") or "").strip()
    signature = (request.POST.get("signature") or "").strip()

    client = liqpay_client()
    if not client.verify(data, signature):
        logger.warning("Checkout requested with an unsigned payment session")
        return render(request, "payments/result.html", {"state": "invalid"}, status=400)

    return render(
        request,
        "payments/checkout.html",
        {"checkout_url": client.checkout_url, "data": data, "signature": signature},
    )


@csrf_exempt
@require_http_methods(["GET", "POST"])
def payment_result(request: HttpRequest):
    """Where LiqPay sends the browser back after checkout."""
    raw = (request.GET.get("order_id") or "").strip()
    state = "unknown"
    offering = None

    if raw:
        try:
            reference = OrderReference.parse(raw)
        except ValueError:
            reference = None
        if reference is not None:
            registration = latest_registration(reference.kind, reference.customer_id, reference.offering_id)
            if registration is not None:
                state = registration.status
                offering = registration.offering
            else:
                offering = offering_model(reference.kind).objects.filter(id=reference.offering_id).first()

    return render(request, "payments/result.html", {"state": state, "offering": offering})
