import logging

from django.core.exceptions import ValidationError
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.exceptions import RegistrationError
from core.http import client_ip, json_body
from customers.services import resolve_customer
from payments.conf import course_price, liqpay_client, result_url, server_url
from payments.orders import OrderReference
from payments.services import build_session, notify_paid, session_amount

from .forms import RegistrationSubmitForm
from .models import Registration
from .services import finalize, submit_registration


logger = logging.getLogger(__name__)

GENERIC_ERROR = "An unexpected error occurred. Please try again later."


def _json_error(message: str, status: int = 400, **extra):
    return JsonResponse({"error": message, **extra}, status=status)


def _form_error_message(form: RegistrationSubmitForm) -> str:
    non_field = form.non_field_errors()
    if non_field:
        return str(non_field[0])
    return "Missing or invalid required fields"


def _release(reference: OrderReference) -> None:
    """Fail the pending row of an order that never reached checkout, freeing its spot."""
    try:
        finalize(reference, Registration.Status.FAILED, provider_status="INIT_FAILED")
    except Exception:
        logger.exception("Could not release registration for order %s", reference)


@csrf_exempt
@require_POST
def submit(request: HttpRequest):
    """Register a customer for an event or a course and return the signed LiqPay session."""
    body = json_body(request)
    if body is None:
        logger.warning("Registration submit with an unreadable body from %s", client_ip(request))
        return _json_error("Invalid request body")

    form = RegistrationSubmitForm(data=body)
    if not form.is_valid():
        logger.warning("Registration submit failed validation: %s", form.errors.as_json())
        return _json_error(_form_error_message(form), fields=form.errors.get_json_data())

    kind, offering_id = form.selection()
    cd = form.cleaned_data
    logger.info("Registration submit %s#%s for %s from %s", kind, offering_id, cd["email"], client_ip(request))

    try:
        customer_id = resolve_customer(
            cd["email"],
            cd["firstName"],
            cd["lastName"],
            phone=cd.get("number") or None,
            instagram=cd.get("instagram") or None,
        )
        result = submit_registration(customer_id, offering_id, kind)
    except ValidationError as exc:
        return _json_error(" ".join(exc.messages) or "Invalid input")
    except RegistrationError as exc:
        if exc.status >= 500:
            logger.error("Registration %s#%s failed: %s", kind, offering_id, exc)
        else:
            logger.warning("Registration %s#%s refused: %s", kind, offering_id, exc)
        return _json_error(exc.public_message, status=exc.status)
    except Exception:
        logger.exception("Unhandled error during registration submit")
        return _json_error(GENERIC_ERROR, status=500)

    registration = result.registration
    offering = registration.offering
    reference = OrderReference(kind=str(kind), customer_id=customer_id, offering_id=offering.id)

    try:
        amount = session_amount(offering, kind, course_price())
    except ArithmeticError:
        logger.exception("Bad price for %s#%s (IMPROV_COURSE_PRICE_UAH=%r)", kind, offering.id, course_price())
        _release(reference)
        return _json_error(GENERIC_ERROR, status=500)

    # free jams need no checkout
    if amount <= 0:
        try:
            confirmed = finalize(reference, Registration.Status.PAID, provider_status="FREE")
        except Exception:
            logger.exception("Could not confirm free registration %s", reference)
            return _json_error(GENERIC_ERROR, status=500)
        if confirmed.newly_paid:
            notify_paid(confirmed.registration, reference, amount=amount)
        return JsonResponse(
            {
                "message": "Registration confirmed.",
                "registrationId": registration.id,
                "orderId": str(reference),
                "free": True,
            },
            status=201,
        )

    try:
        session = build_session(
            liqpay_client(),
            customer_id,
            offering,
            kind,
            result_url=result_url(request, str(reference)),
            server_url=server_url(request),
            language=form.checkout_language(),
            course_price=course_price(),
        )
    except Exception:
        logger.exception("Could not build LiqPay session for order %s", reference)
        _release(reference)
        return _json_error(GENERIC_ERROR, status=500)

    return JsonResponse(
        {
            "message": "Registration successful, proceed to payment.",
            "registrationId": registration.id,
            "orderId": session.order_id,
            "liqpayData": session.data,
            "liqpaySignature": session.signature,
            "checkoutUrl": session.checkout_url,
        },
        status=201,
    )
