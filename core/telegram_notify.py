import logging

import requests
from django.conf import settings
from django.utils.html import escape


logger = logging.getLogger(__name__)


def tg_send(text: str):
    if not getattr(settings, "TELEGRAM_NOTIFICATIONS", False):
        return

    token = getattr(settings, "TELEGRAM_BOT_TOKEN", "")
    chat_id = getattr(settings, "TELEGRAM_CHAT_ID", "")

    if not token or not chat_id:
        return

    url = f"https://api.telegram.org/bot{token}/sendMessage"
    payload = {
        "chat_id": chat_id,
        "text": text,
        "parse_mode": "HTML",
        "disable_web_page_preview": True,
    }

    try:
        requests.post(url, json=payload, timeout=5)
    except requests.RequestException:
        logger.warning("Telegram message was not sent due to a request error")


def occupancy_line(current: int, capacity):
    """
    Returns a line like: 👥 Participants: 3 / 10
    Without a capacity only the current number is shown.
    """
    if capacity in (None, "", 0):
        return f"👥 Participants: <b>{current}</b>"
    return f"👥 Participants: <b>{current} / {capacity}</b>"


def occupancy_note(current: int, capacity):
    if capacity in (None, "", 0):
        return ""

    left = capacity - current
    if left <= 0:
        return "🚫 <b>Fully booked</b>"
    if left == 1:
        return "⚠️ <b>1 spot left</b>"
    if left == 2:
        return "⚠️ <b>2 spots left</b>"
    return ""


def _fmt_customer(customer) -> str:
    if not customer:
        return "—"
    full_name = f"{customer.first_name} {customer.last_name}".strip()
    return escape(full_name or customer.email or "—")


def _fmt_when(offering) -> str:
    date = getattr(offering, "date", None) or getattr(offering, "start_date", None)
    day_of_week = (getattr(offering, "day_of_week", "") or "").strip()
    time = getattr(offering, "time", None)

    parts = []
    if day_of_week:
        parts.append(f"every {day_of_week}")
    if date:
        parts.append(date.strftime("%d.%m.%Y"))
    if time:
        parts.append(time.strftime("%H:%M"))
    return escape(" ".join(parts)) or "—"


def notify_registration_paid(*, registration, active_count: int, amount=None, currency: str = "UAH"):
    """`amount` is what was actually charged; without it the offering price is shown."""
    offering = registration.offering
    charged = offering.price if amount in (None, "") else amount
    customer = registration.customer
    phone = (customer.phone or "").strip() or "—"
    kind_label = "Course" if registration.kind == "course" else "Event"
    occ_note = occupancy_note(active_count, offering.max_capacity)
    occ_note_line = f"\n{occ_note}" if occ_note else ""
    tg_send(
        "💳 <b>Registration paid</b>\n"
        f"Customer: <b>{_fmt_customer(customer)}</b>\n"
        f"E-mail: <b>{escape(customer.email)}</b>\n"
        f"Phone: <b>{escape(phone)}</b>\n"
        f"{kind_label}: <b>{escape(offering.name)}</b>\n"
        f"When: <b>{_fmt_when(offering)}</b>\n"
        f"Amount: <b>{escape(str(charged))} {escape(currency or 'UAH')}</b>\n"
        f"{occupancy_line(active_count, offering.max_capacity)}{occ_note_line}"
    )
