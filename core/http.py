import json
from typing import Any

from django.http import HttpRequest


# nginx sets these; the first X-Forwarded-For hop is the browser
PROXY_HEADERS = ("HTTP_X_FORWARDED_FOR", "HTTP_X_REAL_IP")


def client_ip(request: HttpRequest) -> str:
    """Caller address for log lines, "-" when nothing usable is set."""
    for header in PROXY_HEADERS + ("REMOTE_ADDR",):
        first_hop = (request.META.get(header) or "").split(",")[0].strip()
        if first_hop:
            return first_hop
    return "-"


def json_body(request: HttpRequest) -> dict[str, Any] | None:
    """Decode a JSON object body; None when the body is not a JSON object."""
    try:
        data = json.loads((request.body or b"").decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    return data
