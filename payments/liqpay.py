import base64
import hashlib
import hmac
import json


CHECKOUT_URL = "https://www.liqpay.ua/api/3/checkout"
API_VERSION = 3


class CallbackError(Exception):
    """Callback from LiqPay that must not be trusted."""


class SignatureInvalid(CallbackError):
    pass


class PayloadMalformed(CallbackError):
    pass


class LiqPayClient:
    def __init__(self, public_key, private_key, *, sandbox=False, currency="UAH", checkout_url=CHECKOUT_URL):
        self.public_key = public_key
        self.private_key = private_key
        self.sandbox = sandbox
        self.currency = currency
        self.checkout_url = checkout_url

    def encode(self, params: dict) -> str:
        raw = json.dumps(params, ensure_ascii=False, sort_keys=True)
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def sign(self, data: str) -> str:
        """LiqPay signature: base64(sha1(private_key + data + private_key))."""
        raw = f"{self.private_key}{data}{self.private_key}".encode("utf-8")
        return base64.b64encode(hashlib.sha1(raw).digest()).decode("ascii")

    def checkout_params(self, params: dict) -> dict[str, str]:
        """Signed `data`/`signature` pair for the hosted checkout form."""
        if not self.public_key or not self.private_key:
            raise ValueError("LIQPAY_PUBLIC_KEY and LIQPAY_PRIVATE_KEY are not configured.")

        payload = {
            "version": API_VERSION,
            "public_key": self.public_key,
            **params,
        }
        if self.sandbox:
            payload["sandbox"] = 1

        data = self.encode(payload)
        return {"data": data, "signature": self.sign(data)}

    def verify(self, data: str, signature: str) -> bool:
        """Check a callback signature against a fresh one over `data`.

        Without a configured private key nothing verifies.
        """
        if not self.private_key or not data or not signature:
            return False
        expected = self.sign(data)
        return hmac.compare_digest(expected.encode("ascii"), str(signature).strip().encode("utf-8"))

    def decode(self, data: str) -> dict:
        try:
            raw = base64.b64decode(data, validate=True).decode("utf-8")
            payload = json.loads(raw)
        except ValueError as exc:
            # binascii.Error, UnicodeDecodeError and JSONDecodeError are all ValueErrors
            raise PayloadMalformed(f"Callback data is not base64 JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise PayloadMalformed("Callback data is not a JSON object")
        return payload
