from dataclasses import dataclass

from registrations.models import OfferingKind


SEPARATOR = "_"


@dataclass(frozen=True)
class OrderReference:
    """LiqPay order_id: `{kind}_{customer_id}_{offering_id}`.

    The only link from a payment callback back to its registration.
    """

    kind: str
    customer_id: int
    offering_id: int

    def __str__(self) -> str:
        return SEPARATOR.join((str(self.kind), str(self.customer_id), str(self.offering_id)))

    @classmethod
    def parse(cls, raw: str) -> "OrderReference":
        parts = str(raw or "").strip().split(SEPARATOR)
        if len(parts) != 3:
            raise ValueError(f"Order reference must have 3 parts: {raw!r}")

        kind, customer_id, offering_id = parts
        if kind not in OfferingKind.values:
            raise ValueError(f"Unknown offering kind in order reference: {raw!r}")
        if not customer_id.isdigit() or not offering_id.isdigit():
            raise ValueError(f"Order reference ids must be numeric: {raw!r}")
        if int(customer_id) <= 0 or int(offering_id) <= 0:
            raise ValueError(f"Order reference ids must be positive: {raw!r}")

        return cls(kind=kind, customer_id=int(customer_id), offering_id=int(offering_id))
