# Overview: Typed failures raised by the catalog and sale engine.

from __future__ import annotations

from .money import format_amount


class PosError(Exception):
    """Base for domain failures surfaced to API callers."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": type(self).__name__, "details": self.details}


class InsufficientStock(PosError):
    """Debit would drive product quantity below zero. Never retried automatically."""
    def __init__(self, product_id: int, requested: int, available: int, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InsufficientPayment(PosError):
    def __init__(self, total_sale: int, received_amount: int):
        super().__init__(
            f"Received amount {format_amount(received_amount)} is less than total {format_amount(total_sale)}",
            details={"total_sale": total_sale, "received_amount": received_amount},
        )
        self.total_sale = total_sale
        self.received_amount = received_amount


class NotFound(PosError):
    def __init__(self, entity_type: str, entity_id):
        super().__init__(
            f"{entity_type.capitalize()} not found",
            details={"entity_type": entity_type, "id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class DuplicateBarcode(PosError):
    def __init__(self, barcode: str):
        super().__init__(f"Barcode {barcode} already exists", details={"barcode": barcode})
        self.barcode = barcode


class PersistenceError(PosError):
    """Store unavailable or transaction aborted; nothing was persisted and the call may be retried."""


HTTP_STATUS = {
    InsufficientStock: 409,
    InsufficientPayment: 409,
    DuplicateBarcode: 409,
    NotFound: 404,
    PersistenceError: 503,
}


def http_status(exc: PosError) -> int:
    for cls in type(exc).__mro__:
        if cls in HTTP_STATUS:
            return HTTP_STATUS[cls]
    return 400
