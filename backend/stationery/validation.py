from __future__ import annotations

from typing import Any, Iterable


# Catalog kinds: each owns an independent ledger per location
CATALOG_STATIONERY = "STATIONERY"
CATALOG_GENERAL = "GENERAL"
CATALOGS = (CATALOG_STATIONERY, CATALOG_GENERAL)

# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


class StockError(Exception):
    """
    Base class for every failure the stock core reports to its callers.

    kind is the stable error name exposed to the request layer;
    status_code is the HTTP status the request layer maps it to.
    """
    kind = "StockError"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": str(self), "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(StockError):
    """400-level input problem."""
    kind = "ValidationError"


class NotFoundError(StockError):
    kind = "NotFound"
    status_code = 404


class ProductNotFound(NotFoundError):
    kind = "ProductNotFound"


class LocationNotFound(NotFoundError):
    kind = "LocationNotFound"


class InvalidSetConfiguration(StockError):
    """Set product with no components, or a component that cannot be loaded."""
    kind = "InvalidSetConfiguration"


class LocationRequired(StockError):
    """Purchase could not be attributed to any location."""
    kind = "LocationRequired"


class InsufficientStock(StockError):
    kind = "InsufficientStock"


class StockConflictError(StockError):
    """A guarded decrement lost a race; the caller may resubmit."""
    kind = "StockConflict"
    status_code = 409


class InvalidState(StockError):
    kind = "InvalidState"
    status_code = 409


class InvalidStateTransition(InvalidState):
    kind = "InvalidStateTransition"


def coerce_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion for request payload values.

    Accepts ints and plain digit strings; rejects bools, floats with a
    fractional part and scientific notation.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal")
        result = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return result


def coerce_bool(value: Any, field: str, default: bool | None = None) -> bool:
    if value is None:
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", ""):
        return False
    if isinstance(value, int):
        return bool(value)
    raise ValidationError(f"{field} must be a boolean")


def coerce_price_cents(value: Any, field: str = "price_cents") -> int:
    cents = coerce_int(value, field, minimum=0)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_PRICE_CENTS}")
    return cents


def require_catalog(value: str | None) -> str:
    catalog = (value or CATALOG_STATIONERY).upper()
    if catalog not in CATALOGS:
        raise ValidationError(f"Unknown catalog: {value}")
    return catalog


def one_or_many(payload: Any, field: str = "items") -> list[dict]:
    """
    Normalize a payload that may hold a single item or a list of items.

    A bare mapping becomes a one-element list; an empty or missing payload
    is rejected.
    """
    if payload is None:
        raise ValidationError(f"{field} is required")
    if isinstance(payload, dict):
        items: Iterable = [payload]
    elif isinstance(payload, (list, tuple)):
        items = payload
    else:
        raise ValidationError(f"{field} must be an object or a list of objects")

    normalized = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError(f"Each entry in {field} must be an object")
        normalized.append(item)

    if not normalized:
        raise ValidationError(f"At least one entry in {field} is required")
    return normalized
