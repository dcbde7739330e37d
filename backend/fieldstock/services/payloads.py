# Overview: Coercion helpers for workflow request payloads.

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from ..errors import ValidationError
from ..time_utils import parse_iso_date, today


def clean_str(value) -> Optional[str]:
    """Strip a free-text field; blank becomes None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def positive_int(value, label: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer")
    if number < 1:
        raise ValidationError(f"{label} must be positive")
    return number


def optional_int(value, label: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer")


def parse_price(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid price: {value}")
    if price < 0:
        raise ValidationError("Price cannot be negative")
    return price


def require_body(payload) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be an object")
    return payload


def require_items(payload: dict) -> list[dict]:
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {index} must be an object")
    return items


def serial_list(item: dict, index: int) -> list[str]:
    """Serial numbers named by a line (`serial_numbers` list, or a single `serial_number`)."""
    raw = item.get("serial_numbers")
    if raw is None:
        raw = [item["serial_number"]] if item.get("serial_number") else []
    if not isinstance(raw, list):
        raise ValidationError(f"Item {index}: serial_numbers must be a list")
    serials = [clean_str(s) for s in raw]
    if any(s is None for s in serials):
        raise ValidationError(f"Item {index}: empty serial number")
    if len(set(serials)) != len(serials):
        raise ValidationError(f"Item {index}: duplicate serial numbers")
    return serials


def business_date(value, label: str) -> date:
    """Header date from the payload; today when absent."""
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an ISO date (YYYY-MM-DD)")
    return parsed or today()
