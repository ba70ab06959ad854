"""Delivery confirmation requirements (PIN vs photo)."""
from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

from orderflow.config import get_settings
from orderflow.models import ConfirmationMethod, Delivery, Order


def confirmation_method_for(total: Any, threshold: Decimal | None = None) -> ConfirmationMethod:
    """High-value orders are self-certified by PIN; the rest need photo proof."""

    if threshold is None:
        threshold = get_settings().PIN_CONFIRMATION_THRESHOLD
    return ConfirmationMethod.PIN if Decimal(str(total)) >= Decimal(str(threshold)) else ConfirmationMethod.PHOTO


def generate_pin(length: int | None = None) -> str:
    length = length or get_settings().PIN_LENGTH
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def is_well_formed_pin(value: Any, length: int | None = None) -> bool:
    length = length or get_settings().PIN_LENGTH
    return isinstance(value, str) and len(value) == length and value.isascii() and value.isdigit()


def prepare_delivery(order: Order) -> Delivery:
    """Create (or complete) the order's confirmation requirement. Idempotent."""

    settings = get_settings()
    delivery = order.delivery
    if delivery is None:
        delivery = Delivery(
            method=confirmation_method_for(order.total, settings.PIN_CONFIRMATION_THRESHOLD),
            pin_attempts=0,
            max_pin_attempts=settings.PIN_MAX_ATTEMPTS,
        )
        order.delivery = delivery
    if delivery.method == ConfirmationMethod.PIN and delivery.pin is None:
        delivery.pin = generate_pin(settings.PIN_LENGTH)
    return delivery


__all__ = ["confirmation_method_for", "generate_pin", "is_well_formed_pin", "prepare_delivery"]
