"""Actor identities supplied by the identity collaborator, and party checks."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from orderflow.models import Order
from orderflow.utils.errors import Forbidden


class ActorRole(str, Enum):
    BUYER = "buyer"
    SUPPLIER = "supplier"
    OPERATOR = "operator"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Trusted caller identity; the engine only checks party membership."""

    id: str
    role: ActorRole

    @property
    def label(self) -> str:
        return f"{self.role.value}:{self.id}"

    @classmethod
    def system(cls, name: str = "engine") -> "Actor":
        return cls(id=name, role=ActorRole.SYSTEM)


def _deny(actor: Actor, order: Order, required: str) -> Forbidden:
    return Forbidden(
        "Actor is not allowed to perform this action on the order.",
        details={"order_id": order.id, "actor": actor.label, "required": required},
    )


def require_buyer(order: Order, actor: Actor) -> None:
    if actor.role != ActorRole.BUYER or actor.id != order.buyer_id:
        raise _deny(actor, order, "buyer")


def require_supplier(order: Order, actor: Actor) -> None:
    if actor.role != ActorRole.SUPPLIER or actor.id != order.supplier_id:
        raise _deny(actor, order, "supplier")


def require_operator(order: Order, actor: Actor) -> None:
    if actor.role != ActorRole.OPERATOR:
        raise _deny(actor, order, "operator")


def require_party(order: Order, actor: Actor, *roles: ActorRole) -> None:
    """Accept any of ``roles``; buyers and suppliers must own the order."""

    if actor.role not in roles:
        raise _deny(actor, order, "|".join(role.value for role in roles))
    if actor.role == ActorRole.BUYER and actor.id != order.buyer_id:
        raise _deny(actor, order, "buyer")
    if actor.role == ActorRole.SUPPLIER and actor.id != order.supplier_id:
        raise _deny(actor, order, "supplier")


__all__ = [
    "Actor",
    "ActorRole",
    "require_buyer",
    "require_supplier",
    "require_operator",
    "require_party",
]
