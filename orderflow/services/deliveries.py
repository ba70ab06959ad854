"""Delivery confirmation protocol: PIN entry, photo proof, buyer decision."""
import hmac
import logging

from sqlalchemy.orm import Session

from orderflow.config import get_settings
from orderflow.models import ConfirmationMethod, Delivery, Dispute, DisputeParty, DisputeReason, OrderStatus
from orderflow.services import disputes as dispute_service
from orderflow.services.actors import Actor, ActorRole, require_buyer, require_party, require_supplier
from orderflow.services.confirmation import is_well_formed_pin, prepare_delivery
from orderflow.services.locks import get_order, locked_order
from orderflow.services.orders import apply_transition
from orderflow.utils.audit import log_audit
from orderflow.utils.errors import InvalidTransition, NotFound, PinAttemptsExhausted, PinMismatch, ValidationError
from orderflow.utils.time import utcnow

logger = logging.getLogger(__name__)

PIN_ENTRY_STATUSES = frozenset({OrderStatus.IN_DELIVERY, OrderStatus.AWAITING_CONFIRMATION})
BUYER_DECISION_STATUSES = frozenset({OrderStatus.AWAITING_CONFIRMATION, OrderStatus.DELIVERED})


def _wrong_method(delivery: Delivery, order_id: int) -> ValidationError:
    return ValidationError(
        f"This order must be confirmed by {delivery.method.value}.",
        code="WRONG_CONFIRMATION_METHOD",
        details={"order_id": order_id, "required_method": delivery.method.value},
    )


def verify_pin(db: Session, order_id: int, pin: str, *, actor: Actor) -> Delivery:
    """Check the PIN the buyer handed over at the door.

    A match completes the order and releases escrow in one step. A mismatch
    consumes one attempt and is committed before the error is raised; the
    final wrong attempt locks the delivery until an operator unlocks it.
    """

    settings = get_settings()
    if not is_well_formed_pin(pin, settings.PIN_LENGTH):
        raise ValidationError(
            f"PIN must be exactly {settings.PIN_LENGTH} digits.",
            code="INVALID_PIN_FORMAT",
            details={"order_id": order_id},
        )

    with locked_order(db, order_id) as order:
        require_supplier(order, actor)
        delivery = order.delivery
        if delivery is None:
            raise InvalidTransition(order.status, OrderStatus.COMPLETED, details={"order_id": order.id})
        if delivery.method != ConfirmationMethod.PIN:
            raise _wrong_method(delivery, order.id)
        if delivery.pin_verified_at is not None and order.status == OrderStatus.COMPLETED:
            if delivery.pin is not None and hmac.compare_digest(delivery.pin, pin):
                return delivery
            raise InvalidTransition(order.status, OrderStatus.COMPLETED, details={"order_id": order.id})
        if delivery.is_locked:
            raise PinAttemptsExhausted(delivery.max_pin_attempts)
        if order.status not in PIN_ENTRY_STATUSES:
            raise InvalidTransition(order.status, OrderStatus.COMPLETED, details={"order_id": order.id})

        if delivery.pin is None or not hmac.compare_digest(delivery.pin, pin):
            delivery.pin_attempts += 1
            remaining = delivery.attempts_remaining
            if remaining == 0:
                delivery.locked_at = utcnow()
                log_audit(
                    db,
                    actor=actor.label,
                    action="DELIVERY_PIN_LOCKED",
                    entity="Delivery",
                    entity_id=delivery.id,
                    data={"order_id": order.id, "attempts": delivery.pin_attempts},
                )
                db.commit()
                logger.warning("Delivery PIN locked", extra={"order_id": order.id, "attempts": delivery.pin_attempts})
                raise PinAttemptsExhausted(delivery.max_pin_attempts)
            db.commit()
            logger.info("Delivery PIN mismatch", extra={"order_id": order.id, "attempts_remaining": remaining})
            raise PinMismatch(remaining)

        now = utcnow()
        delivery.pin_verified_at = now
        delivery.supplier_confirmed_at = delivery.supplier_confirmed_at or now
        if order.status == OrderStatus.IN_DELIVERY:
            apply_transition(db, order, OrderStatus.DELIVERED, actor=actor, data={"method": "pin"})
        apply_transition(db, order, OrderStatus.COMPLETED, actor=actor, data={"method": "pin"})
        db.commit()
    logger.info("Delivery confirmed by PIN", extra={"order_id": order_id})
    return delivery


def submit_photo(db: Session, order_id: int, photo_url: str, *, actor: Actor) -> Delivery:
    """Supplier uploads proof of delivery; the buyer decides next."""

    url = (photo_url or "").strip()
    if not url:
        raise ValidationError("A photo URL is required.", code="PHOTO_URL_REQUIRED", details={"order_id": order_id})

    with locked_order(db, order_id) as order:
        require_supplier(order, actor)
        delivery = prepare_delivery(order)
        if delivery.method != ConfirmationMethod.PHOTO:
            raise _wrong_method(delivery, order.id)
        if order.status == OrderStatus.AWAITING_CONFIRMATION and delivery.photo_url == url:
            return delivery
        if order.status != OrderStatus.IN_DELIVERY:
            raise InvalidTransition(
                order.status, OrderStatus.AWAITING_CONFIRMATION, details={"order_id": order.id}
            )
        now = utcnow()
        delivery.photo_url = url
        delivery.photo_uploaded_at = now
        delivery.supplier_confirmed_at = now
        apply_transition(
            db, order, OrderStatus.AWAITING_CONFIRMATION, actor=actor, data={"method": "photo", "photo_url": url}
        )
        db.commit()
    return delivery


def confirm_receipt(db: Session, order_id: int, *, actor: Actor) -> Delivery:
    """Buyer accepts a photo-certified delivery, releasing escrow."""

    with locked_order(db, order_id) as order:
        require_buyer(order, actor)
        delivery = order.delivery
        if order.status == OrderStatus.COMPLETED and delivery is not None and delivery.buyer_confirmed_at:
            return delivery
        if order.status not in BUYER_DECISION_STATUSES or delivery is None:
            raise InvalidTransition(order.status, OrderStatus.COMPLETED, details={"order_id": order.id})
        if delivery.method != ConfirmationMethod.PHOTO:
            raise _wrong_method(delivery, order.id)
        if not delivery.photo_url:
            raise ValidationError(
                "No delivery photo has been submitted.",
                code="PHOTO_EVIDENCE_REQUIRED",
                details={"order_id": order.id, "required_method": ConfirmationMethod.PHOTO.value},
            )
        delivery.buyer_confirmed_at = utcnow()
        apply_transition(db, order, OrderStatus.COMPLETED, actor=actor, data={"method": "photo"})
        db.commit()
    return delivery


def report_issue(
    db: Session,
    order_id: int,
    description: str,
    *,
    actor: Actor,
    reason: DisputeReason = DisputeReason.OTHER,
    evidence_urls: list[str] | None = None,
) -> Dispute:
    """Buyer rejects the delivery; escrow stays held while a dispute runs."""

    dispute_service.validate_description(description)
    with locked_order(db, order_id) as order:
        require_buyer(order, actor)
        existing = order.open_dispute
        if order.status == OrderStatus.DISPUTED and existing is not None:
            return existing
        dispute = dispute_service.open_in_session(
            db,
            order,
            reason=reason,
            description=description,
            party=DisputeParty.BUYER,
            actor=actor,
            evidence_urls=evidence_urls,
        )
        db.commit()
    return dispute


def get_delivery(db: Session, order_id: int, *, actor: Actor) -> Delivery:
    order = get_order(db, order_id)
    require_party(order, actor, ActorRole.BUYER, ActorRole.SUPPLIER, ActorRole.OPERATOR, ActorRole.SYSTEM)
    if order.delivery is None:
        raise NotFound("Delivery not prepared yet.", code="DELIVERY_NOT_FOUND", details={"order_id": order_id})
    return order.delivery


__all__ = ["verify_pin", "submit_photo", "confirm_receipt", "report_issue", "get_delivery"]
