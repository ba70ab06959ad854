"""Audit logging helper utilities."""
from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from orderflow.models.audit import AuditLog
from orderflow.utils.time import utcnow


SENSITIVE_KEYS = {
    "pin",
    "delivery_pin",
    "submitted_pin",
    "photo_url",
    "evidence_url",
    "url",
}


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None

    if key in {"pin", "delivery_pin", "submitted_pin"}:
        return "****"

    if key in {"photo_url", "evidence_url", "url"}:
        # Signed storage URLs carry credentials in the query string.
        text = str(value)
        base = text.split("?", 1)[0]
        if base != text:
            return f"{base}?***"
        return base

    return value


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a copy of ``data`` with secrets and signed URLs masked."""

    if isinstance(data, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            masked_value = _mask_value(key, value) if key in SENSITIVE_KEYS else value
            sanitized[key] = sanitize_payload_for_audit(masked_value)
        return sanitized

    if isinstance(data, list):
        return [sanitize_payload_for_audit(item) for item in data]

    return data


def log_audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity: str,
    entity_id: int | None,
    data: dict | None = None,
) -> None:
    """Persist an audit entry in the shared AuditLog table."""

    db.add(
        AuditLog(
            actor=actor,
            action=action,
            entity=entity,
            entity_id=entity_id if entity_id is not None else 0,
            data_json=sanitize_payload_for_audit(data or {}),
            at=utcnow(),
        )
    )
