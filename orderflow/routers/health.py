"""Health check endpoint."""
from __future__ import annotations

import logging

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orderflow.config import get_settings
from orderflow.core.runtime_state import is_scheduler_active
from orderflow.db import get_db
from orderflow.services import scheduler_lock
from orderflow.services.locks import active_lock_count
from orderflow.services.notifications import pending_count

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


def _db_status(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
        return "ok"
    except SQLAlchemyError:
        logger.exception("DB health check failed")
        db.rollback()
        return "error"


def _expected_migration_head() -> str | None:
    try:
        script = ScriptDirectory.from_config(Config("alembic.ini"))
        return script.get_current_head()
    except Exception:  # noqa: BLE001
        logger.warning("Failed to load Alembic head revision", exc_info=True)
        return None


def _migrations_status(db: Session) -> tuple[bool, str]:
    expected_head = _expected_migration_head()
    try:
        current = db.execute(text("SELECT version_num FROM alembic_version")).scalar()
    except SQLAlchemyError:
        db.rollback()
        return False, "unknown"
    if expected_head is None:
        return False, "unknown"
    if current == expected_head:
        return True, "up_to_date"
    return False, "out_of_date"


@router.get("", summary="Health check")
def healthcheck(db: Session = Depends(get_db)) -> dict[str, object]:
    settings = get_settings()
    db_status = _db_status(db)
    db_ok = db_status == "ok"
    if db_ok:
        migrations_ok, migrations_status = _migrations_status(db)
        outbox_pending: int | None = pending_count(db)
        lock = scheduler_lock.describe(db_session=db)
    else:
        migrations_ok, migrations_status = False, "unknown"
        outbox_pending = None
        lock = {"status": "unknown", "owner": None}
    return {
        "status": "ok" if db_ok else "degraded",
        "db_ok": db_ok,
        "db_status": db_status,
        "migrations_ok": migrations_ok,
        "migrations_status": migrations_status,
        "scheduler_config_enabled": bool(settings.SCHEDULER_ENABLED),
        "scheduler_running": is_scheduler_active(),
        "scheduler_lock": lock,
        "notifications_enabled": bool(settings.NOTIFICATIONS_ENABLED),
        "outbox_pending": outbox_pending,
        "order_locks_held": active_lock_count(),
    }
