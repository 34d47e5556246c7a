from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.orm import Session

from ..auth import RequestContext
from ..models import AuditLog


def write_audit_log(
    db: Session,
    context: RequestContext,
    action: str,
    target_type: str,
    target_id: str | uuid.UUID,
    metadata_json: dict[str, Any] | None = None,
) -> AuditLog:
    return _write(db, context.current_user_id, action, target_type, target_id, metadata_json)


def write_system_audit_log(
    db: Session,
    action: str,
    target_type: str,
    target_id: str | uuid.UUID,
    metadata_json: dict[str, Any] | None = None,
    actor_user_id: uuid.UUID | None = None,
) -> AuditLog:
    return _write(db, actor_user_id, action, target_type, target_id, metadata_json)


def _write(
    db: Session,
    actor_user_id: uuid.UUID | None,
    action: str,
    target_type: str,
    target_id: str | uuid.UUID,
    metadata_json: dict[str, Any] | None,
) -> AuditLog:
    entry = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        target_type=target_type,
        target_id=str(target_id),
        metadata_json=metadata_json or {},
    )
    db.add(entry)
    db.flush()
    return entry
