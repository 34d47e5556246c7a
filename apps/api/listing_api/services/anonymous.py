from __future__ import annotations

import hashlib
import logging
import re
import secrets
import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from ..clock import utcnow
from ..models import AnonymousGeneration

logger = logging.getLogger(__name__)

MAX_ANONYMOUS_GENERATIONS = 3
ANONYMOUS_WINDOW = timedelta(hours=24)
SESSION_COOKIE = "anon_session"
SESSION_MAX_AGE_SECONDS = 86400
PREVIEW_WORDS = 50
SENTENCE_BREAK = re.compile(r"[.!?]\s+[A-Z]")


def _sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def device_fingerprint(headers: Mapping[str, str]) -> str:
    components = [
        f"ua:{headers.get('user-agent', '')}",
        f"lang:{headers.get('accept-language', '')}",
        f"enc:{headers.get('accept-encoding', '')}",
    ]
    screen = headers.get("x-screen-resolution")
    if screen:
        components.append(f"screen:{screen}")
    timezone_name = headers.get("x-timezone")
    if timezone_name:
        components.append(f"tz:{timezone_name}")
    return _sha256("|".join(components))


def client_ip(headers: Mapping[str, str], peer: str | None = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or peer or "unknown"


def hash_ip(ip: str) -> str:
    return _sha256(ip)


def new_session_id() -> str:
    return secrets.token_hex(16)


def session_id_from_cookies(cookies: Mapping[str, str]) -> str:
    return cookies.get(SESSION_COOKIE) or new_session_id()


def session_cookie(session_id: str, secure: bool) -> str:
    cookie = f"{SESSION_COOKIE}={session_id}; Path=/; Max-Age={SESSION_MAX_AGE_SECONDS}; SameSite=Lax"
    return f"{cookie}; Secure" if secure else cookie


def preview_snippet(description: str) -> str:
    words = description.split()
    preview_words = words[:PREVIEW_WORDS]
    preview = " ".join(preview_words)
    if len(words) <= PREVIEW_WORDS:
        return preview
    tail = " ".join(preview_words[-10:])
    match = SENTENCE_BREAK.search(tail)
    if match is None:
        return f"{preview}..."
    cut = len(preview) - len(tail) + match.start() + 1
    return preview[:cut]


def recent_count(db: Session, ip_hash: str, fingerprint: str, now: datetime | None = None) -> int:
    since = (now or utcnow()) - ANONYMOUS_WINDOW
    return db.scalar(
        select(func.count())
        .select_from(AnonymousGeneration)
        .where(
            AnonymousGeneration.ip_hash == ip_hash,
            AnonymousGeneration.device_fingerprint == fingerprint,
            AnonymousGeneration.created_at >= since,
        )
    ) or 0


def link_sessions(db: Session, session_id: str, user_id: uuid.UUID, now: datetime | None = None) -> int:
    now = now or utcnow()
    result = db.execute(
        update(AnonymousGeneration)
        .where(
            AnonymousGeneration.session_id == session_id,
            AnonymousGeneration.linked_user_id.is_(None),
            AnonymousGeneration.expires_at > now,
        )
        .values(linked_user_id=user_id, linked_at=now)
        .execution_options(synchronize_session=False)
    )
    db.flush()
    return int(result.rowcount or 0)


def cleanup_expired(db: Session, now: datetime | None = None) -> int:
    result = db.execute(
        delete(AnonymousGeneration)
        .where(AnonymousGeneration.expires_at < (now or utcnow()))
        .execution_options(synchronize_session=False)
    )
    db.flush()
    deleted = int(result.rowcount or 0)
    logger.info("removed %s expired anonymous generations", deleted)
    return deleted
