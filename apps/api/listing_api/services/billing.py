"""Subscription state sync from billing webhook events.

Event payloads are flattened JSON: checkout events carry ``mode``, ``subscription``,
``customer``, ``price_id`` and ``metadata.user_id``; subscription events carry ``id``,
``customer`` and ``price_id``.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..clock import utcnow
from ..models import SubscriptionTier, UserProfile
from ..settings import settings
from .audit import write_system_audit_log

logger = logging.getLogger(__name__)

STAGING_PACK_MARKER = "staging_pack"
STAGING_PACK_CREDITS = 10


def price_to_tier(price_id: str | None) -> SubscriptionTier:
    mapping = {
        settings.stripe_starter_price_id: SubscriptionTier.STARTER,
        settings.stripe_pro_price_id: SubscriptionTier.PRO,
        settings.stripe_pro_plus_price_id: SubscriptionTier.PRO_PLUS,
    }
    if not price_id:
        return SubscriptionTier.FREE
    return mapping.get(price_id, SubscriptionTier.FREE)


def _reset_usage(profile: UserProfile) -> None:
    profile.generations_this_month = 0
    profile.staging_credits_used_this_month = 0
    profile.last_reset_date = utcnow()


def _profile_by_customer(db: Session, customer_id: str | None) -> UserProfile | None:
    if not customer_id:
        return None
    return db.scalar(select(UserProfile).where(UserProfile.stripe_customer_id == customer_id))


def _checkout_completed(db: Session, data: dict[str, Any]) -> bool:
    raw_user_id = (data.get("metadata") or {}).get("user_id")
    if not raw_user_id:
        logger.error("checkout session without user id in metadata")
        return False
    try:
        profile = db.get(UserProfile, uuid.UUID(str(raw_user_id)))
    except ValueError:
        logger.error("checkout session with malformed user id")
        return False
    if profile is None:
        logger.error("checkout session for unknown user %s", raw_user_id)
        return False

    price_id = data.get("price_id")
    mode = data.get("mode")
    if mode == "subscription":
        tier = price_to_tier(price_id)
        profile.subscription_tier = tier
        profile.stripe_subscription_id = data.get("subscription")
        profile.stripe_customer_id = data.get("customer")
        profile.billing_period_start = utcnow()
        _reset_usage(profile)
        write_system_audit_log(
            db, "billing.subscription_started", "user_profile", profile.id, {"tier": tier.value}, actor_user_id=profile.id
        )
        logger.info("user %s moved to %s tier", profile.id, tier.value)
        return True

    if mode == "payment" and price_id and STAGING_PACK_MARKER in price_id:
        profile.bonus_staging_credits += STAGING_PACK_CREDITS
        write_system_audit_log(
            db,
            "billing.staging_pack_purchased",
            "user_profile",
            profile.id,
            {"credits": STAGING_PACK_CREDITS},
            actor_user_id=profile.id,
        )
        logger.info("added %s staging credits to user %s", STAGING_PACK_CREDITS, profile.id)
        return True
    return False


def _subscription_updated(db: Session, data: dict[str, Any]) -> bool:
    profile = _profile_by_customer(db, data.get("customer"))
    if profile is None:
        return False
    tier = price_to_tier(data.get("price_id"))
    upgraded_from_free = SubscriptionTier(profile.subscription_tier) == SubscriptionTier.FREE and tier != SubscriptionTier.FREE
    profile.subscription_tier = tier
    profile.stripe_subscription_id = data.get("id")
    if upgraded_from_free:
        _reset_usage(profile)
    write_system_audit_log(
        db,
        "billing.subscription_updated",
        "user_profile",
        profile.id,
        {"tier": tier.value, "quota_reset": upgraded_from_free},
        actor_user_id=profile.id,
    )
    logger.info("subscription for user %s updated to %s", profile.id, tier.value)
    return True


def _subscription_deleted(db: Session, data: dict[str, Any]) -> bool:
    profile = _profile_by_customer(db, data.get("customer"))
    if profile is None:
        return False
    profile.subscription_tier = SubscriptionTier.FREE
    profile.stripe_subscription_id = None
    write_system_audit_log(
        db, "billing.subscription_cancelled", "user_profile", profile.id, {"tier": "free"}, actor_user_id=profile.id
    )
    logger.info("user %s downgraded to free tier", profile.id)
    return True


HANDLERS = {
    "checkout.session.completed": _checkout_completed,
    "customer.subscription.updated": _subscription_updated,
    "customer.subscription.deleted": _subscription_deleted,
}


def apply_webhook_event(db: Session, event_type: str, data: dict[str, Any]) -> bool:
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("ignoring billing event %s", event_type)
        return False
    processed = handler(db, data)
    db.flush()
    return processed
