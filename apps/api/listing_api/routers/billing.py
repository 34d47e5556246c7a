from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import BillingWebhookRequest, BillingWebhookResponse
from ..services.billing import apply_webhook_event
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


def _verify_signature(signature: str | None) -> None:
    if not settings.stripe_webhook_secret:
        return
    if not signature or not hmac.compare_digest(signature, settings.stripe_webhook_secret):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature")


@router.post("/webhook", response_model=BillingWebhookResponse)
def billing_webhook(
    payload: BillingWebhookRequest,
    stripe_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> BillingWebhookResponse:
    _verify_signature(stripe_signature)
    logger.info("billing event received: %s", payload.event_type)
    processed = apply_webhook_event(db, payload.event_type, payload.data)
    db.commit()
    return BillingWebhookResponse(received=True, processed=processed)
