# app/market/services/stripe_webhook_service.py
import json
import logging
from decimal import Decimal
from typing import Optional

import stripe
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.market.core.config import settings
from app.market.models.purchase import PurchaseRead
from app.market.schemas.webhook import CheckoutSession, StripeEvent
from app.market.services import purchase_service

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


def verify_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int,
) -> None:
    """
    Stripe-Signature 헤더 검증 (stripe SDK). 예: "t=1700000000,v1=abcd..."
    실패하면 ValueError.
    """
    if not secret:
        raise ValueError("Webhook secret is not configured")
    if not header:
        raise ValueError("No signature")

    try:
        stripe.Webhook.construct_event(payload, header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        raise ValueError(f"Invalid signature: {e}")


async def handle_event(
    db: AsyncSession,
    payload: bytes,
    signature_header: Optional[str],
) -> Optional[PurchaseRead]:
    """
    서명 확인 후 checkout.session.completed 만 처리.
    결제 완료된 세션 -> completed purchase 생성 (session id 기준 중복 방지)
    다른 이벤트는 무시하고 None.
    """
    verify_signature(
        payload,
        signature_header,
        settings.STRIPE_WEBHOOK_SECRET,
        settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
    )

    try:
        event = StripeEvent.model_validate(json.loads(payload))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid event payload: {e}")

    if event.type != CHECKOUT_COMPLETED:
        logger.info("stripe event %s (%s) ignored", event.id, event.type)
        return None

    try:
        session = CheckoutSession.model_validate(event.data.get("object") or {})
    except ValidationError as e:
        raise ValueError(f"Invalid checkout session: {e}")

    # cents -> 금액
    amount = Decimal(session.amount_total or 0) / Decimal(100)

    purchase = await purchase_service.record_checkout_completed(
        db,
        user_id=session.metadata.user_id,
        design_id=session.metadata.design_id,
        amount=amount,
        currency=session.currency or "USD",
        stripe_session_id=session.id,
    )
    logger.info(
        "checkout completed: session=%s design_id=%s user_id=%s amount=%s",
        session.id, purchase.design_id, purchase.user_id, purchase.amount,
    )
    return purchase
