# app/market/routers/api_purchases.py
from typing import List

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.market.core.db import get_db
from app.market.core.errors import NotFoundError
from app.market.core.security import get_current_user_id
from app.market.models.purchase import PurchaseRead
from app.market.services import purchase_service, stripe_webhook_service

router = APIRouter(tags=["purchases"])


@router.get("/api/purchases/me", response_model=List[PurchaseRead])
async def my_purchases(
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """내 구매/무료 다운로드 권한 목록 (completed 만)"""
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    return await purchase_service.list_user_purchases(db, user_id)


@router.post("/api/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    """
    Stripe 결제 완료 webhook.
    서명 검증 실패/잘못된 payload/없는 디자인·유저 는 400 (Stripe 가 재전송함)
    """
    payload = await request.body()
    try:
        purchase = await stripe_webhook_service.handle_event(db, payload, stripe_signature)
    except (ValueError, NotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {
        "received": True,
        "purchase_id": purchase.id if purchase else None,
    }
